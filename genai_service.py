import json
import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Optional, Union

from google.genai import types

from app_config import get_genai_client, get_image_model, get_text_model, pil_image_to_part


logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


class RemoteCallError(RuntimeError):
    pass


def _iter_parts(response):
    for candidate in getattr(response, "candidates", None) or []:
        yield list(getattr(getattr(candidate, "content", None), "parts", None) or [])


def _extract_text_from_genai_response(response) -> str | None:
    # response.text 为空时按 candidate 逐段拼接
    text = getattr(response, "text", None)
    if isinstance(text, str) and text.strip():
        return text

    for parts in _iter_parts(response):
        joined = "".join(p.text for p in parts if isinstance(getattr(p, "text", None), str)).strip()
        if joined:
            return joined
    return None


def _extract_image_from_genai_response(response) -> tuple[bytes, str] | None:
    for parts in _iter_parts(response):
        for part in parts:
            inline = getattr(part, "inline_data", None)
            if getattr(inline, "data", None):
                return inline.data, getattr(inline, "mime_type", None) or "image/png"
    return None


# ==========================================
# 字段级容错：Present(value) | ABSENT
# ==========================================
@dataclass(frozen=True)
class Present:
    value: Any


class _Absent:
    def __repr__(self) -> str:
        return "ABSENT"


ABSENT = _Absent()
FieldResult = Union[Present, _Absent]


def take_object(data: Any, key: str) -> FieldResult:
    value = data.get(key) if isinstance(data, dict) else None
    return Present(value) if isinstance(value, dict) else ABSENT


def take_str(data: Any, key: str) -> FieldResult:
    value = data.get(key) if isinstance(data, dict) else None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        value = str(value)
    return Present(value.strip()) if isinstance(value, str) and value.strip() else ABSENT


def take_number(data: Any, key: str) -> FieldResult:
    value = data.get(key) if isinstance(data, dict) else None
    # bool 是 int 的子类；json 会把 NaN/Infinity 解析成 float
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return ABSENT
    if not math.isfinite(value):
        return ABSENT
    return Present(value)


def take_int(data: Any, key: str) -> FieldResult:
    result = take_number(data, key)
    if isinstance(result, Present):
        return Present(int(round(result.value)))
    return ABSENT


def take_str_list(data: Any, key: str) -> FieldResult:
    value = data.get(key) if isinstance(data, dict) else None
    if not isinstance(value, list):
        return ABSENT
    return Present(tuple(v.strip() for v in value if isinstance(v, str) and v.strip()))


def or_default(result: FieldResult, default: Any) -> Any:
    return result.value if isinstance(result, Present) else default


def parse_json_text(text: Optional[str]) -> Any:
    if text is None or not text.strip():
        return {}
    text = text.strip()
    match = _FENCE_RE.match(text)
    if match:
        text = match.group(1)
    return json.loads(text)


class GenAIService:
    """Gemini 调用的唯一出口，client 由外部构造后传入。"""

    def __init__(self, client, text_model: Optional[str] = None, image_model: Optional[str] = None):
        self.client = client
        self.text_model = text_model or get_text_model()
        self.image_model = image_model or get_image_model()

    @classmethod
    def from_api_key(cls, api_key: Optional[str] = None) -> "GenAIService":
        return cls(get_genai_client(api_key))

    def _call(self, model: str, contents: list, config: Optional[types.GenerateContentConfig]):
        try:
            return self.client.models.generate_content(model=model, contents=contents, config=config)
        except Exception as e:
            logger.error("Gemini 调用失败 (%s): %s", model, e)
            raise RemoteCallError(f"远程模型调用失败: {e}") from e

    def generate_json(self, prompt: str, schema: Optional[dict] = None, image=None) -> dict:
        contents: list = []
        if image is not None:
            contents.append(pil_image_to_part(image))
        contents.append(prompt)

        config_kwargs: dict[str, Any] = {"response_mime_type": "application/json"}
        if schema is not None:
            config_kwargs["response_schema"] = schema

        response = self._call(self.text_model, contents, types.GenerateContentConfig(**config_kwargs))
        text = _extract_text_from_genai_response(response)
        try:
            data = parse_json_text(text)
        except json.JSONDecodeError as e:
            logger.error("模型返回的不是 JSON: %.200s", text)
            raise RemoteCallError("远程模型返回了无法解析的内容") from e

        if not isinstance(data, dict):
            logger.warning("模型返回的 JSON 顶层不是对象，按空结果处理: %s", type(data).__name__)
            return {}
        return data

    def generate_image(self, image, instruction: str) -> tuple[bytes, str]:
        contents = [pil_image_to_part(image), instruction]
        response = self._call(self.image_model, contents, None)
        found = _extract_image_from_genai_response(response)
        if not found:
            raise RemoteCallError("No image generated")
        return found
