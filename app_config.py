import logging
import os
from io import BytesIO
from typing import Callable, Optional


logger = logging.getLogger(__name__)

API_KEY_CANDIDATES = (
    "GOOGLE_API_KEY",
    "GEMINI_API_KEY",
    "GENAI_API_KEY",
    "API_KEY",
)

PROXY_ENV_NAMES = ("HTTP_PROXY", "HTTPS_PROXY", "http_proxy", "https_proxy")

DEFAULT_TEXT_MODEL = "gemini-2.5-flash"
DEFAULT_IMAGE_MODEL = "gemini-2.5-flash-image"

# PIL 格式 -> (保存格式, MIME)，其余一律转 PNG
_PART_FORMATS = {
    "JPEG": ("JPEG", "image/jpeg"),
    "JPG": ("JPEG", "image/jpeg"),
    "WEBP": ("WEBP", "image/webp"),
}


class MissingCredentialError(ValueError):
    pass


def _clean(value: object) -> Optional[str]:
    text = "" if value is None else str(value).strip()
    return text or None


def _pick_key(lookup: Callable[[str], object]) -> Optional[str]:
    for key_name in API_KEY_CANDIDATES:
        key = _clean(lookup(key_name))
        if key:
            return key
    return None


def _load_local_secrets_key() -> Optional[str]:
    try:
        import local_secrets  # type: ignore
    except ImportError:
        return None
    return _pick_key(lambda name: getattr(local_secrets, name, None))


def _load_streamlit_secrets_toml(secrets_path: Optional[str] = None) -> Optional[str]:
    secrets_path = secrets_path or os.path.join(".streamlit", "secrets.toml")
    if not os.path.exists(secrets_path):
        return None

    import tomllib

    try:
        with open(secrets_path, "rb") as file_handle:
            data = tomllib.load(file_handle)
    except (OSError, tomllib.TOMLDecodeError) as e:
        logger.warning("无法读取 %s: %s", secrets_path, e)
        return None
    return _pick_key(data.get)


def _load_streamlit_runtime_secret() -> Optional[str]:
    try:
        import streamlit as st  # type: ignore

        return _pick_key(lambda name: st.secrets[name] if name in st.secrets else None)
    except Exception:
        # st.secrets raises when no secrets file exists at all
        return None


def get_google_api_key(explicit_key: Optional[str] = None) -> Optional[str]:
    key = _clean(explicit_key)
    if key:
        return key

    for loader in (_load_local_secrets_key, _load_streamlit_secrets_toml, _load_streamlit_runtime_secret):
        key = loader()
        if key:
            return key
    return _pick_key(os.getenv)


def set_proxy(proxy_url: Optional[str]) -> None:
    proxy_url = _clean(proxy_url)
    if not proxy_url:
        return
    for name in PROXY_ENV_NAMES:
        os.environ[name] = proxy_url
    logger.info("已为 Gemini 请求设置代理")


def get_text_model() -> str:
    return _clean(os.getenv("XUANXUE_TEXT_MODEL")) or DEFAULT_TEXT_MODEL


def get_image_model() -> str:
    return _clean(os.getenv("XUANXUE_IMAGE_MODEL")) or DEFAULT_IMAGE_MODEL


def configure_logging(level: Optional[str] = None) -> None:
    level_name = (_clean(level) or _clean(os.getenv("XUANXUE_LOG_LEVEL")) or "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def get_genai_client(api_key: Optional[str] = None):
    from google import genai

    key = get_google_api_key(api_key)
    if not key:
        raise MissingCredentialError(
            "Missing Google API key: pass one in, set `GOOGLE_API_KEY` / `GEMINI_API_KEY`, "
            "or put it in `.streamlit/secrets.toml` or `local_secrets.py`."
        )
    set_proxy(os.getenv("XUANXUE_PROXY"))
    return genai.Client(api_key=key)


def pil_image_to_part(image):
    """把上传的户型图或房间照片编码成 Gemini 的 inline Part。"""
    from google import genai

    save_format, mime_type = _PART_FORMATS.get(str(image.format or "").upper(), ("PNG", "image/png"))
    if save_format == "JPEG" and image.mode not in ("RGB", "L"):
        image = image.convert("RGB")

    buffer = BytesIO()
    image.save(buffer, format=save_format)
    return genai.types.Part.from_bytes(data=buffer.getvalue(), mime_type=mime_type)
