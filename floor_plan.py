import logging
from dataclasses import dataclass
from io import BytesIO
from typing import Any

import PIL.Image
from PIL import ImageDraw, ImageFilter, ImageStat

from flying_stars import GRID_LAYOUT
from genai_service import RemoteCallError, or_default, take_number


logger = logging.getLogger(__name__)

# 框宽或框高小于该百分比视为退化框
MIN_SPAN_PCT = 1


@dataclass(frozen=True)
class BoundingBox:
    ymin: int = 0
    xmin: int = 0
    ymax: int = 100
    xmax: int = 100

    @property
    def width_pct(self) -> int:
        return self.xmax - self.xmin

    @property
    def height_pct(self) -> int:
        return self.ymax - self.ymin

    def to_dict(self) -> dict:
        return {"ymin": self.ymin, "xmin": self.xmin, "ymax": self.ymax, "xmax": self.xmax}


FULL_BOX = BoundingBox()


FLOOR_PLAN_PROMPT = """Analyze this floor plan image. Identify the bounding box of the **indoor living space** (walls).
  Exclude outdoor areas, gardens, large whitespace margins, and text legends.
  Focus ONLY on the main architectural interior.
  Return a JSON object with keys: ymin, xmin, ymax, xmax.
  These values should be integers from 0 to 100, representing the percentage of the image height/width.
  Example: {"ymin": 10, "xmin": 15, "ymax": 90, "xmax": 85}"""

FLOOR_PLAN_RESPONSE_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "ymin": {"type": "INTEGER"},
        "xmin": {"type": "INTEGER"},
        "ymax": {"type": "INTEGER"},
        "xmax": {"type": "INTEGER"},
    },
}


def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def sanitize_box(raw: Any) -> BoundingBox:
    def _pct(key: str, default: int) -> int:
        return int(round(_clamp(float(or_default(take_number(raw, key), default)), 0.0, 100.0)))

    ymin, ymax = sorted((_pct("ymin", 0), _pct("ymax", 100)))
    xmin, xmax = sorted((_pct("xmin", 0), _pct("xmax", 100)))
    box = BoundingBox(ymin=ymin, xmin=xmin, ymax=ymax, xmax=xmax)
    if box.width_pct < MIN_SPAN_PCT or box.height_pct < MIN_SPAN_PCT:
        logger.warning("户型图识别框退化 %s，改用整图", box.to_dict())
        return FULL_BOX
    return box


def crop_image(image: PIL.Image.Image, box: BoundingBox) -> PIL.Image.Image:
    """按识别框裁出室内范围，放大展示时即为原图的缩放与平移。"""
    if box.width_pct < MIN_SPAN_PCT or box.height_pct < MIN_SPAN_PCT:
        box = FULL_BOX
    width, height = image.size
    left = int(round(width * box.xmin / 100.0))
    top = int(round(height * box.ymin / 100.0))
    right = max(left + 1, int(round(width * box.xmax / 100.0)))
    bottom = max(top + 1, int(round(height * box.ymax / 100.0)))
    return image.crop((left, top, min(right, width), min(bottom, height)))


def draw_star_overlay(image: PIL.Image.Image, stars: dict[str, int]) -> PIL.Image.Image:
    overlay = image.convert("RGB")
    draw = ImageDraw.Draw(overlay)
    width, height = overlay.size
    cell_w, cell_h = width / 3.0, height / 3.0
    line_w = max(1, int(min(width, height) / 200))

    for i in (1, 2):
        draw.line([(cell_w * i, 0), (cell_w * i, height)], fill=(180, 83, 9), width=line_w)
        draw.line([(0, cell_h * i), (width, cell_h * i)], fill=(180, 83, 9), width=line_w)

    for index, (key, _label, abbr) in enumerate(GRID_LAYOUT):
        row, col = divmod(index, 3)
        draw.text((col * cell_w + 6, row * cell_h + 4), f"{abbr} {stars.get(key, '')}", fill=(120, 53, 15))
    return overlay


def image_quality_metrics(image: PIL.Image.Image) -> dict:
    width, height = image.size
    gray = image.convert("L")
    edges = gray.filter(ImageFilter.FIND_EDGES)
    edge_var = float(ImageStat.Stat(edges).var[0])
    return {"width": int(width), "height": int(height), "edge_var": edge_var}


def clarity_score(metrics: dict) -> int:
    edge_var = float(metrics.get("edge_var") or 0.0)
    edge_norm = _clamp((edge_var - 50.0) / (220.0 - 50.0), 0.0, 1.0)

    width = int(metrics.get("width") or 0)
    height = int(metrics.get("height") or 0)
    min_side = float(min(width, height))
    res_norm = _clamp((min_side - 500.0) / (1400.0 - 500.0), 0.0, 1.0)

    score = (0.65 * edge_norm + 0.35 * res_norm) * 100.0
    return int(round(_clamp(score, 0.0, 100.0)))


def analyze_floor_plan(service, image: PIL.Image.Image) -> BoundingBox:
    logger.info("识别户型图室内范围: %sx%s", *image.size)
    raw = service.generate_json(FLOOR_PLAN_PROMPT, schema=FLOOR_PLAN_RESPONSE_SCHEMA, image=image)
    if not raw:
        return FULL_BOX
    return sanitize_box(raw)


def edit_room_image(service, image: PIL.Image.Image, instruction: str) -> PIL.Image.Image:
    instruction = (instruction or "").strip()
    if not instruction:
        raise ValueError("请输入修改指令")

    data, mime_type = service.generate_image(
        image, f"Edit this image based on the following instruction: {instruction}"
    )
    try:
        result = PIL.Image.open(BytesIO(data))
        result.load()
    except (OSError, PIL.Image.DecompressionBombError) as e:
        raise RemoteCallError(f"无法解析生成的图片 ({mime_type})") from e
    return result
