import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from borax.calendars.lunardate import LunarDate

from genai_service import or_default, take_str


logger = logging.getLogger(__name__)

DIRECTIONS = (
    "center",
    "north",
    "south",
    "east",
    "west",
    "northeast",
    "northwest",
    "southeast",
    "southwest",
)

# 洛书飞行顺序：中 → 西北 → 西 → 东北 → 南 → 北 → 西南 → 东 → 东南
FLIGHT_PATH = (
    "center",
    "northwest",
    "west",
    "northeast",
    "south",
    "north",
    "southwest",
    "east",
    "southeast",
)

# 南上北下，东左西右
GRID_LAYOUT = (
    ("southeast", "东南", "SE"),
    ("south", "正南", "S"),
    ("southwest", "西南", "SW"),
    ("east", "正东", "E"),
    ("center", "中宫", "C"),
    ("west", "正西", "W"),
    ("northeast", "东北", "NE"),
    ("north", "正北", "N"),
    ("northwest", "西北", "NW"),
)

DIRECTION_LABELS = {key: label for key, label, _ in GRID_LAYOUT}

STAR_DETAILS = {
    1: {"name": "一白贪狼星", "type": "桃花/人缘", "desc": "在家居风水中指代与水有关的物品，主人事、缘桃花，所有人与人之间的缘份，贵人等。"},
    2: {"name": "二黑巨门星", "type": "疾病/晦气", "desc": "主宰小疾病、身体不适等。需注意身心健康，宜静不宜动。"},
    3: {"name": "三碧禄存星", "type": "是非/争吵", "desc": "与破败的木制品、干枯的植物有关，主事是非口舌、小人、争吵、官讼、盗窃破财等。"},
    4: {"name": "四绿文曲星", "type": "文昌/学业", "desc": "在家居风水中和图书、旺盛的植物有关，主宰读书、考试、文职等工作。"},
    5: {"name": "五黄廉贞星", "type": "灾祸/重病", "desc": "代表潮湿阴寒的物品或地方，主事一切大灾祸，严重的疾病。需特别小心化解。"},
    6: {"name": "六白武曲星", "type": "偏财/权力", "desc": "在家居风水中和金属、电器有关，主宰权力、偏财运等。"},
    7: {"name": "七赤破军星", "type": "升官/变动", "desc": "在家居风水中和金属刀具有关，主宰升职、运气提升，但也伴随变动与竞争。"},
    8: {"name": "八白左辅星", "type": "正财/大财", "desc": "在家居风水中和陶瓷制品有关，主宰一切钱财、正财运等。为当旺财星。"},
    9: {"name": "九紫右弼星", "type": "喜庆/姻缘", "desc": "在家居风水中和炉灶、厨房有关，主宰喜庆吉事，如搬家、开市、添丁、结婚等喜庆事。"},
}

_BASE_YEAR = 2025
_BASE_CENTER = 2


@dataclass(frozen=True)
class FlyingStarData:
    year: int
    stars: dict = field(default_factory=dict)
    advice: str = ""
    cures: str = ""
    wealth_direction: str = ""

    def to_dict(self) -> dict:
        return {
            "year": self.year,
            "stars": dict(self.stars),
            "advice": self.advice,
            "cures": self.cures,
            "wealthDirection": self.wealth_direction,
        }

    def star_at(self, direction: str) -> int:
        return int(self.stars.get(direction, 0))

    def find(self, star: int) -> Optional[str]:
        for direction, value in self.stars.items():
            if value == star:
                return direction
        return None


def center_star(year: int) -> int:
    value = (_BASE_CENTER - (year - _BASE_YEAR)) % 9
    return value or 9


def annual_flying_stars(year: int) -> dict[str, int]:
    """流年九宫飞星：入中之星按洛书顺飞。"""
    start = center_star(year)
    return {direction: (start - 1 + step) % 9 + 1 for step, direction in enumerate(FLIGHT_PATH)}


def validate_star_grid(stars: Any) -> Optional[dict[str, int]]:
    if not isinstance(stars, dict):
        return None
    grid: dict[str, int] = {}
    for direction in DIRECTIONS:
        value = stars.get(direction)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        if isinstance(value, float) and not value.is_integer():
            return None
        grid[direction] = int(value)
    if sorted(grid.values()) != list(range(1, 10)):
        return None
    return grid


def year_gan_zhi(year: int) -> str:
    # 年中取值避开立春前后的年柱切换
    return str(LunarDate.from_solar_date(year, 6, 1).gz_year)


def build_flying_star_prompt(year: int, stars: dict[str, int]) -> str:
    layout = "\n".join(
        f"  - {DIRECTION_LABELS[d]}({d}): {stars[d]} {STAR_DETAILS[stars[d]]['name']}" for d in FLIGHT_PATH
    )
    return f"""Generate a Flying Star Feng Shui analysis for the year {year} ({year_gan_zhi(year)}年).
  The annual star chart is already fixed as follows:
{layout}
  Return JSON with:
  - advice: general advice string in Simplified Chinese
  - cures: string describing cures in Simplified Chinese (especially for stars 2 and 5)
  - wealthDirection: string direction (e.g. 西南) in Simplified Chinese"""


FLYING_STAR_RESPONSE_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "advice": {"type": "STRING"},
        "cures": {"type": "STRING"},
        "wealthDirection": {"type": "STRING"},
    },
}


def _default_wealth_direction(stars: dict[str, int]) -> str:
    for direction, value in stars.items():
        if value == 8:
            return DIRECTION_LABELS[direction]
    return ""


def merge_flying_star_response(year: int, response: Any) -> FlyingStarData:
    stars = annual_flying_stars(year)
    reported = validate_star_grid(response.get("stars")) if isinstance(response, dict) else None
    if reported is not None and reported != stars:
        logger.warning("模型给出的 %s 年飞星盘与推算不符，已忽略", year)

    return FlyingStarData(
        year=year,
        stars=stars,
        advice=or_default(take_str(response, "advice"), ""),
        cures=or_default(take_str(response, "cures"), ""),
        wealth_direction=or_default(take_str(response, "wealthDirection"), _default_wealth_direction(stars)),
    )


def generate_flying_star_analysis(service, year: int) -> FlyingStarData:
    stars = annual_flying_stars(year)
    logger.info("请求 %s 年飞星解读", year)
    response = service.generate_json(build_flying_star_prompt(year, stars), schema=FLYING_STAR_RESPONSE_SCHEMA)
    return merge_flying_star_response(year, response)
