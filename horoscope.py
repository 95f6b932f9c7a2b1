import logging
from dataclasses import dataclass
from datetime import date
from enum import Enum

from genai_service import or_default, take_str


logger = logging.getLogger(__name__)


class ZodiacSign(str, Enum):
    ARIES = "Aries"
    TAURUS = "Taurus"
    GEMINI = "Gemini"
    CANCER = "Cancer"
    LEO = "Leo"
    VIRGO = "Virgo"
    LIBRA = "Libra"
    SCORPIO = "Scorpio"
    SAGITTARIUS = "Sagittarius"
    CAPRICORN = "Capricorn"
    AQUARIUS = "Aquarius"
    PISCES = "Pisces"


SIGN_NAMES = {
    ZodiacSign.ARIES: "白羊座",
    ZodiacSign.TAURUS: "金牛座",
    ZodiacSign.GEMINI: "双子座",
    ZodiacSign.CANCER: "巨蟹座",
    ZodiacSign.LEO: "狮子座",
    ZodiacSign.VIRGO: "处女座",
    ZodiacSign.LIBRA: "天秤座",
    ZodiacSign.SCORPIO: "天蝎座",
    ZodiacSign.SAGITTARIUS: "射手座",
    ZodiacSign.CAPRICORN: "摩羯座",
    ZodiacSign.AQUARIUS: "水瓶座",
    ZodiacSign.PISCES: "双鱼座",
}

# (起始月, 起始日)，按起始日期排列
SIGN_STARTS = (
    ((1, 20), ZodiacSign.AQUARIUS),
    ((2, 19), ZodiacSign.PISCES),
    ((3, 21), ZodiacSign.ARIES),
    ((4, 20), ZodiacSign.TAURUS),
    ((5, 21), ZodiacSign.GEMINI),
    ((6, 22), ZodiacSign.CANCER),
    ((7, 23), ZodiacSign.LEO),
    ((8, 23), ZodiacSign.VIRGO),
    ((9, 23), ZodiacSign.LIBRA),
    ((10, 24), ZodiacSign.SCORPIO),
    ((11, 23), ZodiacSign.SAGITTARIUS),
    ((12, 22), ZodiacSign.CAPRICORN),
)

PERIODS = {
    "daily": "今日",
    "weekly": "本周",
    "monthly": "本月",
}


@dataclass(frozen=True)
class HoroscopeForecast:
    sign: str
    period: str
    forecast: str = ""
    lucky_color: str = ""
    lucky_number: str = ""
    date_range: str = ""

    def to_dict(self) -> dict:
        return {
            "sign": self.sign,
            "period": self.period,
            "forecast": self.forecast,
            "luckyColor": self.lucky_color,
            "luckyNumber": self.lucky_number,
            "dateRange": self.date_range,
        }


def sign_for_date(month: int, day: int) -> ZodiacSign:
    current = ZodiacSign.CAPRICORN
    for (start_month, start_day), sign in SIGN_STARTS:
        if (month, day) >= (start_month, start_day):
            current = sign
    return current


def date_range(sign: ZodiacSign) -> str:
    starts = [start for start, _ in SIGN_STARTS]
    idx = [s for _, s in SIGN_STARTS].index(sign)
    start_month, start_day = starts[idx]
    next_month, next_day = starts[(idx + 1) % len(starts)]
    # 下一星座起始日的前一天
    end = date(2001, next_month, next_day).toordinal() - 1
    end_date = date.fromordinal(end)
    return f"{start_month}.{start_day} - {end_date.month}.{end_date.day}"


def build_horoscope_prompt(sign: ZodiacSign, period: str) -> str:
    return f"""Generate a {period} horoscope forecast for {SIGN_NAMES[sign]} in Simplified Chinese. Return JSON:
  - sign: string
  - forecast: string (approx 50 words, encouraging)
  - luckyColor: string
  - luckyNumber: string"""


HOROSCOPE_RESPONSE_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "sign": {"type": "STRING"},
        "forecast": {"type": "STRING"},
        "luckyColor": {"type": "STRING"},
        "luckyNumber": {"type": "STRING"},
    },
}


def _coerce_sign(sign) -> ZodiacSign:
    if isinstance(sign, ZodiacSign):
        return sign
    for candidate in ZodiacSign:
        if sign in (candidate.value, SIGN_NAMES[candidate]):
            return candidate
    raise ValueError(f"未知星座: {sign!r}")


def generate_horoscope_forecast(service, sign, period: str = "daily") -> HoroscopeForecast:
    zodiac = _coerce_sign(sign)
    if period not in PERIODS:
        raise ValueError(f"未知运势周期: {period!r}")

    logger.info("请求星座运势: %s %s", zodiac.value, period)
    response = service.generate_json(build_horoscope_prompt(zodiac, period), schema=HOROSCOPE_RESPONSE_SCHEMA)

    return HoroscopeForecast(
        sign=or_default(take_str(response, "sign"), SIGN_NAMES[zodiac]),
        period=period,
        forecast=or_default(take_str(response, "forecast"), ""),
        lucky_color=or_default(take_str(response, "luckyColor"), ""),
        lucky_number=or_default(take_str(response, "luckyNumber"), ""),
        date_range=date_range(zodiac),
    )
