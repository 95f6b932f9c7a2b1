import logging
import re
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Optional

from borax.calendars.lunardate import LunarDate

from bazi_tables import element_counts, element_of, hidden_stems, split_gz, ten_god


logger = logging.getLogger(__name__)

GENDERS = ("Male", "Female")
CALENDAR_TYPES = ("Solar", "Lunar")

# 时辰不详时仅用于历法推算的默认时间，不作为时柱输出
DEFAULT_HOUR = 12
DEFAULT_MINUTE = 0

STANDARD_MERIDIAN = 120.0
DA_YUN_COUNT = 8

# 历法库 (borax) 支持的年份范围
MIN_YEAR = 1900
MAX_YEAR = 2100

CITY_LONGITUDE = {
    "成都": 104.06,
    "西安": 108.93,
    "北京": 116.40,
    "上海": 121.47,
    "广州": 113.26,
    "深圳": 114.05,
}

PROVINCE_LONGITUDE = {
    "四川": 104.06,
    "陕西": 108.93,
    "广东": 113.26,
    "新疆": 87.62,
    "辽宁": 123.43,
    "台湾": 121.50,
    "香港": 114.16,
    "澳门": 113.54,
}

_REGION_SUFFIXES = ("特别行政区", "维吾尔自治区", "壮族自治区", "回族自治区", "自治区", "省", "市")

_DATE_RE = re.compile(r"^\s*(\d{4})-(\d{1,2})-(\d{1,2})\s*$")
_TIME_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*$")


class InvalidBirthInputError(ValueError):
    pass


@dataclass(frozen=True)
class Location:
    province: str = ""
    city: str = ""
    district: str = ""


@dataclass(frozen=True)
class BirthInput:
    solar_date: date
    hour: int
    minute: int
    time_unknown: bool
    location: Location
    calendar_type: str = "Solar"
    gender: str = "Male"


@dataclass(frozen=True)
class StemInfo:
    char: str
    element: str
    ten_god: str


@dataclass(frozen=True)
class BranchInfo:
    char: str
    element: str
    hidden: tuple[StemInfo, ...] = ()


@dataclass(frozen=True)
class Pillar:
    gan: StemInfo
    zhi: BranchInfo
    na_yin: str
    life_stage: str = ""
    shen_sha: tuple[str, ...] = ()
    kong_wang: bool = False

    @property
    def gan_zhi(self) -> str:
        return f"{self.gan.char}{self.zhi.char}"


@dataclass(frozen=True)
class Pillars:
    year: Pillar
    month: Pillar
    day: Pillar
    time: Optional[Pillar] = None

    def items(self) -> list[tuple[str, Optional[Pillar]]]:
        return [("year", self.year), ("month", self.month), ("day", self.day), ("time", self.time)]

    def known(self) -> list[Pillar]:
        return [p for _, p in self.items() if p is not None]


@dataclass(frozen=True)
class DayMaster:
    char: str
    element: str
    strength: str = ""


@dataclass(frozen=True)
class StrengthAnalysis:
    score: float = 0
    level: str = ""
    details: str = ""


@dataclass(frozen=True)
class FiveElementsAnalysis:
    personality: str = ""
    health: str = ""


@dataclass(frozen=True)
class LiuNian:
    index: int
    year: int
    age: int
    gan_zhi: str
    gan: StemInfo
    zhi: BranchInfo


@dataclass(frozen=True)
class DaYun:
    index: int
    start_age: int
    start_year: int
    end_year: int
    gan_zhi: str
    gan: StemInfo
    zhi: BranchInfo
    liu_nian: tuple[LiuNian, ...] = ()


@dataclass(frozen=True)
class BaziChart:
    gender: str
    calendar_type: str
    solar_date: str
    lunar_date_string: str
    solar_time: str
    location: Location
    pillars: Pillars
    day_master: DayMaster
    element_counts: dict
    da_yun: tuple[DaYun, ...]
    time_correction_minutes: float = 0.0
    strength_analysis: StrengthAnalysis = field(default_factory=StrengthAnalysis)
    favorable_elements: tuple[str, ...] = ()
    five_elements_analysis: FiveElementsAnalysis = field(default_factory=FiveElementsAnalysis)

    @property
    def time_unknown(self) -> bool:
        return self.pillars.time is None

    def to_dict(self) -> dict:
        return {
            "gender": self.gender,
            "calendarType": self.calendar_type,
            "solarDate": self.solar_date,
            "lunarDateString": self.lunar_date_string,
            "solarTime": self.solar_time,
            "location": asdict(self.location),
            "pillars": {name: _pillar_to_dict(p) for name, p in self.pillars.items()},
            "dayMaster": asdict(self.day_master),
            "elementCounts": dict(self.element_counts),
            "daYun": [_da_yun_to_dict(dy) for dy in self.da_yun],
            "strengthAnalysis": asdict(self.strength_analysis),
            "favorableElements": list(self.favorable_elements),
            "fiveElementsAnalysis": asdict(self.five_elements_analysis),
        }


def _stem_to_dict(stem: StemInfo) -> dict:
    return {"char": stem.char, "element": stem.element, "tenGod": stem.ten_god}


def _pillar_to_dict(pillar: Optional[Pillar]) -> Optional[dict]:
    if pillar is None:
        return None
    return {
        "gan": _stem_to_dict(pillar.gan),
        "zhi": {
            "char": pillar.zhi.char,
            "element": pillar.zhi.element,
            "hidden": [_stem_to_dict(h) for h in pillar.zhi.hidden],
        },
        "naYin": pillar.na_yin,
        "lifeStage": pillar.life_stage,
        "shenSha": list(pillar.shen_sha),
        "kongWang": pillar.kong_wang,
    }


def _da_yun_to_dict(dy: DaYun) -> dict:
    return {
        "index": dy.index,
        "startAge": dy.start_age,
        "startYear": dy.start_year,
        "endYear": dy.end_year,
        "ganZhi": dy.gan_zhi,
        "gan": _stem_to_dict(dy.gan),
        "zhi": {"char": dy.zhi.char, "element": dy.zhi.element},
        "liuNian": [
            {
                "index": ln.index,
                "year": ln.year,
                "age": ln.age,
                "ganZhi": ln.gan_zhi,
                "gan": _stem_to_dict(ln.gan),
                "zhi": {"char": ln.zhi.char, "element": ln.zhi.element},
            }
            for ln in dy.liu_nian
        ],
    }


# ==========================================
# 输入解析
# ==========================================
def _parse_date(date_str: str) -> tuple[int, int, int]:
    match = _DATE_RE.match(date_str or "")
    if not match:
        raise InvalidBirthInputError(f"出生日期格式应为 YYYY-MM-DD: {date_str!r}")
    return int(match.group(1)), int(match.group(2)), int(match.group(3))


def _parse_time(time_str: str) -> tuple[int, int]:
    match = _TIME_RE.match(time_str or "")
    if not match:
        raise InvalidBirthInputError(f"出生时间格式应为 HH:MM: {time_str!r}")
    hour, minute = int(match.group(1)), int(match.group(2))
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise InvalidBirthInputError(f"出生时间超出范围: {time_str!r}")
    return hour, minute


def _lunar_to_solar(year: int, month: int, day: int, leap_month: bool) -> date:
    try:
        return LunarDate(year, month, day, 1 if leap_month else 0).to_solar_date()
    except (ValueError, IndexError) as e:
        raise InvalidBirthInputError(f"无效的农历日期: {year}-{month}-{day}") from e


def parse_birth_input(
    date_str: str,
    time_str: Optional[str],
    time_unknown: bool = False,
    location: Optional[Location] = None,
    calendar_type: str = "Solar",
    gender: str = "Male",
    leap_month: bool = False,
) -> BirthInput:
    if calendar_type not in CALENDAR_TYPES:
        raise InvalidBirthInputError(f"未知历法: {calendar_type!r}")
    if gender not in GENDERS:
        raise InvalidBirthInputError(f"未知性别: {gender!r}")

    year, month, day = _parse_date(date_str)
    if not (MIN_YEAR <= year <= MAX_YEAR):
        raise InvalidBirthInputError(f"出生年份需在 {MIN_YEAR}-{MAX_YEAR} 之间: {year}")
    if calendar_type == "Lunar":
        solar_date = _lunar_to_solar(year, month, day, leap_month)
    else:
        try:
            solar_date = date(year, month, day)
        except ValueError as e:
            raise InvalidBirthInputError(f"无效的公历日期: {date_str!r}") from e

    if time_unknown or not time_str:
        hour, minute, time_unknown = DEFAULT_HOUR, DEFAULT_MINUTE, True
    else:
        hour, minute = _parse_time(time_str)

    return BirthInput(
        solar_date=solar_date,
        hour=hour,
        minute=minute,
        time_unknown=time_unknown,
        location=location or Location(),
        calendar_type=calendar_type,
        gender=gender,
    )


# ==========================================
# 真太阳时
# ==========================================
def _normalize_region(name: str) -> str:
    name = (name or "").strip()
    for suffix in _REGION_SUFFIXES:
        if name.endswith(suffix) and len(name) > len(suffix):
            return name[: -len(suffix)]
    return name


def longitude_for(location: Location) -> float:
    city = _normalize_region(location.city)
    province = _normalize_region(location.province)
    if city in CITY_LONGITUDE:
        return CITY_LONGITUDE[city]
    if province in CITY_LONGITUDE:
        return CITY_LONGITUDE[province]
    if province in PROVINCE_LONGITUDE:
        return PROVINCE_LONGITUDE[province]
    return STANDARD_MERIDIAN


def lmt_correction(longitude: float, standard_meridian: float = STANDARD_MERIDIAN) -> float:
    return (longitude - standard_meridian) * 4.0


def true_solar_datetime(birth: BirthInput) -> tuple[datetime, float]:
    clock = datetime.combine(birth.solar_date, time(birth.hour, birth.minute))
    if birth.time_unknown:
        return clock, 0.0
    correction = lmt_correction(longitude_for(birth.location))
    return clock + timedelta(minutes=correction), correction


# ==========================================
# 排盘
# ==========================================
def _stem(day_gan: str, char: str) -> StemInfo:
    return StemInfo(char=char, element=element_of(char), ten_god=ten_god(day_gan, char))


def _branch(day_gan: str, char: str, with_hidden: bool = True) -> BranchInfo:
    hidden = tuple(_stem(day_gan, s) for s in hidden_stems(char)) if with_hidden else ()
    return BranchInfo(char=char, element=element_of(char), hidden=hidden)


def build_pillar(day_gan: str, gan_zhi: Optional[str], na_yin: str, void_branches: str = "") -> Optional[Pillar]:
    if not gan_zhi:
        return None
    gan, zhi = split_gz(gan_zhi)
    return Pillar(
        gan=_stem(day_gan, gan),
        zhi=_branch(day_gan, zhi),
        na_yin=str(na_yin or ""),
        kong_wang=bool(zhi) and zhi in (void_branches or ""),
    )


def _expand_da_yun(day_gan: str, yun) -> tuple[DaYun, ...]:
    # 第 0 步为起运前的童限，无干支
    periods = []
    for idx, dy in enumerate(yun.getDaYun()[1 : DA_YUN_COUNT + 1]):
        gan_zhi = str(dy.getGanZhi())
        gan, zhi = split_gz(gan_zhi)
        liu_nian = tuple(
            LiuNian(
                index=ln_idx,
                year=int(ln.getYear()),
                age=int(ln.getAge()),
                gan_zhi=str(ln.getGanZhi()),
                gan=_stem(day_gan, split_gz(str(ln.getGanZhi()))[0]),
                zhi=_branch(day_gan, split_gz(str(ln.getGanZhi()))[1], with_hidden=False),
            )
            for ln_idx, ln in enumerate(dy.getLiuNian())
        )
        periods.append(
            DaYun(
                index=idx,
                start_age=int(dy.getStartAge()),
                start_year=int(dy.getStartYear()),
                end_year=int(dy.getEndYear()),
                gan_zhi=gan_zhi,
                gan=_stem(day_gan, gan),
                zhi=_branch(day_gan, zhi, with_hidden=False),
                liu_nian=liu_nian,
            )
        )
    return tuple(periods)


def build_chart_skeleton(birth: BirthInput) -> BaziChart:
    from lunar_python import Solar

    solar_dt, correction = true_solar_datetime(birth)
    solar = Solar.fromYmdHms(
        solar_dt.year, solar_dt.month, solar_dt.day, solar_dt.hour, solar_dt.minute, solar_dt.second
    )
    # 校正后的时刻只用于取四柱，日期显示保留用户输入
    entered = Solar.fromYmd(birth.solar_date.year, birth.solar_date.month, birth.solar_date.day)
    eight_char = solar.getLunar().getEightChar()

    year_gz = str(eight_char.getYear())
    month_gz = str(eight_char.getMonth())
    day_gz = str(eight_char.getDay())
    time_gz = None if birth.time_unknown else str(eight_char.getTime())

    day_gan = split_gz(day_gz)[0]
    void_branches = str(eight_char.getDayXunKong() or "")

    pillars = Pillars(
        year=build_pillar(day_gan, year_gz, eight_char.getYearNaYin(), void_branches),
        month=build_pillar(day_gan, month_gz, eight_char.getMonthNaYin(), void_branches),
        day=build_pillar(day_gan, day_gz, eight_char.getDayNaYin(), void_branches),
        time=None if birth.time_unknown else build_pillar(day_gan, time_gz, eight_char.getTimeNaYin(), void_branches),
    )

    gender_code = 1 if birth.gender == "Male" else 0
    da_yun = _expand_da_yun(day_gan, eight_char.getYun(gender_code))

    logger.debug("排盘完成: %s %s %s %s", year_gz, month_gz, day_gz, time_gz or "-")

    return BaziChart(
        gender=birth.gender,
        calendar_type=birth.calendar_type,
        solar_date=birth.solar_date.isoformat(),
        lunar_date_string=str(entered.getLunar().toString()),
        solar_time="Unknown" if birth.time_unknown else f"{birth.hour}:{birth.minute:02d}",
        location=birth.location,
        pillars=pillars,
        day_master=DayMaster(char=day_gan, element=element_of(day_gan)),
        element_counts=element_counts([year_gz, month_gz, day_gz, time_gz]),
        da_yun=da_yun,
        time_correction_minutes=round(correction, 2),
    )
