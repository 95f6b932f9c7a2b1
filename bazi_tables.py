from typing import Iterable, Optional


TIANGAN = ("甲", "乙", "丙", "丁", "戊", "己", "庚", "辛", "壬", "癸")
DIZHI = ("子", "丑", "寅", "卯", "辰", "巳", "午", "未", "申", "酉", "戌", "亥")

TIANGAN_WUXING = {
    "甲": "木",
    "乙": "木",
    "丙": "火",
    "丁": "火",
    "戊": "土",
    "己": "土",
    "庚": "金",
    "辛": "金",
    "壬": "水",
    "癸": "水",
}

DIZHI_WUXING = {
    "子": "水",
    "丑": "土",
    "寅": "木",
    "卯": "木",
    "辰": "土",
    "巳": "火",
    "午": "火",
    "未": "土",
    "申": "金",
    "酉": "金",
    "戌": "土",
    "亥": "水",
}

WUXING_INDEX = {"木": 0, "火": 1, "土": 2, "金": 3, "水": 4}

# 统计输出顺序与前端展示一致
WUXING_ORDER = ("金", "木", "水", "火", "土")

SHENG = {
    "木": "火",
    "火": "土",
    "土": "金",
    "金": "水",
    "水": "木",
}

KE = {
    "木": "土",
    "土": "水",
    "水": "火",
    "火": "金",
    "金": "木",
}

# diff -> (同性, 异性)
TEN_GOD_BY_DIFF = (
    ("比肩", "劫财"),
    ("食神", "伤官"),
    ("偏财", "正财"),
    ("七杀", "正官"),
    ("偏印", "正印"),
)

TEN_GODS = tuple(label for pair in TEN_GOD_BY_DIFF for label in pair)

# 藏干按本气、中气、余气排列
ZHI_HIDDEN_GAN = {
    "子": ("癸",),
    "丑": ("己", "癸", "辛"),
    "寅": ("甲", "丙", "戊"),
    "卯": ("乙",),
    "辰": ("戊", "乙", "癸"),
    "巳": ("丙", "庚", "戊"),
    "午": ("丁", "己"),
    "未": ("己", "丁", "乙"),
    "申": ("庚", "壬", "戊"),
    "酉": ("辛",),
    "戌": ("戊", "辛", "丁"),
    "亥": ("壬", "甲"),
}


def element_of(char: Optional[str]) -> str:
    if not char:
        return ""
    return TIANGAN_WUXING.get(char) or DIZHI_WUXING.get(char) or ""


def ten_god(day_gan: Optional[str], other_gan: Optional[str]) -> str:
    """十神：按五行生克差值与阴阳异同推出。"""
    if not day_gan or not other_gan:
        return ""
    if day_gan not in TIANGAN_WUXING or other_gan not in TIANGAN_WUXING:
        return ""

    day_index = TIANGAN.index(day_gan)
    other_index = TIANGAN.index(other_gan)
    day_elem = WUXING_INDEX[TIANGAN_WUXING[day_gan]]
    other_elem = WUXING_INDEX[TIANGAN_WUXING[other_gan]]

    diff = (other_elem - day_elem + 5) % 5
    same_polarity = (day_index % 2) == (other_index % 2)
    same_label, opposite_label = TEN_GOD_BY_DIFF[diff]
    return same_label if same_polarity else opposite_label


def hidden_stems(zhi: Optional[str]) -> tuple[str, ...]:
    return ZHI_HIDDEN_GAN.get(zhi or "", ())


def split_gz(gz: Optional[str]) -> tuple[str, str]:
    gz = (gz or "").strip()
    if len(gz) >= 2:
        return gz[0], gz[1]
    if len(gz) == 1:
        return gz[0], ""
    return "", ""


def element_counts(gan_zhi_list: Iterable[Optional[str]]) -> dict[str, int]:
    counts = {elem: 0 for elem in WUXING_ORDER}
    for gz in gan_zhi_list:
        if not gz:
            continue
        for char in split_gz(gz):
            elem = element_of(char)
            if elem:
                counts[elem] += 1
    return counts


def strongest_and_weakest(counts: dict[str, int]) -> tuple[str, str]:
    if not counts:
        return "", ""
    strongest = max(WUXING_ORDER, key=lambda e: counts.get(e, 0))
    weakest = min(WUXING_ORDER, key=lambda e: counts.get(e, 0))
    return strongest, weakest


def format_counts(counts: dict[str, int]) -> str:
    return ", ".join(f"{elem}:{counts.get(elem, 0)}" for elem in WUXING_ORDER)
