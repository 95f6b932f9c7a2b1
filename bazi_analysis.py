import logging
from dataclasses import replace
from typing import Any

from bazi_engine import (
    BaziChart,
    BirthInput,
    FiveElementsAnalysis,
    Pillar,
    StrengthAnalysis,
    build_chart_skeleton,
)
from bazi_tables import format_counts, strongest_and_weakest
from genai_service import or_default, take_number, take_object, take_str, take_str_list


logger = logging.getLogger(__name__)

PILLAR_KEYS = ("year", "month", "day", "time")
PILLAR_LABELS = {"year": "年柱", "month": "月柱", "day": "日柱", "time": "时柱"}

PERSONALITY_RULES = {
    ("木", "强"): "不会主动表露自己的心声，重实干，性格敏感，内敛",
    ("木", "弱"): "外表看起来有些弱，但内在有韧性，认死理，容易钻牛角尖",
    ("火", "强"): "有才华，有情调，有冲劲，有爆发力，性格容易急躁",
    ("火", "弱"): "思维敏捷，性格偏冷，偏消极",
    ("土", "强"): "内在有原则，形式灵活多变，群策群力，如有冲突内在原则会转变成为固执己见",
    ("土", "弱"): "会审时度势，自我调节能力强，但往往容易受环境影响，缺乏主见，稳定性不高",
    ("金", "强"): "敢于创新，忠诚义气，执行力强，有戾气，喜欢硬碰硬",
    ("金", "弱"): "不善拐弯，容易在无意中得罪人",
    ("水", "强"): "聪明，灵活，点子多，人缘好",
    ("水", "弱"): "乖巧，胆小，有耐心",
}

HEALTH_RULES = {
    "金": "肺部、呼吸道 (强: 肺部呼吸道本身问题; 弱: 容易发炎)",
    "木": "肝胆 (强: 肝胆本身问题; 弱: 肝胆引发的间接症状)",
    "水": "肾脏、泌尿系统 (强: 脏器本身问题; 弱: 精神方面问题)",
    "火": "心脏、血液 (强: 心血管机能较弱; 弱: 心气不稳、血压不稳、贫血、易疲累)",
    "土": "肠胃和皮肤 (强: 胃肠机能本身问题; 弱: 胃肠方面的炎症和病变问题)",
}

_PILLAR_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "lifeStage": {"type": "STRING"},
        "shenSha": {"type": "ARRAY", "items": {"type": "STRING"}},
    },
}

BAZI_RESPONSE_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "pillarAnalysis": {
            "type": "OBJECT",
            "properties": {key: _PILLAR_SCHEMA for key in PILLAR_KEYS},
        },
        "strengthAnalysis": {
            "type": "OBJECT",
            "properties": {
                "score": {"type": "NUMBER"},
                "level": {"type": "STRING"},
                "details": {"type": "STRING"},
            },
        },
        "favorableElements": {"type": "ARRAY", "items": {"type": "STRING"}},
        "fiveElementsAnalysis": {
            "type": "OBJECT",
            "properties": {
                "personality": {"type": "STRING"},
                "health": {"type": "STRING"},
            },
        },
    },
    "required": ["strengthAnalysis", "fiveElementsAnalysis"],
}


# ==========================================
# Prompt
# ==========================================
def build_bazi_prompt(chart: BaziChart) -> str:
    pillars = chart.pillars
    strongest, weakest = strongest_and_weakest(chart.element_counts)
    time_text = pillars.time.gan_zhi if pillars.time else "不详 (Unknown)"
    gender_text = "男" if chart.gender == "Male" else "女"

    personality_rules = "\n".join(
        f"       - {elem}最{level}：{text}" for (elem, level), text in PERSONALITY_RULES.items()
    )
    health_rules = "\n".join(f"       - {elem}关联：{text}" for elem, text in HEALTH_RULES.items())

    return f"""
    你是一位精通子平八字的命理大师。

    **排盘信息:**
    - 年柱: {pillars.year.gan_zhi}
    - 月柱: {pillars.month.gan_zhi}
    - 日柱: {pillars.day.gan_zhi}
    - 时柱: {time_text}
    - 五行统计: {format_counts(chart.element_counts)}
    - 最强五行: {strongest}；最弱五行: {weakest}
    - 性别: {gender_text}

    **任务:**
    1. 标注各柱相对于日主({chart.day_master.char})的"十二长生"状态。
    2. 识别关键神煞（如天乙贵人、桃花、驿马、空亡等）。
    3. 判定日主身强身弱，计算得分(0-100)，判定格局。
    4. 给出喜用神。
    5. **生成五行性格和健康分析**：
       - 根据五行统计找出最强（数量最多）和最弱（数量最少）的五行。
       - 基于以下规则生成分析文案，并适当扩展使其通顺自然，**请直接显示对应的问题，并根据提示词进行专业扩展**:

       **性格规则参考**:
{personality_rules}

       **健康规则参考**:
{health_rules}
    """


# ==========================================
# 合并
# ==========================================
def _merge_pillar(pillar: Pillar, analysis: Any) -> Pillar:
    return replace(
        pillar,
        life_stage=or_default(take_str(analysis, "lifeStage"), pillar.life_stage),
        shen_sha=or_default(take_str_list(analysis, "shenSha"), pillar.shen_sha),
    )


def merge_analysis(chart: BaziChart, analysis: Any) -> BaziChart:
    pillar_analysis = or_default(take_object(analysis, "pillarAnalysis"), {})
    merged_pillars = {}
    for key, pillar in chart.pillars.items():
        if pillar is None:
            merged_pillars[key] = None
            continue
        merged_pillars[key] = _merge_pillar(pillar, or_default(take_object(pillar_analysis, key), {}))

    strength = or_default(take_object(analysis, "strengthAnalysis"), {})
    strength_analysis = StrengthAnalysis(
        score=or_default(take_number(strength, "score"), chart.strength_analysis.score),
        level=or_default(take_str(strength, "level"), chart.strength_analysis.level),
        details=or_default(take_str(strength, "details"), chart.strength_analysis.details),
    )

    five = or_default(take_object(analysis, "fiveElementsAnalysis"), {})
    five_elements = FiveElementsAnalysis(
        personality=or_default(take_str(five, "personality"), chart.five_elements_analysis.personality),
        health=or_default(take_str(five, "health"), chart.five_elements_analysis.health),
    )

    return replace(
        chart,
        pillars=replace(chart.pillars, **merged_pillars),
        day_master=replace(chart.day_master, strength=strength_analysis.level),
        strength_analysis=strength_analysis,
        favorable_elements=or_default(take_str_list(analysis, "favorableElements"), chart.favorable_elements),
        five_elements_analysis=five_elements,
    )


def generate_bazi_analysis(service, birth: BirthInput) -> BaziChart:
    chart = build_chart_skeleton(birth)
    prompt = build_bazi_prompt(chart)
    logger.info("请求八字解读: %s %s", chart.solar_date, chart.solar_time)
    analysis = service.generate_json(prompt, schema=BAZI_RESPONSE_SCHEMA)
    return merge_analysis(chart, analysis)
