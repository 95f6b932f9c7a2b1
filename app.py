from datetime import date

import PIL.Image
import plotly.graph_objects as go
import streamlit as st

from app_config import configure_logging, get_genai_client, get_google_api_key
from bazi_analysis import PILLAR_LABELS, generate_bazi_analysis
from bazi_engine import BaziChart, InvalidBirthInputError, Location, parse_birth_input
from bazi_tables import WUXING_ORDER
from floor_plan import (
    analyze_floor_plan,
    clarity_score,
    crop_image,
    draw_star_overlay,
    edit_room_image,
    image_quality_metrics,
)
from flying_stars import DIRECTION_LABELS, GRID_LAYOUT, STAR_DETAILS, generate_flying_star_analysis, year_gan_zhi
from genai_service import GenAIService
from horoscope import PERIODS, SIGN_NAMES, ZodiacSign, generate_horoscope_forecast
from store_catalog import PRODUCTS
from view_state import Status, ViewState, run_request


# ==========================================
# 0. 核心配置
# ==========================================
configure_logging()

st.set_page_config(
    page_title="玄学助手",
    layout="centered",
    initial_sidebar_state="collapsed",
    page_icon="☯",
)

st.markdown("""
    <style>
    .main { background-color: #F9F7F2; color: #292524; font-family: "PingFang SC", sans-serif; }
    .block-container { max-width: 32rem; padding-top: 1.5rem; }
    .stButton>button {
        width: 100%; border-radius: 999px; background-color: #78350f; color: white;
        height: 3em; font-weight: bold; border: none; letter-spacing: 2px;
    }
    .stButton>button:hover { background-color: #92400e; }
    .pillar-card {
        background-color: #fff; padding: 12px; border: 1px solid #e7e5e4; border-radius: 12px;
        text-align: center; font-family: "Songti SC", "SimSun", serif;
    }
    .pillar-card .gz { font-size: 1.8em; font-weight: bold; }
    .star-cell {
        border: 1px solid #d6d3d1; border-radius: 8px; padding: 8px; text-align: center; background: #fff;
    }
    .star-cell .num { font-size: 1.6em; font-weight: bold; color: #b45309; }
    @media (max-width: 600px) {
        .stButton>button { height: 3.2em; }
        div[data-testid="stHorizontalBlock"] { gap: 6px; }
    }
    </style>
    """, unsafe_allow_html=True)

# ==========================================
# 1. 环境与 API 配置
# ==========================================
def _get_service():
    if "genai_service" not in st.session_state:
        client = get_genai_client(get_google_api_key())
        st.session_state["genai_service"] = GenAIService(client)
    return st.session_state["genai_service"]


def _view_state(key: str) -> ViewState:
    if key not in st.session_state:
        st.session_state[key] = ViewState()
    return st.session_state[key]


def _set_view_state(key: str, state: ViewState) -> None:
    st.session_state[key] = state


def _submit(key: str, action, spinner: str) -> ViewState:
    def _with_service():
        return action(_get_service())

    with st.spinner(spinner):
        return run_request(_view_state(key), _with_service, on_change=lambda s: _set_view_state(key, s))


def _show_failure(state: ViewState, message: str) -> None:
    if state.status != Status.FAILED:
        return
    if state.error and "API key" in state.error:
        st.error("未检测到 Google API Key：请在 `.streamlit/secrets.toml` 或环境变量中设置 `GOOGLE_API_KEY`。")
    else:
        st.error(f"{message}: {state.error}")


if not get_google_api_key():
    st.warning("未检测到 Google API Key：排盘解读、飞星、星座与 AI 设计功能暂不可用。")


# ==========================================
# 2. 八字排盘
# ==========================================
def _render_pillars(chart: BaziChart) -> None:
    cols = st.columns(4, gap="small")
    for col, (key, pillar) in zip(cols, chart.pillars.items()):
        with col:
            if pillar is None:
                st.markdown(
                    f'<div class="pillar-card"><div>{PILLAR_LABELS[key]}</div><div class="gz">？</div><div>时辰不详</div></div>',
                    unsafe_allow_html=True,
                )
                continue
            hidden = " ".join(f"{h.char}{h.element}·{h.ten_god}" for h in pillar.zhi.hidden)
            shen_sha = "、".join(pillar.shen_sha) or "—"
            void = "（空亡）" if pillar.kong_wang else ""
            st.markdown(
                f'<div class="pillar-card"><div>{PILLAR_LABELS[key]}</div>'
                f'<div>{"日主" if key == "day" else pillar.gan.ten_god}</div>'
                f'<div class="gz">{pillar.gan.char}<br>{pillar.zhi.char}</div>'
                f"<div>{pillar.gan.element}{pillar.zhi.element}{void}</div>"
                f"<div><small>{hidden}</small></div>"
                f"<div><small>{pillar.na_yin}</small></div>"
                f"<div><small>{pillar.life_stage or '—'}</small></div>"
                f"<div><small>{shen_sha}</small></div></div>",
                unsafe_allow_html=True,
            )


ELEMENT_COLORS = {"金": "#a8a29e", "木": "#15803d", "水": "#1d4ed8", "火": "#b91c1c", "土": "#a16207"}


def _element_figure(counts: dict) -> go.Figure:
    fig = go.Figure(
        data=[
            go.Bar(
                x=list(WUXING_ORDER),
                y=[counts.get(elem, 0) for elem in WUXING_ORDER],
                marker_color=[ELEMENT_COLORS[elem] for elem in WUXING_ORDER],
                showlegend=False,
            )
        ]
    )
    fig.update_layout(
        height=240,
        margin=dict(l=10, r=10, t=10, b=10),
        yaxis=dict(range=[0, max(4, max(counts.values(), default=0))], dtick=1),
    )
    return fig


def _render_chart(chart: BaziChart) -> None:
    st.caption(
        f"公历 {chart.solar_date} {chart.solar_time}｜农历 {chart.lunar_date_string}"
        + (f"｜真太阳时校正 {chart.time_correction_minutes:+.1f} 分钟" if chart.time_correction_minutes else "")
    )
    _render_pillars(chart)

    st.subheader("五行统计")
    count_cols = st.columns(5)
    for col, elem in zip(count_cols, WUXING_ORDER):
        col.metric(elem, chart.element_counts.get(elem, 0))
    st.plotly_chart(_element_figure(chart.element_counts), use_container_width=True)

    st.subheader("日主强弱")
    strength = chart.strength_analysis
    st.write(f"日主 **{chart.day_master.char}{chart.day_master.element}**｜{strength.level or '未判定'}")
    st.progress(min(max(float(strength.score or 0) / 100.0, 0.0), 1.0))
    if strength.details:
        st.write(strength.details)
    if chart.favorable_elements:
        st.write("喜用神：" + "、".join(chart.favorable_elements))

    five = chart.five_elements_analysis
    if five.personality or five.health:
        st.subheader("性格与健康")
        if five.personality:
            st.markdown(f"**性格**：{five.personality}")
        if five.health:
            st.markdown(f"**健康**：{five.health}")

    if chart.da_yun:
        st.subheader("大运流年")
        labels = [f"{dy.start_age}岁 {dy.gan_zhi}（{dy.start_year}-{dy.end_year}）" for dy in chart.da_yun]
        picked = st.selectbox("选择大运", range(len(labels)), format_func=lambda i: labels[i])
        dy = chart.da_yun[picked]
        st.write(f"大运 {dy.gan_zhi}｜{dy.gan.ten_god}｜{dy.gan.element}{dy.zhi.element}")
        st.dataframe(
            [
                {"年份": ln.year, "年龄": ln.age, "干支": ln.gan_zhi, "十神": ln.gan.ten_god, "五行": ln.gan.element + ln.zhi.element}
                for ln in dy.liu_nian
            ],
            hide_index=True,
            use_container_width=True,
        )

    with st.expander("原始数据 (JSON)", expanded=False):
        st.json(chart.to_dict())


def render_bazi_tab() -> None:
    state = _view_state("bazi_state")
    with st.container(border=True):
        cols = st.columns(2, gap="small")
        with cols[0]:
            calendar_type = st.radio("历法", ["Solar", "Lunar"], format_func=lambda v: "公历" if v == "Solar" else "农历", horizontal=True)
        with cols[1]:
            gender = st.radio("性别", ["Male", "Female"], format_func=lambda v: "男" if v == "Male" else "女", horizontal=True)

        cols = st.columns(2, gap="small")
        with cols[0]:
            birth_date = st.text_input("出生日期 (YYYY-MM-DD)", value="1990-06-15")
            leap_month = calendar_type == "Lunar" and st.checkbox("闰月", value=False)
        with cols[1]:
            birth_time = st.text_input("出生时间 (HH:MM)", value="14:30")
            time_unknown = st.checkbox("时辰不详", value=False)

        cols = st.columns(3, gap="small")
        province = cols[0].text_input("省份", value="北京")
        city = cols[1].text_input("城市", value="北京")
        district = cols[2].text_input("区县", value="")

    if st.button("开始排盘", disabled=not state.can_submit, key="bazi_submit"):
        try:
            birth = parse_birth_input(
                birth_date,
                birth_time,
                time_unknown=time_unknown,
                location=Location(province=province, city=city, district=district),
                calendar_type=calendar_type,
                gender=gender,
                leap_month=leap_month,
            )
        except InvalidBirthInputError as e:
            st.error(f"输入有误：{e}")
            return
        state = _submit("bazi_state", lambda service: generate_bazi_analysis(service, birth), "正在排盘并生成解读…")

    _show_failure(state, "排盘解读失败，请稍后重试")
    if state.data is not None:
        _render_chart(state.data)


# ==========================================
# 3. 玄空飞星
# ==========================================
def _render_star_grid(stars: dict) -> None:
    for row in range(3):
        cols = st.columns(3, gap="small")
        for col, (key, label, _abbr) in zip(cols, GRID_LAYOUT[row * 3 : row * 3 + 3]):
            star = stars.get(key, 0)
            info = STAR_DETAILS.get(star, {"name": "", "type": ""})
            col.markdown(
                f'<div class="star-cell"><div>{label}</div><div class="num">{star}</div>'
                f'<div><small>{info["name"]}</small></div><div><small>{info["type"]}</small></div></div>',
                unsafe_allow_html=True,
            )


def render_stars_tab() -> None:
    state = _view_state("stars_state")
    year = st.number_input("年份", min_value=1900, max_value=2100, value=date.today().year, step=1)
    st.caption(f"{int(year)} {year_gan_zhi(int(year))}年")

    if st.button("生成飞星解读", disabled=not state.can_submit, key="stars_submit"):
        state = _submit("stars_state", lambda service: generate_flying_star_analysis(service, int(year)), "正在推算九宫飞星…")

    _show_failure(state, "飞星解读失败")
    data = state.data
    if data is None or data.year != int(year):
        return

    _render_star_grid(data.stars)
    picked = st.selectbox("查看宫位", [key for key, _, _ in GRID_LAYOUT], format_func=lambda k: DIRECTION_LABELS[k])
    star = data.star_at(picked)
    info = STAR_DETAILS.get(star)
    if info:
        st.info(f"{DIRECTION_LABELS[picked]}：{info['name']}（{info['type']}）\n\n{info['desc']}")

    if data.wealth_direction:
        st.write(f"**财位**：{data.wealth_direction}")
    if data.advice:
        st.markdown(f"**年度建议**：{data.advice}")
    if data.cures:
        st.markdown(f"**化解方法**：{data.cures}")

    st.divider()
    st.subheader("户型图叠加九宫")
    file_plan = st.file_uploader("上传户型图", type=["jpg", "png", "jpeg", "webp"], key="floor_plan")
    if not file_plan:
        return
    plan_state = _view_state("plan_state").bind(file_plan.file_id)
    _set_view_state("plan_state", plan_state)
    plan_image = PIL.Image.open(file_plan)
    score = clarity_score(image_quality_metrics(plan_image))
    if score < 40:
        st.warning(f"户型图清晰度偏低（{score}/100），识别范围可能不准。")

    if st.button("识别室内范围", disabled=not plan_state.can_submit, key="plan_submit"):
        plan_state = _submit("plan_state", lambda service: analyze_floor_plan(service, plan_image), "正在识别户型图…")
    _show_failure(plan_state, "户型图识别失败")

    if plan_state.data is not None:
        st.image(draw_star_overlay(crop_image(plan_image, plan_state.data), data.stars), use_container_width=True)
    else:
        st.image(plan_image, use_container_width=True)


# ==========================================
# 4. 星座运势
# ==========================================
def render_horoscope_tab() -> None:
    state = _view_state("horoscope_state")
    sign = st.selectbox("选择星座", list(ZodiacSign), format_func=lambda s: SIGN_NAMES[s])
    period = st.radio("周期", list(PERIODS), format_func=lambda p: PERIODS[p], horizontal=True)

    if st.button(f"查看{SIGN_NAMES[sign]}{PERIODS[period]}运势", disabled=not state.can_submit, key="horoscope_submit"):
        state = _submit("horoscope_state", lambda service: generate_horoscope_forecast(service, sign, period), "正在链接星象能量…")

    _show_failure(state, "获取运势失败")
    forecast = state.data
    if forecast is None:
        return
    with st.container(border=True):
        st.subheader(f"{forecast.sign}（{forecast.date_range}）")
        st.write(forecast.forecast or "暂无数据")
        cols = st.columns(2)
        cols[0].metric("幸运色", forecast.lucky_color or "—")
        cols[1].metric("幸运数字", forecast.lucky_number or "—")


# ==========================================
# 5. AI 设计
# ==========================================
def render_design_tab() -> None:
    state = _view_state("design_state")
    file_room = st.file_uploader("上传房间照片", type=["jpg", "png", "jpeg", "webp"], key="room")
    instruction = st.text_area("修改指令", placeholder="例如：在西北角摆放一盆绿植，整体改为原木风格")
    if not file_room:
        return
    room_image = PIL.Image.open(file_room)
    st.image(room_image, caption="原图", use_container_width=True)

    if st.button("生成效果图", disabled=not state.can_submit, key="design_submit"):
        if not instruction.strip():
            st.error("请输入修改指令。")
            return
        state = _submit("design_state", lambda service: edit_room_image(service, room_image, instruction), "正在生成效果图…")

    if state.status == Status.FAILED:
        st.error("图片生成失败，请更换提示词或图片重试。")
    if state.data is not None:
        st.image(state.data, caption="效果图", use_container_width=True)


# ==========================================
# 6. 商城
# ==========================================
def render_store_tab() -> None:
    for start in range(0, len(PRODUCTS), 2):
        cols = st.columns(2, gap="small")
        for col, product in zip(cols, PRODUCTS[start : start + 2]):
            with col, st.container(border=True):
                st.image(product.image, use_container_width=True)
                st.markdown(f"**{product.name}**")
                st.caption(product.description)
                st.write(product.price_label)


# ==========================================
# 7. UI 界面
# ==========================================
st.title("玄学助手")

tab_bazi, tab_stars, tab_horoscope, tab_design, tab_store = st.tabs(["八字", "玄空飞星", "星座", "AI 设计", "商城"])
with tab_bazi:
    render_bazi_tab()
with tab_stars:
    render_stars_tab()
with tab_horoscope:
    render_horoscope_tab()
with tab_design:
    render_design_tab()
with tab_store:
    render_store_tab()
