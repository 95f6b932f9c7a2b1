# -*- coding: utf-8 -*-
"""
排盘引擎测试（使用真实 lunar_python / borax）
"""

from datetime import date

import pytest

from bazi_engine import (
    DEFAULT_HOUR,
    InvalidBirthInputError,
    Location,
    build_chart_skeleton,
    build_pillar,
    longitude_for,
    lmt_correction,
    parse_birth_input,
    true_solar_datetime,
)


class TestParseBirthInput:
    """输入解析"""

    def test_solar_input(self):
        birth = parse_birth_input("1990-06-15", "14:30")
        assert birth.solar_date == date(1990, 6, 15)
        assert (birth.hour, birth.minute) == (14, 30)
        assert birth.time_unknown is False

    def test_unknown_time_uses_noon(self):
        birth = parse_birth_input("1990-06-15", "14:30", time_unknown=True)
        assert (birth.hour, birth.minute) == (DEFAULT_HOUR, 0)
        assert birth.time_unknown is True

    def test_empty_time_counts_as_unknown(self):
        assert parse_birth_input("1990-06-15", "").time_unknown is True

    @pytest.mark.parametrize("date_str", ["1990/06/15", "15-06-1990", "", "1990-02-30", "abc"])
    def test_bad_date(self, date_str):
        with pytest.raises(InvalidBirthInputError):
            parse_birth_input(date_str, "12:00")

    @pytest.mark.parametrize(
        "date_str, calendar_type",
        [
            ("0001-01-01", "Solar"),
            ("9999-12-31", "Solar"),
            ("1899-12-31", "Solar"),
            ("2101-01-01", "Solar"),
            ("1850-01-01", "Lunar"),
        ],
    )
    def test_year_out_of_calendar_range(self, date_str, calendar_type):
        with pytest.raises(InvalidBirthInputError, match="1900-2100"):
            parse_birth_input(date_str, "00:05", location=Location(city="北京"), calendar_type=calendar_type)

    def test_year_range_bounds_accepted(self):
        assert parse_birth_input("1900-06-01", "12:00").solar_date == date(1900, 6, 1)
        assert parse_birth_input("2100-06-01", "12:00").solar_date == date(2100, 6, 1)

    @pytest.mark.parametrize("time_str", ["25:00", "12:60", "1230", "noon"])
    def test_bad_time(self, time_str):
        with pytest.raises(InvalidBirthInputError):
            parse_birth_input("1990-06-15", time_str)

    def test_bad_enum_values(self):
        with pytest.raises(InvalidBirthInputError):
            parse_birth_input("1990-06-15", "12:00", calendar_type="Julian")
        with pytest.raises(InvalidBirthInputError):
            parse_birth_input("1990-06-15", "12:00", gender="Other")

    def test_lunar_new_year_converts_to_solar(self):
        birth = parse_birth_input("2000-01-01", "08:00", calendar_type="Lunar")
        assert birth.solar_date == date(2000, 2, 5)
        assert birth.calendar_type == "Lunar"

    @pytest.mark.parametrize("date_str", ["2000-13-01", "2000-01-31"])
    def test_invalid_lunar_date(self, date_str):
        with pytest.raises(InvalidBirthInputError):
            parse_birth_input(date_str, "08:00", calendar_type="Lunar")

    def test_error_is_value_error(self):
        assert issubclass(InvalidBirthInputError, ValueError)


class TestTrueSolarTime:
    """真太阳时校正"""

    def test_longitude_lookup(self):
        assert longitude_for(Location(city="北京")) == pytest.approx(116.40)
        assert longitude_for(Location(province="四川省", city="绵阳")) == pytest.approx(104.06)
        assert longitude_for(Location(province="上海市")) == pytest.approx(121.47)
        assert longitude_for(Location(province="新疆维吾尔自治区")) == pytest.approx(87.62)
        assert longitude_for(Location()) == pytest.approx(120.0)

    def test_lmt_correction(self):
        assert lmt_correction(120.0) == 0
        assert lmt_correction(116.40) == pytest.approx(-14.4)

    def test_adjusted_clock(self, beijing_birth):
        solar_dt, correction = true_solar_datetime(beijing_birth)
        assert correction == pytest.approx(-14.4)
        assert (solar_dt.hour, solar_dt.minute) == (14, 15)

    def test_unknown_time_is_not_adjusted(self, beijing_birth_no_time):
        solar_dt, correction = true_solar_datetime(beijing_birth_no_time)
        assert correction == 0
        assert (solar_dt.hour, solar_dt.minute) == (12, 0)


class TestChartSkeleton:
    """确定性排盘"""

    def test_pillars(self, beijing_birth):
        chart = build_chart_skeleton(beijing_birth)
        assert chart.pillars.year.gan_zhi == "庚午"
        assert chart.pillars.month.gan_zhi == "壬午"
        assert chart.pillars.day.gan_zhi == "辛亥"
        assert chart.pillars.time.gan_zhi == "乙未"
        assert chart.day_master.char == "辛"
        assert chart.day_master.element == "金"

    def test_repeatable(self, beijing_birth):
        first = build_chart_skeleton(beijing_birth)
        second = build_chart_skeleton(beijing_birth)
        assert first.to_dict() == second.to_dict()

    def test_element_counts(self, beijing_birth):
        chart = build_chart_skeleton(beijing_birth)
        assert chart.element_counts == {"金": 2, "木": 1, "水": 2, "火": 2, "土": 1}
        assert sum(chart.element_counts.values()) == 8

    def test_ten_gods_and_hidden_stems(self, beijing_birth):
        chart = build_chart_skeleton(beijing_birth)
        year = chart.pillars.year
        assert year.gan.ten_god == "劫财"
        assert [h.char for h in year.zhi.hidden] == ["丁", "己"]
        assert [h.ten_god for h in year.zhi.hidden] == ["七杀", "偏印"]
        assert chart.pillars.day.gan.ten_god == "比肩"

    def test_ai_fields_start_empty(self, beijing_birth):
        chart = build_chart_skeleton(beijing_birth)
        for pillar in chart.pillars.known():
            assert pillar.life_stage == ""
            assert pillar.shen_sha == ()
        assert chart.strength_analysis.level == ""
        assert chart.favorable_elements == ()
        assert chart.five_elements_analysis.personality == ""
        assert chart.day_master.strength == ""

    def test_kong_wang_from_day_xun(self, beijing_birth):
        # 辛亥日属甲辰旬，寅卯空，四柱均不落空
        chart = build_chart_skeleton(beijing_birth)
        assert [p.kong_wang for p in chart.pillars.known()] == [False, False, False, False]

    def test_build_pillar_marks_void_branch(self):
        pillar = build_pillar("辛", "丙午", "天河水", void_branches="午未")
        assert pillar.kong_wang is True
        assert pillar.gan.ten_god == "正官"
        assert build_pillar("辛", "甲寅", "大溪水", void_branches="午未").kong_wang is False
        assert build_pillar("辛", None, "") is None

    def test_unknown_time_drops_hour_pillar(self, beijing_birth_no_time):
        chart = build_chart_skeleton(beijing_birth_no_time)
        assert chart.pillars.time is None
        assert chart.solar_time == "Unknown"
        assert len(chart.pillars.known()) == 3
        assert sum(chart.element_counts.values()) == 6
        assert chart.element_counts["木"] == 0
        assert chart.to_dict()["pillars"]["time"] is None

    def test_reports_entered_clock(self, beijing_birth):
        chart = build_chart_skeleton(beijing_birth)
        assert chart.solar_time == "14:30"
        assert chart.solar_date == "1990-06-15"
        assert chart.time_correction_minutes == pytest.approx(-14.4)

    def test_correction_across_midnight_keeps_birth_date(self):
        # 新疆校正约 -129.5 分钟，00:30 落到前一日 22:20 亥时
        birth = parse_birth_input("1990-06-15", "00:30", location=Location(province="新疆"))
        chart = build_chart_skeleton(birth)

        assert chart.solar_date == "1990-06-15"
        assert chart.solar_time == "0:30"
        assert chart.time_correction_minutes == pytest.approx(-129.52)
        assert chart.pillars.day.gan_zhi == "庚戌"
        assert chart.pillars.time.zhi.char == "亥"

    def test_da_yun_sequence(self, beijing_birth):
        chart = build_chart_skeleton(beijing_birth)
        assert len(chart.da_yun) == 8
        # 阳年男命顺排，月柱壬午之后为癸未
        assert chart.da_yun[0].gan_zhi == "癸未"
        assert chart.da_yun[1].gan_zhi == "甲申"

        start_years = [dy.start_year for dy in chart.da_yun]
        assert start_years == sorted(set(start_years))
        for dy in chart.da_yun:
            years = [ln.year for ln in dy.liu_nian]
            assert years, dy.gan_zhi
            assert all(b > a for a, b in zip(years, years[1:]))
            assert dy.gan.ten_god
            assert dy.zhi.hidden == ()

    def test_female_runs_backwards(self):
        birth = parse_birth_input("1990-06-15", "14:30", location=Location(city="北京"), gender="Female")
        chart = build_chart_skeleton(birth)
        assert chart.da_yun[0].gan_zhi == "辛巳"

    def test_to_dict_shape(self, beijing_birth):
        data = build_chart_skeleton(beijing_birth).to_dict()
        assert set(data["pillars"]) == {"year", "month", "day", "time"}
        assert data["pillars"]["year"]["gan"] == {"char": "庚", "element": "金", "tenGod": "劫财"}
        assert data["daYun"][0]["liuNian"][0].keys() >= {"year", "age", "ganZhi", "gan", "zhi"}
        assert data["location"] == {"province": "北京", "city": "北京", "district": ""}
