# -*- coding: utf-8 -*-
"""
Pytest 全局配置

提供：
- 假的 Gemini client（记录调用、返回预设内容）
- 常用出生信息
"""

import json
import os
import sys
from io import BytesIO
from types import SimpleNamespace

import pytest

# 添加项目根目录到路径
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, project_root)

from bazi_engine import Location, parse_birth_input  # noqa: E402
from genai_service import GenAIService  # noqa: E402


def text_response(payload) -> SimpleNamespace:
    text = payload if isinstance(payload, str) or payload is None else json.dumps(payload, ensure_ascii=False)
    return SimpleNamespace(text=text, candidates=[])


def image_response(data: bytes, mime_type: str = "image/png") -> SimpleNamespace:
    part = SimpleNamespace(text=None, inline_data=SimpleNamespace(data=data, mime_type=mime_type))
    candidate = SimpleNamespace(content=SimpleNamespace(parts=[part]), finish_reason="STOP")
    return SimpleNamespace(text=None, candidates=[candidate])


class FakeModels:
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def generate_content(self, model, contents, config=None):
        self.calls.append({"model": model, "contents": contents, "config": config})
        if not self.responses:
            raise AssertionError("unexpected generate_content call")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class FakeClient:
    def __init__(self, *responses):
        self.models = FakeModels(responses)

    @property
    def calls(self):
        return self.models.calls


@pytest.fixture
def make_service():
    """按给定响应构造 GenAIService，返回 (service, client)"""

    def _make(*responses):
        client = FakeClient(*responses)
        return GenAIService(client, text_model="test-text", image_model="test-image"), client

    return _make


@pytest.fixture
def png_bytes():
    from PIL import Image

    buffer = BytesIO()
    Image.new("RGB", (8, 6), (200, 120, 40)).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def beijing_birth():
    return parse_birth_input(
        "1990-06-15",
        "14:30",
        location=Location(province="北京", city="北京"),
        calendar_type="Solar",
        gender="Male",
    )


@pytest.fixture
def beijing_birth_no_time():
    return parse_birth_input(
        "1990-06-15",
        None,
        time_unknown=True,
        location=Location(province="北京", city="北京"),
        gender="Male",
    )
