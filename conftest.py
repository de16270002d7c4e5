"""Pytest hooks and shared fixtures for the report import pipeline."""

import shutil

import pytest

from pipeline.database import ReportDatabase
from pipeline.pdf_text import ExtractionError


SAMPLE_REPORT_TEXT = """KET Writing 报告 — 李雷 · My Weekend
学生: 李雷
主题: My Weekend
任务类型: Email
字数: 约 38 词
日期: 2024-05-12

Content                      4 / 5
Communicative Achievement    4/5
Organisation                 3/5
Language                     4/5

剑桥英语量表分数 Cambridge English Scale: 140
对应 CEFR 等级: A2
一句整体评价
内容完整，表达清楚，注意连接词的使用。
"""


def pytest_configure(config):
    """Remind that the default extractor needs poppler's pdftotext."""
    if shutil.which("pdftotext") is None:
        print(
            "\nTip: pdftotext is not on PATH; set PDF_TEXT_PROVIDER=pymupdf to import without poppler.\n",
            end="",
        )


class FakeExtractor:
    """Returns canned text per path; an ExtractionError value is raised instead."""

    def __init__(self, texts: dict, default: str = SAMPLE_REPORT_TEXT):
        self.texts = texts
        self.default = default
        self.calls = []

    def extract_text(self, pdf_path: str) -> str:
        self.calls.append(pdf_path)
        value = self.texts.get(pdf_path, self.default)
        if isinstance(value, Exception):
            raise value
        return value


@pytest.fixture
def sample_report_text():
    return SAMPLE_REPORT_TEXT


@pytest.fixture
def store(tmp_path):
    return ReportDatabase(str(tmp_path / "reports.sqlite"))


@pytest.fixture
def fake_extractor_factory():
    return FakeExtractor


@pytest.fixture
def tool_failure():
    return ExtractionError("pdftotext failed: Syntax Error: Couldn't find trailer dictionary")
