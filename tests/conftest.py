"""
Shared pytest fixtures for the portfolio_report test suite.
All fixtures use mock mode — no Azure credentials or network required.
Factory helpers live in tests/factories.py so they can be imported
directly by test modules as well as being used here.
"""
import sys
import os

_tests_dir = os.path.dirname(__file__)
_src_dir   = os.path.join(_tests_dir, "..", "src")
for _p in (_tests_dir, _src_dir):
    if _p not in sys.path:
        sys.path.insert(0, _p)

# Force mock mode — never call Azure during tests
os.environ["FORCE_MOCK_MODE"] = "true"
os.environ["PORTFOLIO_FETCH_IMAGES"] = "false"
os.environ.setdefault("AZURE_OPENAI_ENDPOINT", "<placeholder>")
os.environ.setdefault("AZURE_OPENAI_API_KEY",  "<placeholder>")


import pytest

from factories import make_entry, make_payload, make_settings

from portfolio_report.pipeline import build_report


# ─── pytest fixtures ──────────────────────────────────────────────────────────

@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def payload():
    return make_payload()


@pytest.fixture
def report(payload, settings):
    return build_report(payload, settings=settings)


@pytest.fixture
def ava_payload():
    return {
        "childName": "Ava",
        "yearLevel": "Stage 2",
        "evidenceEntries": '[{"Title":"Trip","Date":"2025-03-01","Learning Areas":"Science"}]',
    }


@pytest.fixture
def entry():
    return make_entry()
