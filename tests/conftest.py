"""Test session configuration.

Loads the project `.env` file once so tests see the same `CDC_*` settings a
developer runs the stream with; individual tests override them through
`monkeypatch`.
"""

from __future__ import annotations

import pytest
from dotenv import load_dotenv


@pytest.fixture(scope="session", autouse=True)
def _load_dotenv_for_tests() -> None:
    load_dotenv()
