"""Shared fixtures: temporary SQLite storage and stub HTTP sessions."""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any, Callable, Dict, List

import pytest
import requests

from fx_fallback.db.sqlite_backend import SQLiteRateRepository
from fx_fallback.utils import currency_mapper
from fx_fallback.utils.cache_utils import clear_all_caches

Handler = Callable[[str, Dict[str, Any], Dict[str, str]], Any]


class StubResponse:
    def __init__(self, payload: Any = None, *, status_code: int = 200, invalid_json: bool = False):
        self.payload = payload
        self.status_code = status_code
        self.invalid_json = invalid_json

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Server Error", response=None)

    def json(self) -> Any:
        if self.invalid_json:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return copy.deepcopy(self.payload)


class StubSession:
    """Minimal ``requests.Session`` double routing every GET to ``handler``."""

    def __init__(self, handler: Handler) -> None:
        self.handler = handler
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    def get(
        self,
        url: str,
        params: Dict[str, Any] | None = None,
        headers: Dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> StubResponse:
        call = {"url": url, "params": dict(params or {}), "headers": dict(headers or {})}
        call["timeout"] = timeout
        self.calls.append(call)
        result = self.handler(url, call["params"], call["headers"])
        if isinstance(result, BaseException):
            raise result
        if isinstance(result, StubResponse):
            return result
        return StubResponse(result)

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def make_session() -> Callable[[Handler], StubSession]:
    return StubSession


@pytest.fixture
def stub_response() -> type[StubResponse]:
    return StubResponse


@pytest.fixture
def repository(tmp_path: Path) -> SQLiteRateRepository:
    repo = SQLiteRateRepository(tmp_path / "rates.db")
    yield repo
    repo.close()


@pytest.fixture(autouse=True)
def _isolate_process_state() -> None:
    overrides = dict(currency_mapper._currency_overrides)
    clear_all_caches()
    yield
    currency_mapper._currency_overrides.clear()
    currency_mapper._currency_overrides.update(overrides)
    clear_all_caches()
