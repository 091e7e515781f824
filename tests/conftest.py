"""Pytest configuration and fixtures."""
import asyncio
import itertools
import json
import logging
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import parse_qs, urlsplit

import pytest

from services.field_mapping.models import AnalysisConfig, CapturedRequest, ListConfig
from services.field_mapping.orchestrator import AnalysisOrchestrator
from utils.log_sink import AnalysisLogSink

API_ORIGIN = "https://api.example.com"

_logger_ids = itertools.count(1)


class FakeSender:
    """
    In-memory HTTP collaborator.

    responder(method, url, body) returns the decoded JSON response, may be a
    coroutine function, and may raise to simulate a failed request.
    """

    def __init__(self, responder: Callable[..., Any]):
        self.responder = responder
        self.calls: List[Dict[str, Any]] = []

    async def __call__(self, method, url, headers=None, cookies=None, body=None):
        self.calls.append({"method": method, "url": url, "headers": headers, "cookies": cookies, "body": body})
        result = self.responder(method, url, body)
        if asyncio.iscoroutine(result):
            result = await result
        return result

    def urls_containing(self, fragment: str) -> List[str]:
        return [c["url"] for c in self.calls if fragment in c["url"]]


class FakeContext:
    """Stand-in for fastmcp.Context recording info/error messages."""

    def __init__(self):
        self.infos: List[str] = []
        self.errors: List[str] = []

    async def info(self, message: str) -> None:
        self.infos.append(message)

    async def error(self, message: str) -> None:
        self.errors.append(message)


def query_param(url: str, name: str) -> Optional[str]:
    values = parse_qs(urlsplit(url).query).get(name)
    return values[0] if values else None


@pytest.fixture
def list_request() -> CapturedRequest:
    return CapturedRequest(origin=API_ORIGIN, path="/users", method="GET")


@pytest.fixture
def detail_request() -> CapturedRequest:
    return CapturedRequest(
        origin=API_ORIGIN,
        path="/user/detail",
        method="GET",
        request_body=json.dumps({"userId": ""}),
        request_headers={"Authorization": "Bearer token", "Content-Length": "15"},
    )


@pytest.fixture
def list_response() -> Dict[str, Any]:
    return {"data": {"list": [{"id": 1, "userId": "u1"}, {"id": 2, "userId": "u2"}]}}


@pytest.fixture
def sink_logger():
    """An isolated logger with an AnalysisLogSink attached; yields (logger, sink)."""
    log = logging.getLogger(f"tests.analysis.{next(_logger_ids)}")
    log.setLevel(logging.DEBUG)
    log.propagate = False
    sink = AnalysisLogSink(max_entries=500)
    log.addHandler(sink)
    yield log, sink
    log.removeHandler(sink)


@pytest.fixture
def make_orchestrator(list_request, detail_request, sink_logger):
    """Build an orchestrator wired to a FakeSender with list/detail requests configured."""
    log, _ = sink_logger

    def factory(responder, search_field="status", target_value="active", max_concurrency=5, configure=True):
        sender = FakeSender(responder)
        orchestrator = AnalysisOrchestrator(
            sender,
            config=AnalysisConfig(
                search_field=search_field,
                target_value=target_value,
                max_concurrency=max_concurrency,
            ),
            list_config=ListConfig(list_path="data.list"),
            log=log,
        )
        if configure:
            orchestrator.set_list_request(list_request)
            orchestrator.set_detail_request(detail_request)
        return orchestrator, sender

    return factory
