"""Tests for detail request construction."""
import json
from urllib.parse import parse_qs, urlsplit

import pytest

from services.field_mapping.builder import (
    build_detail_request,
    build_detail_url,
    format_query_value,
    replay_headers,
    resolve_mapped_values,
)
from services.field_mapping.models import CapturedRequest, SearchResult

from conftest import API_ORIGIN, query_param


@pytest.fixture
def user_mapping():
    return {"userId": [SearchResult(value="u1", path="userId")]}


class TestBuildDetailRequest:
    """Test build_detail_request."""

    def test_get_sets_query_parameter_from_current_item(self, detail_request, user_mapping, sink_logger):
        log, _ = sink_logger

        request = build_detail_request({"id": 2, "userId": "u2"}, user_mapping, detail_request, log)

        assert request.method == "GET"
        assert request.url == f"{API_ORIGIN}/user/detail?userId=u2"
        assert request.body is None

    def test_missing_value_is_omitted(self, detail_request, user_mapping, sink_logger):
        log, sink = sink_logger

        request = build_detail_request({"id": 3}, user_mapping, detail_request, log)

        assert request.url == f"{API_ORIGIN}/user/detail"
        missing = sink.query(tags=["value-missing"])
        assert missing and missing[0].context["missing"] == ["userId"]

    def test_falls_back_to_next_candidate_path(self, detail_request, sink_logger):
        log, _ = sink_logger
        mapping = {
            "userId": [
                SearchResult(value="u1", path="profile.uid"),
                SearchResult(value="u1", path="owner.userId"),
            ]
        }

        request = build_detail_request({"owner": {"userId": "u7"}}, mapping, detail_request, log)

        assert query_param(request.url, "userId") == "u7"

    def test_value_found_deeper_in_item(self, detail_request, user_mapping, sink_logger):
        log, _ = sink_logger

        request = build_detail_request({"meta": {"userId": "u5"}}, user_mapping, detail_request, log)

        assert query_param(request.url, "userId") == "u5"

    def test_existing_query_parameters_preserved(self, user_mapping, sink_logger):
        log, _ = sink_logger
        template = CapturedRequest(origin=API_ORIGIN, path="/user/detail?lang=en&userId=old", request_body='{"userId": ""}')

        request = build_detail_request({"userId": "u2"}, user_mapping, template, log)

        assert query_param(request.url, "lang") == "en"
        assert query_param(request.url, "userId") == "u2"

    def test_repeated_query_parameters_preserved(self, user_mapping, sink_logger):
        log, _ = sink_logger
        template = CapturedRequest(origin=API_ORIGIN, path="/user/detail?tag=a&tag=b", request_body='{"userId": ""}')

        request = build_detail_request({"userId": "u2"}, user_mapping, template, log)

        assert request.url == f"{API_ORIGIN}/user/detail?tag=a&tag=b&userId=u2"
        assert parse_qs(urlsplit(request.url).query)["tag"] == ["a", "b"]

    def test_post_substitutes_into_body(self, user_mapping, sink_logger):
        log, _ = sink_logger
        template = CapturedRequest(
            origin=API_ORIGIN,
            path="/user/detail",
            method="POST",
            request_body=json.dumps({"userId": "", "lang": "en"}),
        )

        request = build_detail_request({"userId": "u2"}, user_mapping, template, log)

        assert request.method == "POST"
        assert request.url == f"{API_ORIGIN}/user/detail"
        assert json.loads(request.body) == {"userId": "u2", "lang": "en"}

    def test_post_keeps_template_value_when_item_lacks_field(self, user_mapping, sink_logger):
        log, _ = sink_logger
        template = CapturedRequest(origin=API_ORIGIN, path="/d", method="PUT", request_body='{"userId": "keep"}')

        request = build_detail_request({"other": 1}, user_mapping, template, log)

        assert json.loads(request.body) == {"userId": "keep"}

    def test_headers_and_cookies_carried_over(self, user_mapping, sink_logger):
        log, _ = sink_logger
        template = CapturedRequest(
            origin=API_ORIGIN,
            path="/d",
            request_body='{"userId": ""}',
            request_headers={"Authorization": "Bearer t", "Host": "api.example.com", "Content-Length": "10"},
            request_cookies={"session": "abc"},
        )

        request = build_detail_request({"userId": "u1"}, user_mapping, template, log)

        assert request.headers == {"Authorization": "Bearer t"}
        assert request.cookies == {"session": "abc"}


class TestHelpers:
    """Test builder helpers."""

    def test_resolve_mapped_values(self):
        mapping = {
            "a": [SearchResult(value=1, path="a")],
            "b": [SearchResult(value=2, path="x.b")],
            "c": [],
        }

        values, missing = resolve_mapped_values({"a": 10, "x": {"b": 20}}, mapping)

        assert values == {"a": 10, "b": 20}
        assert missing == ["c"]

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("u1", "u1"),
            (42, "42"),
            (True, "true"),
            (False, "false"),
            (None, ""),
            ({"a": 1}, '{"a":1}'),
            ([1, 2], "[1,2]"),
        ],
    )
    def test_format_query_value(self, value, expected):
        assert format_query_value(value) == expected

    def test_build_detail_url_without_values(self):
        assert build_detail_url(f"{API_ORIGIN}/d", {}) == f"{API_ORIGIN}/d"

    def test_build_detail_url_encodes_values(self):
        url = build_detail_url(f"{API_ORIGIN}/d", {"q": "a b&c"})
        assert query_param(url, "q") == "a b&c"

    def test_replay_headers_drops_transport_headers(self):
        headers = {":authority": "x", "Cookie": "a=b", "Accept-Encoding": "gzip", "X-Token": "t"}
        assert replay_headers(headers) == {"X-Token": "t"}
