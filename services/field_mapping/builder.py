"""
Detail request construction.

For each list item, the mapped keys are re-resolved against that item (the
sample-derived paths may not exist in every item) and the found values are
placed in the query string, or in the JSON body for POST/PUT/PATCH.
"""

import json
import logging
from typing import Any, Dict, List, Tuple
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from utils.log_sink import log_extra

from .constants import SKIP_REPLAY_HEADERS, TAG_URL
from .errors import ParseError
from .analyzer import parse_template_body
from .locator import locate_field
from .models import CapturedRequest, DetailRequest, Mapping

logger = logging.getLogger(__name__)


def resolve_mapped_values(list_item: Any, mapping: Mapping) -> Tuple[Dict[str, Any], List[str]]:
    """
    Resolve every mapped key against one list item.

    Candidates are tried in their discovery order; the first path that
    resolves in this item supplies the value.

    Returns:
        (values by key, keys that could not be resolved)
    """
    values: Dict[str, Any] = {}
    missing: List[str] = []
    for key, candidates in (mapping or {}).items():
        for candidate in candidates:
            found = locate_field(list_item, candidate.path)
            if found is not None:
                values[key] = found.value
                break
        else:
            missing.append(key)
    return values, missing


def format_query_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    return str(value)


def replay_headers(headers: Dict[str, str]) -> Dict[str, str]:
    """Drop transport-managed headers from a captured header set."""
    return {
        name: value
        for name, value in (headers or {}).items()
        if name and name.lower() not in SKIP_REPLAY_HEADERS
    }


def build_detail_url(base_url: str, values: Dict[str, Any]) -> str:
    """
    Set values as query parameters on base_url, keeping its other parameters.

    Existing pairs keep their order and repeats; only pairs whose key is in
    values are replaced, and the new pairs go at the end.
    """
    parts = urlsplit(base_url)
    pairs = [
        (key, value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
        if key not in values
    ]
    pairs.extend((key, format_query_value(value)) for key, value in values.items())
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(pairs), parts.fragment))


def build_detail_request(
    list_item: Any,
    mapping: Mapping,
    detail_template: CapturedRequest,
    log: logging.Logger = None,
) -> DetailRequest:
    """
    Build the detail request for one list item.

    Body methods keep the template URL unchanged and substitute values into a
    copy of the template's JSON body. Other methods carry the values as query
    parameters. Keys without a value in this item are left out and reported at
    debug level only.
    """
    log = log or logger
    values, missing = resolve_mapped_values(list_item, mapping)

    if missing:
        log.debug(
            "No value in list item for mapped keys: %s", ", ".join(missing),
            extra=log_extra([TAG_URL, "value-missing"], missing=missing),
        )

    method = (detail_template.method or "GET").upper()
    headers = replay_headers(detail_template.request_headers)
    cookies = dict(detail_template.request_cookies or {})

    if detail_template.is_body_method:
        body = detail_template.request_body
        try:
            payload = parse_template_body(detail_template)
        except ParseError as e:
            log.debug("Template body sent unchanged: %s", e, extra=log_extra([TAG_URL]))
        else:
            payload = dict(payload)
            payload.update(values)
            body = json.dumps(payload, ensure_ascii=False)
        return DetailRequest(method=method, url=detail_template.url, headers=headers, cookies=cookies, body=body)

    url = build_detail_url(detail_template.url, values)
    return DetailRequest(method=method, url=url, headers=headers, cookies=cookies, body=None)
