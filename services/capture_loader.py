"""
capture_loader.py

Reads step-grouped network capture JSON files and turns captured entries into
CapturedRequest descriptors for the field mapping analysis.

Expected capture layout (as written by the capture step):

    {
      "Step 1: Open list page": [
        {"request_id": "...", "method": "GET", "url": "https://...",
         "headers": {...}, "post_data": "", "response": "...",
         "status": 200, "response_headers": {...}},
        ...
      ],
      ...
    }
"""

import json
import logging
import os
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit

from services.field_mapping.errors import ParseError
from services.field_mapping.models import CapturedRequest

logger = logging.getLogger(__name__)


def parse_cookie_header(cookie_header: Optional[str]) -> Dict[str, str]:
    """Parse a 'Cookie' request header into a name -> value dict."""
    cookies: Dict[str, str] = {}
    for part in (cookie_header or "").split(";"):
        if "=" not in part:
            continue
        name, value = part.split("=", 1)
        name = name.strip()
        if name:
            cookies[name] = value.strip()
    return cookies


def captured_request_from_entry(entry: Dict[str, Any]) -> CapturedRequest:
    """
    Convert one capture entry into a CapturedRequest.

    The URL is split into origin (scheme://host) and path (path plus query).
    Cookies are taken from the 'cookie' request header and removed from the
    replayed header set.
    """
    url = entry.get("url") or ""
    parts = urlsplit(url)
    origin = f"{parts.scheme}://{parts.netloc}" if parts.scheme else ""
    path = parts.path or ""
    if parts.query:
        path = f"{path}?{parts.query}"

    headers: Dict[str, str] = {}
    cookie_header = None
    for name, value in (entry.get("headers") or {}).items():
        if name is None or value is None:
            continue
        if str(name).lower() == "cookie":
            cookie_header = str(value)
            continue
        headers[str(name)] = str(value)

    return CapturedRequest(
        origin=origin,
        path=path,
        method=(entry.get("method") or "GET").upper(),
        request_body=entry.get("post_data") or None,
        request_headers=headers,
        request_cookies=parse_cookie_header(cookie_header),
        response_status=entry.get("status"),
        response_body=entry.get("response"),
    )


def load_capture_entries(path: str) -> List[Dict[str, Any]]:
    """
    Load a network capture file and return its entries in capture order.

    Raises:
        FileNotFoundError: if the file does not exist.
        ParseError: if the file is not valid capture JSON.
    """
    if not os.path.isfile(path):
        raise FileNotFoundError(f"Network capture file not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise ParseError(f"Network capture is not valid JSON: {e}") from e

    if isinstance(data, list):
        entries = data
    elif isinstance(data, dict):
        entries = []
        for step_entries in data.values():
            if isinstance(step_entries, list):
                entries.extend(step_entries)
    else:
        raise ParseError(f"Unexpected network capture layout: {type(data).__name__}")

    entries = [e for e in entries if isinstance(e, dict)]
    logger.info("Network capture loaded: %d entries from %s", len(entries), path)
    return entries


def find_captured_request(
    entries: List[Dict[str, Any]],
    url_contains: Optional[str] = None,
    request_id: Optional[str] = None,
    method: Optional[str] = None,
) -> Optional[CapturedRequest]:
    """Return the first entry matching every given filter as a CapturedRequest, or None."""
    for entry in entries:
        if request_id is not None and entry.get("request_id") != request_id:
            continue
        if url_contains and url_contains not in (entry.get("url") or ""):
            continue
        if method and (entry.get("method") or "GET").upper() != method.upper():
            continue
        return captured_request_from_entry(entry)
    return None
