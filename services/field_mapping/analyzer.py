"""
Field mapping inference.

Correlates the keys of a detail-request template body with the fields of a
representative list item (the first one). Every key keeps all candidate
locations found in the sample; nothing is ranked or discarded.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from utils.log_sink import log_extra

from .constants import TAG_MAPPING
from .errors import ParseError
from .locator import locate_field_all
from .models import CapturedRequest, Mapping

logger = logging.getLogger(__name__)


def parse_template_body(detail_template: CapturedRequest) -> Dict[str, Any]:
    """Decode the template's request body into a JSON object, or raise ParseError."""
    body = detail_template.request_body
    if body is None or (isinstance(body, str) and not body.strip()):
        raise ParseError("Detail request has no request body")
    if isinstance(body, dict):
        return body
    try:
        parsed = json.loads(body)
    except (json.JSONDecodeError, TypeError) as e:
        raise ParseError(f"Detail request body is not valid JSON: {e}") from e
    if not isinstance(parsed, dict):
        raise ParseError(f"Detail request body must be a JSON object, got {type(parsed).__name__}")
    return parsed


def analyze_field_mappings(
    list_items: List[Any],
    detail_template: Optional[CapturedRequest],
    log: logging.Logger = None,
) -> Mapping:
    """
    Derive the candidate source locations for each detail-request key.

    Args:
        list_items: Items extracted from the list response; only the first is inspected.
        detail_template: Captured detail request whose JSON body lists the required keys.
        log: Logger for diagnostics (defaults to this module's logger).

    Returns:
        Mapping of template key -> list of SearchResult found in list_items[0].
        Empty when the inputs are missing or the body cannot be parsed.
    """
    log = log or logger

    if not list_items or detail_template is None or detail_template.request_body is None:
        log.warning(
            "Field mapping analysis skipped: missing required data",
            extra=log_extra(
                [TAG_MAPPING, "validation-error"],
                has_list_data=bool(list_items),
                has_detail_request=detail_template is not None,
                has_request_body=detail_template is not None and detail_template.request_body is not None,
            ),
        )
        return {}

    try:
        template_body = parse_template_body(detail_template)
    except ParseError as e:
        log.error(
            "Field mapping analysis failed: %s", e,
            extra=log_extra([TAG_MAPPING, "parse-error"], detail_url=detail_template.url),
        )
        return {}

    sample = list_items[0]
    mapping: Mapping = {}
    for key in template_body:
        mapping[key] = locate_field_all(sample, key)

    log.debug(
        "Analyzed %d template keys against sample item",
        len(mapping),
        extra=log_extra(
            [TAG_MAPPING],
            keys=list(mapping),
            candidates={k: [c.path for c in v] for k, v in mapping.items()},
        ),
    )
    return mapping
