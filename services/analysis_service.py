# services/analysis_service.py
"""
Tool implementations behind the fieldmap MCP server.

Holds the per-process AnalysisOrchestrator, wires it to the httpx sender and
the in-memory log sink, and translates between MCP tool arguments/results
(plain dicts) and the field mapping model.
"""

import logging
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from fastmcp import Context  # ✅ FastMCP 2.x import

from services.capture_loader import find_captured_request, load_capture_entries
from services.field_mapping import AnalysisOrchestrator, analyze_field_mappings
from services.field_mapping.errors import FieldMappingError
from services.field_mapping.models import (
    AnalysisConfig,
    CapturedRequest,
    ListConfig,
    mapping_to_dict,
    related_fields,
)
from services.http_client import HttpxRequestSender
from utils.config import load_fieldmap_config
from utils.log_sink import AnalysisLogSink

# -----------------------------------------------
# Bootstrap
# -----------------------------------------------
load_dotenv()   # Load environment variables from .env file such as FIELDMAP_CONFIG
FIELDMAP_CONFIG = load_fieldmap_config()

LOG_SINK = AnalysisLogSink(max_entries=int(FIELDMAP_CONFIG.get("log_buffer_size", 1000)))
_services_logger = logging.getLogger("services")
_services_logger.setLevel(str(FIELDMAP_CONFIG.get("log_level", "INFO")).upper())
_services_logger.addHandler(LOG_SINK)

SENDER = HttpxRequestSender.from_config(FIELDMAP_CONFIG)
ORCHESTRATOR = AnalysisOrchestrator(
    SENDER,
    config=AnalysisConfig(
        search_field=FIELDMAP_CONFIG.get("search_field", ""),
        target_value=FIELDMAP_CONFIG.get("target_value", ""),
        max_concurrency=int(FIELDMAP_CONFIG.get("max_concurrency", 5)),
    ),
    list_config=ListConfig.from_dict(FIELDMAP_CONFIG.get("list_config")),
)


def _error(message: str, **extra: Any) -> Dict[str, Any]:
    result = {"status": "ERROR", "message": message}
    result.update(extra)
    return result


def _list_config_with_path(list_path: Optional[str]) -> ListConfig:
    current = ORCHESTRATOR.list_config
    if not list_path:
        return current
    return ListConfig(
        list_path=list_path,
        total_path=current.total_path,
        page_path=current.page_path,
        page_size_path=current.page_size_path,
    )


# -----------------------------------------------
# Request configuration
# -----------------------------------------------

async def configure_list_request(request: Dict[str, Any], list_path: Optional[str], ctx: Context) -> Dict[str, Any]:
    """
    Store the captured list request (and optionally the list extraction path).

    Returns:
        dict: status, configured url and list_path.
    """
    captured = CapturedRequest.from_dict(request or {})
    if not captured.origin:
        msg = "List request must include an 'origin'"
        await ctx.error(msg)
        return _error(msg)

    ORCHESTRATOR.set_list_request(captured, _list_config_with_path(list_path))
    await ctx.info(f"List request configured: {captured.method} {captured.url}")
    return {
        "status": "OK",
        "url": captured.url,
        "method": captured.method,
        "list_path": ORCHESTRATOR.list_config.list_path,
    }


async def configure_detail_request(request: Dict[str, Any], ctx: Context) -> Dict[str, Any]:
    """
    Store the captured detail request template.

    Returns:
        dict: status, configured url and method.
    """
    captured = CapturedRequest.from_dict(request or {})
    if not captured.origin:
        msg = "Detail request must include an 'origin'"
        await ctx.error(msg)
        return _error(msg)

    ORCHESTRATOR.set_detail_request(captured)
    await ctx.info(f"Detail request configured: {captured.method} {captured.url}")
    return {"status": "OK", "url": captured.url, "method": captured.method}


async def load_requests_from_capture(
    capture_path: str,
    list_url_contains: str,
    detail_url_contains: str,
    list_path: Optional[str],
    ctx: Context,
) -> Dict[str, Any]:
    """
    Pick the list and detail requests out of a network capture file.

    Returns:
        dict: status plus the list/detail urls that were configured.
    """
    try:
        entries = load_capture_entries(capture_path)
    except (FileNotFoundError, FieldMappingError) as e:
        await ctx.error(str(e))
        return _error(str(e), capture_path=capture_path)

    list_request = find_captured_request(entries, url_contains=list_url_contains)
    detail_request = find_captured_request(entries, url_contains=detail_url_contains)

    missing = []
    if list_request is None:
        missing.append(f"list request matching '{list_url_contains}'")
    if detail_request is None:
        missing.append(f"detail request matching '{detail_url_contains}'")
    if missing:
        msg = f"Not found in capture: {', '.join(missing)}"
        await ctx.error(msg)
        return _error(msg, capture_path=capture_path, entries=len(entries))

    ORCHESTRATOR.set_list_request(list_request, _list_config_with_path(list_path))
    ORCHESTRATOR.set_detail_request(detail_request)
    await ctx.info(f"Loaded list and detail requests from {capture_path}")
    return {
        "status": "OK",
        "capture_path": capture_path,
        "entries": len(entries),
        "list_url": list_request.url,
        "detail_url": detail_request.url,
        "detail_method": detail_request.method,
        "list_path": ORCHESTRATOR.list_config.list_path,
    }


async def update_analysis_config(
    search_field: Optional[str],
    target_value: Optional[Any],
    max_concurrency: Optional[int],
    ctx: Context,
) -> Dict[str, Any]:
    """Merge the given (non-None) fields into the analysis config."""
    partial = {
        key: value
        for key, value in (
            ("search_field", search_field),
            ("target_value", target_value),
            ("max_concurrency", max_concurrency),
        )
        if value is not None
    }
    try:
        config = ORCHESTRATOR.update_config(**partial)
    except ValueError as e:
        await ctx.error(str(e))
        return _error(str(e))

    await ctx.info(f"Analysis config updated: {sorted(partial)}")
    return {"status": "OK", "config": config.to_dict()}


# -----------------------------------------------
# Run control
# -----------------------------------------------

async def run_analysis(ctx: Context) -> Dict[str, Any]:
    """
    Run one full analysis and return its report.

    Returns:
        dict: status (OK unless the run failed) and the serialized report.
    """
    await ctx.info("Starting field mapping analysis...")
    report = await ORCHESTRATOR.start_analysis()
    result = report.to_dict()

    if report.error_kind is not None:
        await ctx.error(f"Analysis failed ({report.error_kind.value}): {report.message}")
        return _error(report.message, report=result)

    summary = result["summary"]
    await ctx.info(
        f"Analysis {report.status.value}: {summary['matches']} match(es), "
        f"{summary['mismatches']} mismatch(es), {summary['errors']} error(s), {summary['skipped']} skipped"
    )
    return {"status": "OK", "message": report.message, "report": result}


async def stop_analysis(ctx: Context) -> Dict[str, Any]:
    stopped = ORCHESTRATOR.stop_analysis()
    state = ORCHESTRATOR.state
    if stopped:
        await ctx.info(f"Analysis stop requested at {state.progress}/{state.total}")
    return {"status": "OK", "stopped": stopped, "state": state.to_dict()}


async def get_analysis_status(ctx: Context) -> Dict[str, Any]:
    state = ORCHESTRATOR.state
    last_report = ORCHESTRATOR.last_report
    return {
        "status": "OK",
        "state": state.to_dict(),
        "last_report": last_report.to_dict() if last_report else None,
    }


# -----------------------------------------------
# Inspection
# -----------------------------------------------

async def preview_field_mapping(
    list_items: List[Any],
    detail_request: Dict[str, Any],
    ctx: Context,
) -> Dict[str, Any]:
    """
    Infer the mapping for a detail request against list items without sending anything.

    Returns:
        dict: status, the full candidate mapping and the keys that have candidates.
    """
    mapping = analyze_field_mappings(list_items or [], CapturedRequest.from_dict(detail_request or {}))
    related = related_fields(mapping)
    if not related:
        msg = "No field mapping found for the given list items and detail request"
        await ctx.info(msg)
        return _error(msg, mapping=mapping_to_dict(mapping))

    await ctx.info(f"Mapped {len(related)} of {len(mapping)} detail request keys")
    return {"status": "OK", "mapping": mapping_to_dict(mapping), "related_fields": related}


async def get_analysis_logs(
    level: Optional[str],
    tags: Optional[List[str]],
    search: Optional[str],
    limit: int,
    ctx: Context,
) -> Dict[str, Any]:
    try:
        entries = LOG_SINK.query(level=level, tags=tags, search=search, limit=limit)
    except ValueError as e:
        await ctx.error(str(e))
        return _error(str(e))

    return {
        "status": "OK",
        "count": len(entries),
        "entries": [e.to_dict() for e in entries],
        "stats": LOG_SINK.stats(),
    }
