# Field Mapping MCP Server
# Infers how list API items map onto detail API request parameters and validates the mapping.
from fastmcp import FastMCP, Context  # ✅ FastMCP 2.x import
from typing import Optional, Dict, Any, List

mcp = FastMCP(
    name="fieldmap",
)

from services.analysis_service import (
    configure_list_request,
    configure_detail_request,
    load_requests_from_capture,
    update_analysis_config,
    run_analysis,
    stop_analysis as stop_running_analysis,
    get_analysis_status as get_current_analysis_status,
    preview_field_mapping,
    get_analysis_logs as query_analysis_logs,
)

# ----------------------------------------------------------
# Request Configuration Tools
# ----------------------------------------------------------

@mcp.tool()
async def set_list_request(request: Dict[str, Any], ctx: Context, list_path: Optional[str] = None) -> dict:
    """
    Configures the captured "list" request whose response supplies the items to analyze.
    Args:
        request (dict): Captured request {origin, path, method, requestBody, requestHeaders, requestCookies}.
        ctx (Context, optional): FastMCP context for state/error details.
        list_path (str, optional): Path to the item array in the list response (e.g. 'data.list').

    Returns: dict with status, configured url and list path.
    """
    return await configure_list_request(request, list_path, ctx)

@mcp.tool()
async def set_detail_request(request: Dict[str, Any], ctx: Context) -> dict:
    """
    Configures the captured "detail" request template. Its JSON request body lists the
    keys whose values are inferred from each list item.
    Args:
        request (dict): Captured request {origin, path, method, requestBody, requestHeaders, requestCookies}.
        ctx (Context, optional): FastMCP context for state/error details.

    Returns: dict with status, configured url and method.
    """
    return await configure_detail_request(request, ctx)

@mcp.tool()
async def load_capture_requests(
    capture_path: str,
    list_url_contains: str,
    detail_url_contains: str,
    ctx: Context,
    list_path: Optional[str] = None,
) -> dict:
    """
    Loads the list and detail requests from a network capture JSON file.
    Args:
        capture_path (str): Path to the network capture JSON.
        list_url_contains (str): Substring identifying the list request URL.
        detail_url_contains (str): Substring identifying the detail request URL.
        ctx (Context, optional): FastMCP context for state/error details.
        list_path (str, optional): Path to the item array in the list response.

    Returns: dict with status and the configured list/detail urls.
    """
    return await load_requests_from_capture(capture_path, list_url_contains, detail_url_contains, list_path, ctx)

@mcp.tool()
async def set_analysis_config(
    ctx: Context,
    search_field: Optional[str] = None,
    target_value: Optional[str] = None,
    max_concurrency: Optional[int] = None,
) -> dict:
    """
    Updates the analysis configuration. Only the provided fields are changed.
    Args:
        ctx (Context, optional): FastMCP context for state/error details.
        search_field (str, optional): Field to extract from every detail response.
        target_value (str, optional): Value the extracted field must equal to count as a match.
        max_concurrency (int, optional): Maximum number of detail requests in flight.

    Returns: dict with status and the resulting config.
    """
    return await update_analysis_config(search_field, target_value, max_concurrency, ctx)

# ----------------------------------------------------------
# Analysis Execution Tools
# ----------------------------------------------------------

@mcp.tool()
async def start_analysis(ctx: Context) -> dict:
    """
    Runs the field mapping analysis: fetches the list, infers the mapping from the first
    item, sends one detail request per item and compares the search field with the target.
    Args:
        ctx (Context, optional): FastMCP context for state/error details.

    Returns: dict with status and the run report (mapping, matches, summary, timing).
    """
    return await run_analysis(ctx)

@mcp.tool()
async def stop_analysis(ctx: Context) -> dict:
    """
    Requests the running analysis to stop. Detail requests already in flight still complete.
    Args:
        ctx (Context, optional): FastMCP context object.

    Returns: dict with whether a run was stopped and the current state.
    """
    return await stop_running_analysis(ctx)

@mcp.tool()
async def get_analysis_status(ctx: Context) -> dict:
    """
    Returns the current analysis state (running flag, progress, total, mapping, config)
    and the report of the last finished run.

    Intended usage:
      1. Call start_analysis(...)
      2. Poll this tool while the analysis runs
    Args:
        ctx (Context, optional): FastMCP context object.
    Returns:
        dict: Current state and last report.
    """
    return await get_current_analysis_status(ctx)

# ----------------------------------------------------------
# Inspection Tools
# ----------------------------------------------------------

@mcp.tool()
async def preview_mapping(list_items: List[Any], detail_request: Dict[str, Any], ctx: Context) -> dict:
    """
    Infers the field mapping for a detail request against sample list items without
    sending any request.
    Args:
        list_items (list): List items; only the first one is inspected.
        detail_request (dict): Captured detail request with a JSON requestBody.
        ctx (Context, optional): FastMCP context object.

    Returns: dict with the candidate mapping per detail request key.
    """
    return await preview_field_mapping(list_items, detail_request, ctx)

@mcp.tool()
async def get_analysis_logs(
    ctx: Context,
    level: Optional[str] = None,
    tags: Optional[List[str]] = None,
    search: Optional[str] = None,
    limit: int = 100,
) -> dict:
    """
    Returns recent analysis log entries with summary statistics.
    Args:
        ctx (Context, optional): FastMCP context object.
        level (str, optional): Minimum level (DEBUG, INFO, WARNING, ERROR).
        tags (list, optional): Keep entries carrying any of these tags (e.g. 'analysis-match').
        search (str, optional): Case-insensitive text to look for in messages.
        limit (int): Maximum number of (most recent) entries to return.

    Returns: dict with entries and stats.
    """
    return await query_analysis_logs(level, tags, search, limit, ctx)

# -----------------------------
# Field Mapping MCP entry point
# -----------------------------
if __name__ == "__main__":
    try:
        mcp.run("stdio")
    except KeyboardInterrupt:
        print("Shutting down Field Mapping MCP…")
