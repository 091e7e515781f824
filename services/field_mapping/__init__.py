"""
Field mapping analysis package for fieldmap MCP.

Infers which fields of a list API item supply the parameters of a related
detail API request, then validates the inference across every list item with
bounded-concurrency detail requests.

Version: 0.1.0
License: MIT
"""

from .analyzer import analyze_field_mappings
from .builder import build_detail_request
from .concurrency import ConcurrencyController
from .locator import get_by_path, locate_field, locate_field_all
from .orchestrator import AnalysisOrchestrator

__all__ = [
    "AnalysisOrchestrator",
    "ConcurrencyController",
    "analyze_field_mappings",
    "build_detail_request",
    "get_by_path",
    "locate_field",
    "locate_field_all",
]
__version__ = "0.1.0"
