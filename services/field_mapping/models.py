"""
Data model for field mapping analysis.

CapturedRequest descriptors come from the capture collaborator (or the
capture loader) and are read-only here. AnalysisState is owned by the
orchestrator; everything handed to observers is a snapshot.
"""

import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .constants import BODY_METHODS, DEFAULT_MAX_CONCURRENCY, DEFAULT_METHOD
from .errors import ErrorKind


# === Captured Requests ===

@dataclass(frozen=True)
class CapturedRequest:
    """Immutable snapshot of one captured HTTP request/response pair."""
    origin: str
    path: str
    method: str = DEFAULT_METHOD
    request_body: Optional[str] = None
    request_headers: Dict[str, str] = field(default_factory=dict)
    request_cookies: Dict[str, str] = field(default_factory=dict)
    response_status: Optional[int] = None
    response_body: Optional[str] = None

    @property
    def url(self) -> str:
        return f"{self.origin}{self.path}"

    @property
    def is_body_method(self) -> bool:
        return (self.method or DEFAULT_METHOD).upper() in BODY_METHODS

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CapturedRequest":
        """
        Build from the capture collaborator's descriptor.

        Accepts both the camelCase keys emitted by the browser capture
        (requestBody, requestHeaders, ...) and snake_case keys.
        """
        def pick(camel: str, snake: str, default=None):
            if camel in data:
                return data[camel]
            return data.get(snake, default)

        return cls(
            origin=data.get("origin") or "",
            path=data.get("path") or "",
            method=(data.get("method") or DEFAULT_METHOD).upper(),
            request_body=pick("requestBody", "request_body"),
            request_headers=dict(pick("requestHeaders", "request_headers") or {}),
            request_cookies=dict(pick("requestCookies", "request_cookies") or {}),
            response_status=pick("responseStatus", "response_status"),
            response_body=pick("responseBody", "response_body"),
        )


# === Search Results ===

@dataclass(frozen=True)
class SearchResult:
    """A located value and the dot-joined path it was found at."""
    value: Any
    path: str

    def to_dict(self) -> Dict[str, Any]:
        return {"value": self.value, "path": self.path}


# Field name required by the detail template -> every candidate location in the sample item
Mapping = Dict[str, List[SearchResult]]


def mapping_to_dict(mapping: Mapping) -> Dict[str, List[Dict[str, Any]]]:
    return {key: [c.to_dict() for c in candidates] for key, candidates in (mapping or {}).items()}


def related_fields(mapping: Mapping) -> List[str]:
    """Keys of the mapping that have at least one candidate location."""
    return [key for key, candidates in (mapping or {}).items() if candidates]


# === Configuration ===

@dataclass
class ListConfig:
    """How the list endpoint's response is reduced to an array of items."""
    list_path: str = "data.list"
    total_path: Optional[str] = None
    page_path: Optional[str] = None
    page_size_path: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ListConfig":
        data = data or {}
        known = {f.name for f in dataclasses.fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass
class AnalysisConfig:
    search_field: str = ""
    target_value: Any = ""
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)


# === Run State ===

class RunStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    STOPPED = "stopped"
    SKIPPED = "skipped"


@dataclass
class AnalysisState:
    is_running: bool = False
    progress: int = 0
    total: int = 0
    mapping: Mapping = field(default_factory=dict)
    config: AnalysisConfig = field(default_factory=AnalysisConfig)
    status: RunStatus = RunStatus.IDLE
    run_id: int = 0

    def snapshot(self) -> "AnalysisState":
        return AnalysisState(
            is_running=self.is_running,
            progress=self.progress,
            total=self.total,
            mapping={k: list(v) for k, v in self.mapping.items()},
            config=dataclasses.replace(self.config),
            status=self.status,
            run_id=self.run_id,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_running": self.is_running,
            "progress": self.progress,
            "total": self.total,
            "mapping": mapping_to_dict(self.mapping),
            "config": self.config.to_dict(),
            "status": self.status.value,
            "run_id": self.run_id,
        }


# === Requests & Outcomes ===

@dataclass
class DetailRequest:
    """A fully built detail request for one list item."""
    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    cookies: Dict[str, str] = field(default_factory=dict)
    body: Optional[str] = None


class ItemOutcomeType(str, Enum):
    MATCH = "match"
    MISMATCH = "mismatch"
    ERROR = "error"
    SKIPPED = "skipped"


@dataclass
class ItemOutcome:
    index: int
    outcome: ItemOutcomeType
    url: Optional[str] = None
    body: Optional[str] = None
    field_path: Optional[str] = None
    field_value: Any = None
    error: Optional[str] = None
    elapsed_ms: int = 0

    def to_dict(self) -> Dict[str, Any]:
        data = dataclasses.asdict(self)
        data["outcome"] = self.outcome.value
        return data


@dataclass
class AnalysisReport:
    """Explicit result of one start_analysis() call."""
    run_id: int
    status: RunStatus
    error_kind: Optional[ErrorKind] = None
    message: str = ""
    progress: int = 0
    total: int = 0
    mapping: Mapping = field(default_factory=dict)
    outcomes: List[ItemOutcome] = field(default_factory=list)
    elapsed_ms: int = 0

    @property
    def matches(self) -> List[ItemOutcome]:
        return [o for o in self.outcomes if o.outcome == ItemOutcomeType.MATCH]

    def count(self, outcome: ItemOutcomeType) -> int:
        return sum(1 for o in self.outcomes if o.outcome == outcome)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "status": self.status.value,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "message": self.message,
            "progress": self.progress,
            "total": self.total,
            "mapping": mapping_to_dict(self.mapping),
            "matches": [o.to_dict() for o in self.matches],
            "summary": {
                "matches": self.count(ItemOutcomeType.MATCH),
                "mismatches": self.count(ItemOutcomeType.MISMATCH),
                "errors": self.count(ItemOutcomeType.ERROR),
                "skipped": self.count(ItemOutcomeType.SKIPPED),
            },
            "elapsed_ms": self.elapsed_ms,
        }
