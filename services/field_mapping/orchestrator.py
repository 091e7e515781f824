"""
Analysis run driver.

Drives one run through: fetch list → infer mapping from item 0 → fan out
one detail request per item (bounded) → compare the searched field with the
target value → aggregate into an AnalysisReport.

The orchestrator owns the single AnalysisState. Observers either poll the
`state` snapshot or register a callback with subscribe(). start_analysis()
never raises; every failure ends as a logged record and a report carrying an
ErrorKind.
"""

import asyncio
import dataclasses
import json
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from utils.log_sink import log_extra

from .analyzer import analyze_field_mappings
from .builder import build_detail_request, replay_headers
from .concurrency import ConcurrencyController
from .constants import (
    TAG_ERROR,
    TAG_LIFECYCLE,
    TAG_MAPPING,
    TAG_MATCH,
    TAG_MISMATCH,
    TAG_PERFORMANCE,
    TAG_URL,
)
from .errors import (
    ConfigurationError,
    EmptyListError,
    ErrorKind,
    FieldMappingError,
    NoMappingError,
)
from .locator import get_by_path, locate_field
from .models import (
    AnalysisConfig,
    AnalysisReport,
    AnalysisState,
    CapturedRequest,
    ItemOutcome,
    ItemOutcomeType,
    ListConfig,
    Mapping,
    RunStatus,
    related_fields,
)

logger = logging.getLogger(__name__)

# async (method, url, headers=..., cookies=..., body=...) -> decoded JSON
RequestSender = Callable[..., Awaitable[Any]]
StateObserver = Callable[[AnalysisState], None]


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def values_match(value: Any, target: Any) -> bool:
    """
    Equality test between a located response value and the target value.

    Values compare with ==. A string target also matches the JSON text of a
    scalar value, so target "1" matches 1 and "true" matches True. An
    integral float matches both forms ("1" and "1.0" match 1.0).
    """
    if isinstance(value, bool) == isinstance(target, bool) and value == target:
        return True
    if isinstance(target, str) and not isinstance(value, (str, dict, list)):
        texts = {json.dumps(value)}
        if isinstance(value, float) and value.is_integer():
            texts.add(json.dumps(int(value)))
        return target in texts
    return False


class AnalysisOrchestrator:
    def __init__(
        self,
        sender: RequestSender,
        config: Optional[AnalysisConfig] = None,
        list_config: Optional[ListConfig] = None,
        log: Optional[logging.Logger] = None,
    ):
        self._sender = sender
        self._log = log or logger
        self._state = AnalysisState(config=config or AnalysisConfig())
        self._list_config = list_config or ListConfig()
        self._list_request: Optional[CapturedRequest] = None
        self._detail_request: Optional[CapturedRequest] = None
        self._observers: List[StateObserver] = []
        self._run_counter = 0
        self._stopped_runs: Set[int] = set()
        self._last_report: Optional[AnalysisReport] = None

    # === Configuration ===

    @property
    def list_request(self) -> Optional[CapturedRequest]:
        return self._list_request

    @property
    def detail_request(self) -> Optional[CapturedRequest]:
        return self._detail_request

    @property
    def list_config(self) -> ListConfig:
        return self._list_config

    def set_list_request(self, captured: Optional[CapturedRequest], list_config: Optional[ListConfig] = None) -> None:
        self._list_request = captured
        if list_config is not None:
            self._list_config = list_config
        self._log.info(
            "List request configured: %s", captured.url if captured else None,
            extra=log_extra([TAG_LIFECYCLE], list_path=self._list_config.list_path),
        )

    def set_detail_request(self, captured: Optional[CapturedRequest]) -> None:
        self._detail_request = captured
        self._log.info(
            "Detail request configured: %s %s",
            captured.method if captured else None, captured.url if captured else None,
            extra=log_extra([TAG_LIFECYCLE]),
        )

    def update_config(self, **partial: Any) -> AnalysisConfig:
        """
        Merge the given fields into the analysis config.

        A batch already in flight keeps the config it was built with.

        Raises:
            ValueError: on an unknown field or a non-positive max_concurrency.
        """
        known = {f.name for f in dataclasses.fields(AnalysisConfig)}
        unknown = set(partial) - known
        if unknown:
            raise ValueError(f"Unknown analysis config field(s): {', '.join(sorted(unknown))}")

        if "max_concurrency" in partial:
            value = partial["max_concurrency"]
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise ValueError(f"max_concurrency must be a positive integer, got {value!r}")

        old_config = dataclasses.replace(self._state.config)
        self._state.config = dataclasses.replace(self._state.config, **partial)
        self._log.info(
            "Analysis config updated",
            extra=log_extra([TAG_LIFECYCLE], old=old_config.to_dict(), new=self._state.config.to_dict()),
        )
        self._notify()
        return dataclasses.replace(self._state.config)

    # === Observation ===

    @property
    def state(self) -> AnalysisState:
        return self._state.snapshot()

    @property
    def last_report(self) -> Optional[AnalysisReport]:
        return self._last_report

    def subscribe(self, callback: StateObserver) -> Callable[[], None]:
        """Register callback for state snapshots; returns an unsubscribe function."""
        self._observers.append(callback)

        def unsubscribe() -> None:
            if callback in self._observers:
                self._observers.remove(callback)

        return unsubscribe

    def _notify(self) -> None:
        if not self._observers:
            return
        snapshot = self._state.snapshot()
        for callback in list(self._observers):
            try:
                callback(snapshot)
            except Exception:
                self._log.exception("State observer %r failed", callback)

    def _is_live(self, run_id: int) -> bool:
        return self._state.run_id == run_id and self._state.is_running

    # === Run Control ===

    def stop_analysis(self) -> bool:
        """
        Request the running analysis to stop.

        Flips the state to idle. Requests already in flight still complete
        and are logged; items admitted afterwards are recorded as skipped
        without sending anything. Both still count toward progress.
        Returns False when nothing was running.
        """
        if not self._state.is_running:
            self._log.info("Stop requested but no analysis is running", extra=log_extra([TAG_LIFECYCLE]))
            return False

        self._state.is_running = False
        self._state.status = RunStatus.STOPPED
        self._stopped_runs.add(self._state.run_id)
        self._log.warning(
            "Analysis stopped manually",
            extra=log_extra(
                [TAG_LIFECYCLE, "manual-stop"],
                run_id=self._state.run_id,
                progress=self._state.progress,
                total=self._state.total,
            ),
        )
        self._notify()
        return True

    async def start_analysis(self) -> AnalysisReport:
        if self._state.is_running:
            self._log.warning(
                "Analysis already running, ignoring duplicate start",
                extra=log_extra([TAG_LIFECYCLE], run_id=self._state.run_id),
            )
            return AnalysisReport(
                run_id=self._state.run_id,
                status=RunStatus.SKIPPED,
                message="Analysis already running",
                progress=self._state.progress,
                total=self._state.total,
            )

        self._run_counter += 1
        run_id = self._run_counter
        self._state.run_id = run_id
        self._state.is_running = True
        self._state.status = RunStatus.RUNNING
        self._state.progress = 0
        self._state.total = 0
        self._state.mapping = {}
        self._notify()

        report = AnalysisReport(run_id=run_id, status=RunStatus.RUNNING)
        started = time.monotonic()
        self._log.info("Analysis started", extra=log_extra([TAG_LIFECYCLE], run_id=run_id))

        try:
            await self._run(run_id, report)
            report.status = RunStatus.COMPLETED
            report.message = f"Processed {report.progress} of {report.total} items"
        except FieldMappingError as e:
            report.status = RunStatus.FAILED
            report.error_kind = e.kind
            report.message = str(e)
            self._log.error(
                "Analysis failed: %s", e,
                extra=log_extra([TAG_LIFECYCLE, TAG_ERROR], run_id=run_id, error_kind=e.kind.value),
            )
        except Exception as e:
            report.status = RunStatus.FAILED
            report.error_kind = ErrorKind.UNEXPECTED
            report.message = f"Unexpected error: {e}"
            self._log.exception(
                "Analysis workflow failed",
                extra=log_extra([TAG_LIFECYCLE, "analysis-fatal"], run_id=run_id),
            )
        finally:
            report.elapsed_ms = _elapsed_ms(started)
            stopped = run_id in self._stopped_runs
            self._stopped_runs.discard(run_id)
            if stopped and report.status != RunStatus.FAILED:
                report.status = RunStatus.STOPPED
            if self._state.run_id == run_id:
                self._state.is_running = False
                self._state.status = report.status
                self._notify()
            self._log.info(
                "Analysis finished: %s (%d/%d items, %dms)",
                report.status.value, report.progress, report.total, report.elapsed_ms,
                extra=log_extra(
                    [TAG_LIFECYCLE, TAG_PERFORMANCE, "analysis-complete"],
                    run_id=run_id,
                    status=report.status.value,
                    elapsed_ms=report.elapsed_ms,
                ),
            )

        self._last_report = report
        return report

    async def _run(self, run_id: int, report: AnalysisReport) -> None:
        list_items = await self.fetch_list_data()
        if not list_items:
            raise EmptyListError("List data is empty, nothing to analyze")
        if not self._is_live(run_id):
            return

        detail = self._detail_request
        if detail is None:
            raise ConfigurationError("No detail endpoint configured")

        mapping = analyze_field_mappings(list_items, detail, self._log)
        self._state.mapping = mapping
        report.mapping = mapping
        self._log.info(
            "Field mappings discovered",
            extra=log_extra([TAG_MAPPING], mapping={k: [c.path for c in v] for k, v in mapping.items()}),
        )
        if not related_fields(mapping):
            raise NoMappingError("No valid field mapping found; check the list and detail request configuration")

        report.total = len(list_items)
        self._state.total = len(list_items)
        self._notify()

        # Config is read once here; later updates do not affect this batch
        config = dataclasses.replace(self._state.config)
        controller = ConcurrencyController(config.max_concurrency)

        async def run_item(index: int, item: Any) -> ItemOutcome:
            return await controller.execute(
                lambda: self._process_item(run_id, index, item, mapping, detail, config, report)
            )

        results = await asyncio.gather(
            *(run_item(index, item) for index, item in enumerate(list_items)),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                self._log.error(
                    "Detail task raised outside item handling: %s", result,
                    extra=log_extra([TAG_ERROR], run_id=run_id),
                )
        report.outcomes.sort(key=lambda o: o.index)

    async def fetch_list_data(self) -> List[Any]:
        """
        Request the configured list endpoint and extract the item array.

        Raises:
            ConfigurationError: when no list endpoint is configured.
            NetworkError: when the request fails.
        """
        captured = self._list_request
        if captured is None:
            raise ConfigurationError("No list endpoint configured")

        started = time.monotonic()
        self._log.info("Fetching list data: %s %s", captured.method, captured.url, extra=log_extra([TAG_LIFECYCLE]))

        body = captured.request_body if captured.method.upper() not in ("GET", "HEAD") else None
        try:
            response = await self._sender(
                captured.method,
                captured.url,
                headers=replay_headers(captured.request_headers),
                cookies=dict(captured.request_cookies or {}),
                body=body,
            )
        except FieldMappingError as e:
            self._log.error(
                "List data fetch failed (%dms): %s", _elapsed_ms(started), e,
                extra=log_extra([TAG_ERROR, "list-fetch"], url=captured.url, elapsed_ms=_elapsed_ms(started)),
            )
            raise

        list_path = self._list_config.list_path
        items = get_by_path(response, list_path, default=None) if list_path else response
        if not isinstance(items, list):
            self._log.warning(
                "List path %r did not resolve to an array", list_path,
                extra=log_extra([TAG_ERROR, "list-fetch"], url=captured.url, list_path=list_path),
            )
            return []

        self._log.info(
            "List data fetched: %d items (%dms)", len(items), _elapsed_ms(started),
            extra=log_extra([TAG_PERFORMANCE], count=len(items), elapsed_ms=_elapsed_ms(started)),
        )
        return items

    async def _process_item(
        self,
        run_id: int,
        index: int,
        item: Any,
        mapping: Mapping,
        detail: CapturedRequest,
        config: AnalysisConfig,
        report: AnalysisReport,
    ) -> ItemOutcome:
        started = time.monotonic()
        number = index + 1
        if not self._is_live(run_id):
            outcome = ItemOutcome(index=index, outcome=ItemOutcomeType.SKIPPED)
            self._log.debug(
                "Item #%d skipped: analysis stopped", number,
                extra=log_extra([TAG_LIFECYCLE, "item-skipped"], run_id=run_id, index=index),
            )
            self._record(run_id, report, outcome)
            return outcome

        outcome = ItemOutcome(index=index, outcome=ItemOutcomeType.ERROR)
        try:
            request = build_detail_request(item, mapping, detail, self._log)
            outcome.url = request.url
            outcome.body = request.body
            self._log.debug(
                "Detail request built #%d: %s %s", number, request.method, request.url,
                extra=log_extra([TAG_URL], index=index, url=request.url, body=request.body),
            )

            response = await self._sender(
                request.method,
                request.url,
                headers=request.headers,
                cookies=request.cookies,
                body=request.body,
            )

            found = locate_field(response, config.search_field)
            if found is not None:
                outcome.field_path = found.path
                outcome.field_value = found.value

            context: Dict[str, Any] = {
                "index": index,
                "url": request.url,
                "body": request.body,
                "field_path": outcome.field_path,
                "field_value": outcome.field_value,
            }
            if found is not None and values_match(found.value, config.target_value):
                outcome.outcome = ItemOutcomeType.MATCH
                self._log.info("Match found #%d", number, extra=log_extra([TAG_MATCH], **context))
            else:
                outcome.outcome = ItemOutcomeType.MISMATCH
                self._log.info("No match #%d", number, extra=log_extra([TAG_MISMATCH], **context))
        except FieldMappingError as e:
            outcome.error = str(e)
            self._log.error(
                "Item #%d failed: %s", number, e,
                extra=log_extra(
                    [TAG_ERROR, "processing-failure"],
                    index=index, url=outcome.url, error_kind=e.kind.value, elapsed_ms=_elapsed_ms(started),
                ),
            )
        except Exception as e:
            outcome.error = f"{type(e).__name__}: {e}"
            self._log.exception(
                "Item #%d failed unexpectedly", number,
                extra=log_extra([TAG_ERROR, "processing-failure"], index=index, url=outcome.url),
            )
        finally:
            outcome.elapsed_ms = _elapsed_ms(started)
            self._record(run_id, report, outcome)

        self._log.debug(
            "Processed item #%d in %dms", number, outcome.elapsed_ms,
            extra=log_extra([TAG_PERFORMANCE], index=index, elapsed_ms=outcome.elapsed_ms),
        )
        return outcome

    def _record(self, run_id: int, report: AnalysisReport, outcome: ItemOutcome) -> None:
        """Count one settled item; a superseded run updates only its own report."""
        report.outcomes.append(outcome)
        report.progress = min(len(report.outcomes), report.total)
        if self._state.run_id != run_id:
            return
        if self._state.progress < self._state.total:
            self._state.progress += 1
        self._notify()
