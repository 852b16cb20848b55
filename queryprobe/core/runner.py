"""Sequential fixture execution against a live session."""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from enum import Enum
import logging
import threading
import time
from typing import Callable, Sequence

from queryprobe.clients.base import QuerySession
from queryprobe.config.schema import RunnerConfig
from queryprobe.core.comparator import compare
from queryprobe.core.errors import (
    FailureKind,
    MalformedResponseError,
    MissingParameterError,
    ProtocolError,
    QueryTimeoutError,
    TargetConnectionError,
)
from queryprobe.core.logging import emit_metric, get_logger
from queryprobe.core.report import CaseOutcome, CaseReport, RunReport, SequenceReport
from queryprobe.fixtures.loader import is_idempotent
from queryprobe.fixtures.models import ExpectedResult, FixtureSequence, TestCase
from queryprobe.fixtures.placeholders import resolve_placeholders


SessionFactory = Callable[[], QuerySession]


class FailurePolicy(str, Enum):
    FAIL_FAST = "fail_fast"
    COLLECT_ALL = "collect_all"


class RunnerState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    EXECUTING = "executing"
    COMPARING = "comparing"
    FAILED = "failed"
    DONE = "done"


_RETRYABLE_KINDS = frozenset({FailureKind.TIMEOUT, FailureKind.PROTOCOL_ERROR})


class _SessionLease:
    """Owns one connected session and the worker thread its queries run on.

    A query that outlives its deadline leaves the connection in an unknown
    state, so the lease is discarded and a later case must reconnect.
    """

    def __init__(self, factory: SessionFactory, logger: logging.Logger) -> None:
        self._factory = factory
        self._logger = logger
        self.session: QuerySession | None = None
        self._executor: ThreadPoolExecutor | None = None

    @property
    def active(self) -> bool:
        return self.session is not None

    def open(self) -> None:
        session = self._factory()
        try:
            session.connect()
        except OSError as exc:
            raise TargetConnectionError(f"could not connect: {exc}") from exc
        self.session = session
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="queryprobe-query")

    def execute(self, query: str, timeout_seconds: float) -> ExpectedResult:
        if self.session is None or self._executor is None:
            raise TargetConnectionError("session is not connected")
        future: Future[ExpectedResult] = self._executor.submit(self.session.execute, query)
        try:
            return future.result(timeout=timeout_seconds)
        except FutureTimeoutError as exc:
            self.release()
            raise QueryTimeoutError(timeout_seconds) from exc

    def release(self) -> None:
        session, executor = self.session, self._executor
        self.session = None
        self._executor = None
        try:
            if session is not None:
                session.close()
        except Exception:
            self._logger.warning("session close failed", exc_info=True, extra={"event_action": "disconnect"})
        finally:
            if executor is not None:
                executor.shutdown(wait=False, cancel_futures=True)

    def __enter__(self) -> _SessionLease:
        return self

    def __exit__(self, *_exc: object) -> None:
        self.release()


class SequenceRunner:
    def __init__(
        self,
        session_factory: SessionFactory,
        *,
        policy: FailurePolicy | str = FailurePolicy.FAIL_FAST,
        query_timeout_seconds: float = 10.0,
        logger: logging.Logger | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.policy = FailurePolicy(policy)
        self.query_timeout_seconds = float(query_timeout_seconds)
        self.logger = logger or get_logger("queryprobe.runner")
        self.state = RunnerState.IDLE
        self.current_index: int | None = None

    def run(self, sequence: FixtureSequence) -> SequenceReport:
        report = SequenceReport(name=sequence.name, isolated=sequence.isolated, total_cases=len(sequence.cases))
        started = time.monotonic()
        self.state = RunnerState.IDLE
        self.current_index = None
        try:
            with _SessionLease(self.session_factory, self.logger) as lease:
                self._run_cases(sequence, lease, report)
        finally:
            report.state = self.state.value
            report.elapsed_seconds = time.monotonic() - started
            self._log_sequence(report)
        return report

    def _run_cases(self, sequence: FixtureSequence, lease: _SessionLease, report: SequenceReport) -> None:
        for index, case in enumerate(sequence.cases):
            self.current_index = index
            if not lease.active:
                self.state = RunnerState.CONNECTING
                try:
                    lease.open()
                except TargetConnectionError as exc:
                    report.cases.append(self._failure(index, case, case.query, FailureKind.CONNECTION_ERROR, str(exc)))
                    self._log_case(sequence, report.cases[-1])
                    self.state = RunnerState.FAILED
                    return

            case_report = self._run_case(index, case, lease)
            report.cases.append(case_report)
            self._log_case(sequence, case_report)
            if case_report.passed:
                continue
            if case_report.kind is FailureKind.CONNECTION_ERROR or self.policy is FailurePolicy.FAIL_FAST:
                self.state = RunnerState.FAILED
                return

        self.state = RunnerState.DONE if all(item.passed for item in report.cases) else RunnerState.FAILED

    def _run_case(self, index: int, case: TestCase, lease: _SessionLease) -> CaseReport:
        started = time.monotonic()
        self.state = RunnerState.EXECUTING
        try:
            query = resolve_placeholders(case.query, case.params)
        except MissingParameterError as exc:
            return self._failure(index, case, case.query, FailureKind.MISSING_PARAMETER, str(exc))

        max_attempts = 1 + (case.retries if is_idempotent(query) else 0)
        attempt = 0
        while True:
            attempt += 1
            try:
                if not lease.active:
                    self.state = RunnerState.CONNECTING
                    lease.open()
                self.state = RunnerState.EXECUTING
                actual = lease.execute(query, self.query_timeout_seconds)
            except TargetConnectionError as exc:
                return self._failure(index, case, query, FailureKind.CONNECTION_ERROR, str(exc), attempts=attempt, started=started)
            except (ProtocolError, QueryTimeoutError) as exc:
                if isinstance(exc, MalformedResponseError):
                    lease.release()
                kind = exc.kind or FailureKind.PROTOCOL_ERROR
                if kind in _RETRYABLE_KINDS and attempt < max_attempts:
                    self.logger.info(
                        "retrying idempotent query",
                        extra={"event_action": "retry", "case_index": index, "query": query, "payload": {"attempt": attempt}},
                    )
                    continue
                return self._failure(
                    index,
                    case,
                    query,
                    kind,
                    str(exc),
                    error_code=getattr(exc, "code", None),
                    raw=getattr(exc, "raw", None),
                    attempts=attempt,
                    started=started,
                )
            except Exception as exc:
                # Unclassified driver failure; the wire state is unknown.
                lease.release()
                return self._failure(
                    index,
                    case,
                    query,
                    FailureKind.PROTOCOL_ERROR,
                    f"{type(exc).__name__}: {exc}",
                    attempts=attempt,
                    started=started,
                )
            break

        self.state = RunnerState.COMPARING
        verdict = compare(case.expected, actual)
        return CaseReport(
            index=index,
            name=case.label(index),
            query=query,
            outcome=CaseOutcome.PASS if verdict.passed else CaseOutcome.FAIL,
            kind=None if verdict.passed else FailureKind.ASSERTION_FAILURE,
            diffs=verdict.diffs,
            attempts=attempt,
            elapsed_seconds=time.monotonic() - started,
        )

    @staticmethod
    def _failure(
        index: int,
        case: TestCase,
        query: str,
        kind: FailureKind,
        error: str,
        *,
        error_code: int | None = None,
        raw: object = None,
        attempts: int = 1,
        started: float | None = None,
    ) -> CaseReport:
        return CaseReport(
            index=index,
            name=case.label(index),
            query=query,
            outcome=CaseOutcome.FAIL,
            kind=kind,
            error=error,
            error_code=error_code,
            raw=None if raw is None else repr(raw),
            attempts=attempts,
            elapsed_seconds=(time.monotonic() - started) if started is not None else 0.0,
        )

    def _log_case(self, sequence: FixtureSequence, case_report: CaseReport) -> None:
        self.logger.log(
            logging.INFO if case_report.passed else logging.WARNING,
            f"case {case_report.name} {case_report.outcome.value}",
            extra={
                "sequence": sequence.name,
                "case_index": case_report.index,
                "query": case_report.query,
                "event_action": "case",
                "event_type": case_report.kind.value if case_report.kind else None,
                "event_outcome": "success" if case_report.passed else "failure",
                "event_duration_ns": int(case_report.elapsed_seconds * 1_000_000_000),
                "payload": {"details": case_report.describe()} if not case_report.passed else None,
            },
        )

    def _log_sequence(self, report: SequenceReport) -> None:
        self.logger.info(
            f"sequence {report.name} {report.state}",
            extra={
                "sequence": report.name,
                "event_action": "sequence",
                "event_outcome": "success" if report.passed else "failure",
                "event_duration_ns": int(report.elapsed_seconds * 1_000_000_000),
            },
        )
        emit_metric(self.logger, name="cases_failed", value=len(report.failures), sequence=report.name)
        emit_metric(self.logger, name="cases_not_run", value=report.skipped, sequence=report.name)


def run_sequences(
    sequences: Sequence[FixtureSequence],
    session_factory: SessionFactory,
    config: RunnerConfig | None = None,
    *,
    logger: logging.Logger | None = None,
) -> RunReport:
    """Run every sequence on its own session.

    Isolated sequences run concurrently on a worker pool. Sequences that share
    server state run one after another on the calling thread, in input order.
    The report keeps input order either way.
    """
    runner_config = config or RunnerConfig()
    run_logger = logger or get_logger("queryprobe.runner")
    results: list[SequenceReport | None] = [None] * len(sequences)
    lock = threading.Lock()

    def _run(index: int) -> None:
        runner = SequenceRunner(
            session_factory,
            policy=runner_config.policy,
            query_timeout_seconds=runner_config.query_timeout_seconds,
            logger=run_logger,
        )
        sequence_report = runner.run(sequences[index])
        with lock:
            results[index] = sequence_report

    isolated = [index for index, sequence in enumerate(sequences) if sequence.isolated]
    shared = [index for index, sequence in enumerate(sequences) if not sequence.isolated]
    with ThreadPoolExecutor(max_workers=runner_config.max_workers, thread_name_prefix="queryprobe-seq") as pool:
        futures = [pool.submit(_run, index) for index in isolated]
        for index in shared:
            _run(index)
        for future in futures:
            future.result()
    return RunReport(sequences=[item for item in results if item is not None])
