"""Scan-and-apply engine: walk one node's keyspace and apply a TTL policy."""

from __future__ import annotations

import enum
import threading
from typing import Any, Optional, Union

from loguru import logger

from redis_ttl import metrics
from redis_ttl.config import ScanJob
from redis_ttl.durations import format_ttl
from redis_ttl.exceptions import (
    KeyMutationError,
    OperationCancelledError,
    RateLimitError,
    RedisTtlError,
)
from redis_ttl.keys import display_key
from redis_ttl.models import FailurePolicy
from redis_ttl.policies import PolicyDispatcher
from redis_ttl.rate import RateGovernor, UnlimitedGovernor
from redis_ttl.scanning.cursor import KeyCursor
from redis_ttl.scanning.tally import OutcomeTally


class EngineState(str, enum.Enum):
    CREATED = "created"
    SCANNING = "scanning"
    APPLYING = "applying"
    COMPLETED = "completed"
    ABORTED = "aborted"


class ScanEngine:
    """Run one :class:`ScanJob` against a single node.

    Keys are fetched from *scan_client* batch by batch and mutated
    through *mutation_client*, one at a time and in the order the
    server yields them. In cluster mode the two differ: the scan client
    talks to one primary while the mutation client routes by slot.

    Parameters:
        job: The validated job.
        scan_client: Client the ``SCAN`` commands are sent to.
        mutation_client: Client the TTL commands are sent to; defaults
            to *scan_client*.
        governor: Paces mutations; unpaced when omitted.
        cancel: Event observed before every batch and while pacing.
    """

    def __init__(
        self,
        job: ScanJob,
        scan_client: Any,
        mutation_client: Optional[Any] = None,
        governor: Optional[RateGovernor] = None,
        cancel: Optional[threading.Event] = None,
    ) -> None:
        self._job = job
        self._label = job.label or "default"
        self._cursor = KeyCursor(
            scan_client,
            match=job.key_pattern,
            count=job.batch_hint,
            type_filter=job.type_filter,
            label=self._label,
        )
        self._dispatcher = PolicyDispatcher(
            mutation_client if mutation_client is not None else scan_client,
            job.policy,
            job.desired_ttl,
            label=self._label,
        )
        self._governor = governor or UnlimitedGovernor()
        self._cancel = cancel
        self._tally = OutcomeTally()
        self._state = EngineState.CREATED
        self._log = logger.bind(shard=self._label)

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def tally(self) -> OutcomeTally:
        return self._tally

    @property
    def label(self) -> str:
        return self._label

    def run(self) -> OutcomeTally:
        """Scan until the cursor is exhausted.

        Returns:
            The tally of the completed run.

        Raises:
            RedisTtlError: The error that aborted the run, with the
                partial tally attached as ``error.tally``.
        """
        if self._state is not EngineState.CREATED:
            raise RuntimeError(f"engine for {self._label} already ran (state={self._state.value})")

        self._log.info(
            "starting scan: pattern={} type={} mode={} ttl={}",
            self._job.key_pattern,
            self._job.type_filter.value if self._job.type_filter else "any",
            self._job.policy.value,
            format_ttl(self._job.desired_ttl),
        )
        try:
            self._state = EngineState.SCANNING
            while not self._cursor.exhausted:
                self._check_cancelled()
                batch = self._cursor.fetch()
                self._state = EngineState.APPLYING
                for key in batch:
                    self._apply(key)
                self._state = EngineState.SCANNING
        except RedisTtlError as exc:
            self._state = EngineState.ABORTED
            exc.tally = self._tally.model_copy()
            self._log.error("scan aborted after {} batches: {} ({})", self._cursor.batches, exc, self._tally.summary())
            raise

        self._state = EngineState.COMPLETED
        if self._tally.degraded:
            self._log.warning("scan completed with errors: {}", self._tally.summary())
        else:
            self._log.success("scan completed: {}", self._tally.summary())
        return self._tally.model_copy()

    def _check_cancelled(self) -> None:
        if self._cancel is not None and self._cancel.is_set():
            raise OperationCancelledError(f"[{self._label}] scan cancelled")

    def _acquire(self) -> None:
        try:
            self._governor.acquire(self._cancel)
        except RedisTtlError:
            raise
        except Exception as exc:
            raise RateLimitError(str(exc)) from exc

    def _apply(self, key: Union[bytes, str]) -> None:
        self._acquire()
        self._tally.visited += 1
        metrics.KEYS_VISITED.labels(shard=self._label).inc()
        try:
            applied = self._dispatcher.apply(key)
        except KeyMutationError as exc:
            if self._job.failure_policy is FailurePolicy.ABORT:
                raise
            self._tally.errors += 1
            metrics.KEY_ERRORS.labels(shard=self._label).inc()
            self._log.warning("skipping key after error: {}", exc)
            return

        if applied:
            self._tally.mutated += 1
            metrics.KEYS_MUTATED.labels(shard=self._label).inc()
            self._log.info("{}, ttl {}", display_key(key), format_ttl(self._job.desired_ttl) if self._job.policy.requires_ttl else "cleared")
        else:
            self._tally.skipped += 1
            metrics.KEYS_SKIPPED.labels(shard=self._label).inc()
