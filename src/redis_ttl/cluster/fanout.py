"""Concurrent per-primary scan runs across a Redis Cluster."""

from __future__ import annotations

import enum
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, List, Optional, Sequence

from loguru import logger
from pydantic import BaseModel, Field

from redis_ttl.cluster.topology import PrimaryNode
from redis_ttl.config import ScanJob
from redis_ttl.exceptions import FanOutError, RedisTtlError
from redis_ttl.rate import RateGovernor
from redis_ttl.scanning.engine import ScanEngine
from redis_ttl.scanning.tally import OutcomeTally


class ShardStatus(str, enum.Enum):
    """Outcome of one shard run."""

    COMPLETED = "completed"
    FAILED = "failed"


class ShardResult(BaseModel):
    """Result of one engine run.

    Attributes:
        label: Shard label, the primary address in cluster mode.
        status: Whether the run completed or failed.
        tally: Counters at the end of the run (partial on failure).
        error: Error message if the run failed.
        duration: Wall-clock seconds spent in the run.
    """

    label: str
    status: ShardStatus = ShardStatus.COMPLETED
    tally: OutcomeTally = Field(default_factory=OutcomeTally)
    error: Optional[str] = None
    duration: float = 0.0

    @property
    def is_success(self) -> bool:
        return self.status == ShardStatus.COMPLETED

    @staticmethod
    def success(label: str, tally: OutcomeTally, duration: float = 0.0) -> "ShardResult":
        return ShardResult(label=label, tally=tally, duration=duration)

    @staticmethod
    def failure(label: str, error: str, tally: Optional[OutcomeTally] = None, duration: float = 0.0) -> "ShardResult":
        return ShardResult(
            label=label,
            status=ShardStatus.FAILED,
            tally=tally or OutcomeTally(),
            error=error,
            duration=duration,
        )


class ClusterFanOut:
    """Run one :class:`ScanEngine` per primary, concurrently.

    Each engine scans only its own primary (through a dedicated client
    from *scan_client_factory*) and mutates through the shared
    cluster-aware *mutation_client*. A failing shard does not cancel
    its siblings; failures are aggregated once every shard finished.

    Parameters:
        job: Job template; each shard runs it under its own label.
        primaries: Primaries to scan.
        mutation_client: Cluster-aware client, shared by all shards.
        scan_client_factory: Builds the scan client for one address.
        governor_factory: Builds a fresh governor per shard.
        cancel: Event shared by every shard run.
    """

    def __init__(
        self,
        job: ScanJob,
        primaries: Sequence[PrimaryNode],
        mutation_client: Any,
        scan_client_factory: Callable[[str], Any],
        governor_factory: Callable[[], RateGovernor],
        cancel: Optional[threading.Event] = None,
    ) -> None:
        self._job = job
        self._primaries = list(primaries)
        self._mutation_client = mutation_client
        self._scan_client_factory = scan_client_factory
        self._governor_factory = governor_factory
        self._cancel = cancel if cancel is not None else threading.Event()

    def run(self) -> List[ShardResult]:
        """Scan every primary and wait for all of them.

        Returns:
            One result per primary, in discovery order.

        Raises:
            FanOutError: If any shard failed; chained from the first
                failure.
        """
        if not self._primaries:
            return []

        errors: dict[str, BaseException] = {}
        with ThreadPoolExecutor(
            max_workers=len(self._primaries), thread_name_prefix="redis-ttl-shard"
        ) as executor:
            futures = [executor.submit(self._run_shard, primary, errors) for primary in self._primaries]
            try:
                results = [future.result() for future in futures]
            except KeyboardInterrupt:
                # Let the shard loops unwind before the executor joins them
                self._cancel.set()
                raise

        failed = [result for result in results if not result.is_success]
        if failed:
            error = FanOutError(results)
            raise error from errors.get(failed[0].label)
        return results

    def _run_shard(self, primary: PrimaryNode, errors: dict[str, BaseException]) -> ShardResult:
        label = primary.address
        started = time.monotonic()
        scan_client = None
        try:
            scan_client = self._scan_client_factory(label)
            engine = ScanEngine(
                self._job.with_label(label),
                scan_client=scan_client,
                mutation_client=self._mutation_client,
                governor=self._governor_factory(),
                cancel=self._cancel,
            )
            logger.bind(shard=label).info("starting scan for: {}", label)
            tally = engine.run()
            return ShardResult.success(label, tally, time.monotonic() - started)
        except RedisTtlError as exc:
            errors[label] = exc
            return ShardResult.failure(label, str(exc), exc.tally, time.monotonic() - started)
        except Exception as exc:
            logger.bind(shard=label).exception("unexpected failure while scanning {}", label)
            errors[label] = exc
            return ShardResult.failure(label, f"{type(exc).__name__}: {exc}", duration=time.monotonic() - started)
        finally:
            if scan_client is not None:
                scan_client.close()
