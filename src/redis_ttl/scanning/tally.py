"""Per-run outcome counters."""

from __future__ import annotations

from pydantic import BaseModel, Field


class OutcomeTally(BaseModel):
    """Counts accumulated by one engine run.

    Attributes:
        visited: Keys yielded by SCAN and handed to the dispatcher.
        mutated: Keys whose TTL was changed.
        skipped: Keys the policy declined (condition not met, key gone, noop).
        errors: Keys whose mutation failed under the ``continue`` policy.
    """

    visited: int = Field(default=0, ge=0)
    mutated: int = Field(default=0, ge=0)
    skipped: int = Field(default=0, ge=0)
    errors: int = Field(default=0, ge=0)

    @property
    def degraded(self) -> bool:
        """True when the run completed but some keys could not be processed."""
        return self.errors > 0

    def merge(self, other: "OutcomeTally") -> "OutcomeTally":
        return OutcomeTally(
            visited=self.visited + other.visited,
            mutated=self.mutated + other.mutated,
            skipped=self.skipped + other.skipped,
            errors=self.errors + other.errors,
        )

    def summary(self) -> str:
        return f"visited={self.visited} mutated={self.mutated} skipped={self.skipped} errors={self.errors}"
