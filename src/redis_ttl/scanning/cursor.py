"""Cursor-based key iteration over ``SCAN``."""

from __future__ import annotations

from typing import Any, List, Optional, Union

from redis.exceptions import RedisError

from redis_ttl.exceptions import ScanError
from redis_ttl.models import KeyType


class KeyCursor:
    """Capability object wrapping one ``SCAN`` iteration.

    The cursor value is owned by the server; callers only see
    :meth:`fetch` and :attr:`exhausted`. Batches may be empty while the
    iteration is still in progress.

    Parameters:
        client: The redis-py client scanned (a single node).
        match: ``MATCH`` pattern.
        count: ``COUNT`` hint, omitted when 0.
        type_filter: ``TYPE`` filter, omitted when ``None``.
        label: Shard label used in error messages.
    """

    def __init__(
        self,
        client: Any,
        match: str,
        count: int = 0,
        type_filter: Optional[KeyType] = None,
        label: str = "",
    ) -> None:
        self._client = client
        self._match = match
        self._count = count or None
        self._type = type_filter.value if type_filter is not None else None
        self._label = label
        self._cursor: int = 0
        self._started = False
        self._batches = 0

    @property
    def exhausted(self) -> bool:
        return self._started and self._cursor == 0

    @property
    def batches(self) -> int:
        return self._batches

    def fetch(self) -> List[Union[bytes, str]]:
        """Fetch the next batch of keys, as returned by the client.

        Raises:
            ScanError: If the server rejected the SCAN call or its reply
                could not be decoded.
        """
        if self.exhausted:
            return []
        try:
            cursor, keys = self._client.scan(
                cursor=self._cursor,
                match=self._match,
                count=self._count,
                _type=self._type,
            )
        except (RedisError, UnicodeError) as exc:
            raise ScanError(self._label, str(exc)) from exc
        self._started = True
        self._cursor = int(cursor)
        self._batches += 1
        return list(keys)
