"""Rendering of binary-safe Redis keys for logs and error messages."""

from __future__ import annotations

from typing import Union


def display_key(key: Union[bytes, bytearray, str]) -> str:
    """Return *key* as text; bytes that are not UTF-8 are backslash-escaped."""

    if isinstance(key, (bytes, bytearray)):
        return bytes(key).decode("utf-8", errors="backslashreplace")
    return str(key)
