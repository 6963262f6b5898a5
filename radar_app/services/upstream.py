from __future__ import annotations

from typing import Iterable
import socket

import requests


DECODE_STAGES = ("decompress", "parse", "missingFields")


class SourceError(RuntimeError):
    """Base class for every failure a radar source strategy can raise."""


class NetworkError(SourceError):
    """Connection failure, timeout or non-2xx response."""

    def __init__(self, message: str, *, url: str | None = None) -> None:
        super().__init__(message)
        self.url = url


class ListingParseError(SourceError):
    """A directory listing contained no candidate grid files."""


class DecodeError(SourceError):
    """A grid payload could not be turned into points."""

    def __init__(self, stage: str, message: str) -> None:
        if stage not in DECODE_STAGES:
            raise ValueError(f"Unknown decode stage: {stage}")
        super().__init__(f"{stage}: {message}")
        self.stage = stage


class StationLookupError(SourceError):
    """A single station's forecast lookup failed."""

    def __init__(self, station_id: str, message: str) -> None:
        super().__init__(f"{station_id}: {message}")
        self.station_id = station_id


def _iter_exception_chain(exc: BaseException) -> Iterable[BaseException]:
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        next_exc = current.__cause__ or current.__context__
        current = next_exc if isinstance(next_exc, BaseException) else None


def http_status_from_exception(exc: BaseException) -> int | None:
    for candidate in _iter_exception_chain(exc):
        response = getattr(candidate, "response", None)
        status_code = getattr(response, "status_code", None)
        if isinstance(status_code, int):
            return status_code
        status = getattr(candidate, "status", None)
        if isinstance(status, int):
            return status
    return None


def is_timeout_error(exc: BaseException) -> bool:
    timeout_types: tuple[type[BaseException], ...] = (
        TimeoutError,
        socket.timeout,
        requests.exceptions.Timeout,
    )
    return any(isinstance(candidate, timeout_types) for candidate in _iter_exception_chain(exc))


def describe_failure(exc: BaseException) -> str:
    """One-line summary of a strategy failure for the fallback log."""
    if is_timeout_error(exc):
        return f"timeout ({exc})"
    status_code = http_status_from_exception(exc)
    if status_code is not None:
        return f"http {status_code} ({exc})"
    return f"{type(exc).__name__}: {exc}"
