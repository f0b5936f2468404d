from __future__ import annotations

import asyncio
import functools
import time
from typing import Any, Callable, Iterable, Optional, Tuple, TypeVar

T = TypeVar("T")


class UpstreamTimeout(RuntimeError):
    """Raised when an outbound vendor call outlives its deadline."""


class Deadline:
    """Wall-clock budget for one outbound call, created per request."""

    __slots__ = ("seconds", "_expires")

    def __init__(self, seconds: float) -> None:
        self.seconds = max(float(seconds), 0.1)
        self._expires = time.monotonic() + self.seconds

    def remaining(self) -> float:
        return max(self._expires - time.monotonic(), 0.0)

    @property
    def expired(self) -> bool:
        return time.monotonic() >= self._expires

    def check(self) -> None:
        if self.expired:
            raise UpstreamTimeout(f"upstream call aborted after {self.seconds:g}s")

    def timeout(self, connect_cap: Optional[float] = None) -> Tuple[float, float]:
        """Connect/read timeout pair for ``requests`` bounded by the remaining budget."""
        self.check()
        left = max(self.remaining(), 0.01)
        connect = min(left, connect_cap) if connect_cap else left
        return connect, left


def read_within(chunks: Iterable[bytes], deadline: Deadline) -> bytes:
    """Collect a streamed body, aborting once the deadline has passed."""
    buffer = bytearray()
    for chunk in chunks:
        deadline.check()
        if chunk:
            buffer.extend(chunk)
    deadline.check()
    return bytes(buffer)


async def run_with_deadline(func: Callable[..., T], *args: Any, deadline: Deadline, **kwargs: Any) -> T:
    """
    Run a blocking vendor call in a worker thread and stop waiting for it
    once ``deadline`` passes.

    ``requests`` read timeouts apply per socket read, so a vendor that keeps
    trickling bytes can hold the worker past the budget. The caller gets
    ``UpstreamTimeout`` on time regardless; the worker notices the expired
    deadline on its next chunk and unwinds on its own.
    """
    loop = asyncio.get_running_loop()
    call = functools.partial(func, *args, deadline=deadline, **kwargs)
    try:
        return await asyncio.wait_for(loop.run_in_executor(None, call), timeout=deadline.remaining())
    except asyncio.TimeoutError as exc:
        raise UpstreamTimeout(f"upstream call aborted after {deadline.seconds:g}s") from exc


__all__ = ["Deadline", "UpstreamTimeout", "read_within", "run_with_deadline"]
