"""Deterministic fault injection and simulated resource pressure.

Fault injection targets exactly one task by its branch path, so a test can
say "the n-2 branch of the root's n-1 branch fails with an I/O error"::

    faults = FaultPlan().inject("0.1", FaultKind.IO, message="disk gone")

Resource pressure gives every task a private :class:`TaskBuffer` sized
``index * bytes_per_index``.  When the buffer plus the cached reserve would
exceed the ceiling, allocation raises ``MemoryError``, which the task
boundary classifies as a Fatal :class:`ResourceExhaustedError`.  A scoped
recovery policy may drop the reserve and let the task try again.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum

from faultline.core.errors import DomainError, ResourceReleaseError
from faultline.core.settings import FaultlineSettings


class FaultKind(str, Enum):
    """What an injected fault raises inside the task body."""

    DOMAIN = "domain"            # DomainError, passes through unchanged
    IO = "io"                    # OSError, wrapped as WrappedSystemError
    INTERRUPTED = "interrupted"  # InterruptedError during the task's wait
    MEMORY = "memory"            # MemoryError, classified Fatal
    RELEASE = "release"          # task buffer fails on close


@dataclass
class FaultSpec:
    """A fault to inject into the task at ``path``."""

    path: str
    kind: FaultKind = FaultKind.IO
    message: str = "Injected test fault"
    delay: float = 0.0
    times: int | None = None  # None = every attempt

    def exception(self) -> Exception:
        if self.kind is FaultKind.DOMAIN:
            return DomainError(self.message)
        if self.kind is FaultKind.INTERRUPTED:
            return InterruptedError(self.message)
        if self.kind is FaultKind.MEMORY:
            return MemoryError(self.message)
        return OSError(self.message)


class FaultPlan:
    """Faults keyed by task path."""

    def __init__(self) -> None:
        self._faults: dict[str, FaultSpec] = {}

    def inject(
        self,
        path: str,
        kind: FaultKind | str = FaultKind.IO,
        *,
        message: str = "Injected test fault",
        delay: float = 0.0,
        times: int | None = None,
    ) -> FaultPlan:
        """Install a fault for one task path. Returns ``self`` for chaining."""
        self._faults[path] = FaultSpec(
            path=path,
            kind=FaultKind(kind),
            message=message,
            delay=delay,
            times=times,
        )
        return self

    def get(self, path: str) -> FaultSpec | None:
        """The fault that fires for this attempt of ``path``, if any."""
        spec = self._faults.get(path)
        if spec is None:
            return None
        if spec.times is not None:
            if spec.times <= 0:
                return None
            spec.times -= 1
        return spec

    async def trigger(self, spec: FaultSpec) -> None:
        """Wait ``delay`` seconds, then raise the configured failure.

        ``RELEASE`` faults do not raise here; they fire when the task's
        buffer is closed.
        """
        if spec.delay:
            await asyncio.sleep(spec.delay)
        if spec.kind is FaultKind.RELEASE:
            return
        raise spec.exception()

    def clear(self) -> None:
        self._faults.clear()

    def __len__(self) -> int:
        return len(self._faults)

    def __contains__(self, path: object) -> bool:
        return path in self._faults


class TaskBuffer:
    """A task's private scratch allocation."""

    def __init__(self, size: int, *, fail_on_close: bool = False) -> None:
        self._data: bytearray | None = bytearray(size)
        self.size = size
        self._fail_on_close = fail_on_close

    @property
    def closed(self) -> bool:
        return self._data is None

    def close(self) -> None:
        if self._data is None:
            return
        self._data = None
        if self._fail_on_close:
            raise ResourceReleaseError(f"failed to release {self.size}-byte task buffer")


class ResourcePressure:
    """Simulated memory ceiling plus a droppable cached reserve.

    Parameters
    ----------
    bytes_per_index : int
        Buffer bytes allocated per unit of the task's index.
    ceiling_bytes : int | None
        Allocation ceiling; ``None`` disables the check.
    pause_seconds : float
        Bounded pause every task body performs while holding its slot.
    reserve_bytes : int
        Size of the cached reserve counted against the ceiling until
        :meth:`release_reserve` drops it.
    """

    def __init__(
        self,
        bytes_per_index: int = 0,
        ceiling_bytes: int | None = None,
        pause_seconds: float = 0.0,
        reserve_bytes: int = 0,
    ) -> None:
        self.bytes_per_index = bytes_per_index
        self.ceiling_bytes = ceiling_bytes
        self.pause_seconds = pause_seconds
        self._reserve: bytearray | None = bytearray(reserve_bytes) if reserve_bytes else None

    @classmethod
    def from_settings(cls, settings: FaultlineSettings) -> ResourcePressure:
        return cls(
            bytes_per_index=settings.bytes_per_index,
            ceiling_bytes=settings.allocation_ceiling_bytes,
            pause_seconds=settings.task_pause_seconds,
        )

    @property
    def reserved_bytes(self) -> int:
        return len(self._reserve) if self._reserve is not None else 0

    def allocate(self, index: int, *, fail_on_close: bool = False) -> TaskBuffer:
        """Allocate the buffer for a task computing ``fib(index)``.

        Raises:
            MemoryError: the request plus the reserve exceeds the ceiling.
        """
        size = index * self.bytes_per_index
        if self.ceiling_bytes is not None and size + self.reserved_bytes > self.ceiling_bytes:
            raise MemoryError(
                f"cannot allocate {size} bytes: {self.reserved_bytes} reserved, "
                f"ceiling {self.ceiling_bytes}"
            )
        return TaskBuffer(size, fail_on_close=fail_on_close)

    def release_reserve(self) -> int:
        """Drop the cached reserve. Returns the number of bytes freed."""
        freed = self.reserved_bytes
        self._reserve = None
        return freed

    async def pause(self) -> None:
        if self.pause_seconds:
            await asyncio.sleep(self.pause_seconds)


__all__ = [
    "FaultKind",
    "FaultSpec",
    "FaultPlan",
    "TaskBuffer",
    "ResourcePressure",
]
