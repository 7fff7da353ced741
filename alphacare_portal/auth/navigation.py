from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Callable, Literal, Protocol

NavigationMode = Literal["push", "replace"]


class Navigator:
    """Records route changes requested by the auth layer."""

    def __init__(self) -> None:
        self.history: list[tuple[NavigationMode, str]] = []

    @property
    def current(self) -> str | None:
        if not self.history:
            return None
        return self.history[-1][1]

    def push(self, path: str) -> None:
        self.history.append(("push", path))

    def replace(self, path: str) -> None:
        self.history.append(("replace", path))


class ScheduledCall(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledCall: ...


class AsyncioScheduler:
    """Runs delayed callbacks on the running event loop."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledCall:
        return asyncio.get_running_loop().call_later(delay, callback)


@dataclass
class DeferredCall:
    delay: float
    callback: Callable[[], None]
    cancelled: bool = False
    fired: bool = False

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        if self.cancelled or self.fired:
            return
        self.fired = True
        self.callback()


@dataclass
class DeferredScheduler:
    """Holds delayed callbacks until ``run_pending`` is called.

    The portal app uses it to turn a delayed redirect into a ``Refresh``
    header instead of sleeping inside the request.
    """

    calls: list[DeferredCall] = field(default_factory=list)

    def call_later(self, delay: float, callback: Callable[[], None]) -> DeferredCall:
        call = DeferredCall(delay=delay, callback=callback)
        self.calls.append(call)
        return call

    @property
    def pending(self) -> list[DeferredCall]:
        return [call for call in self.calls if not call.cancelled and not call.fired]

    def run_pending(self) -> int:
        fired = 0
        for call in list(self.pending):
            call.fire()
            fired += 1
        return fired
