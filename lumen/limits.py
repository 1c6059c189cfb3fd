"""
Daily usage limits.

Counters live in a UsageStore owned by the caller, so several independent
limiters can exist side by side. State is in-memory and per process; a
horizontally scaled deployment keeps separate counters per instance.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

from lumen.utils import utc_day_key


@dataclass
class UsageCounter:
    standard_used: int = 0
    elevated_used: int = 0


@dataclass
class UsageStore:
    day_key: str = field(default_factory=utc_day_key)
    global_used: int = 0
    users: Dict[str, UsageCounter] = field(default_factory=dict)

    def reset(self, day_key: str) -> None:
        self.day_key = day_key
        self.global_used = 0
        self.users.clear()

    def counter(self, user_id: str) -> UsageCounter:
        return self.users.setdefault(str(user_id), UsageCounter())

    def peek(self, user_id: str) -> UsageCounter:
        return self.users.get(str(user_id)) or UsageCounter()


@dataclass(frozen=True)
class Limits:
    global_per_day: int = 50
    user_per_day: int = 5
    elevated_per_day: int = 20


@dataclass(frozen=True)
class Gate:
    ok: bool
    reason: Optional[str] = None  # "global" | "user"


class RateLimiter:
    def __init__(
        self,
        store: UsageStore | None = None,
        limits: Limits | None = None,
        today: Callable[[], str] = utc_day_key,
    ):
        self.store = store if store is not None else UsageStore(day_key=today())
        self.limits = limits or Limits()
        self.today = today

    def reset_if_new_day(self) -> None:
        key = self.today()
        if key != self.store.day_key:
            self.store.reset(key)

    def _cap(self, elevated: bool) -> int:
        return self.limits.elevated_per_day if elevated else self.limits.user_per_day

    @staticmethod
    def _used(counter: UsageCounter, elevated: bool) -> int:
        return counter.elevated_used if elevated else counter.standard_used

    def can_use(self, user_id: str, elevated: bool = False, bypass: bool = False) -> Gate:
        self.reset_if_new_day()
        if bypass:
            return Gate(ok=True)
        if self.store.global_used >= self.limits.global_per_day:
            return Gate(ok=False, reason="global")
        if self._used(self.store.peek(user_id), elevated) >= self._cap(elevated):
            return Gate(ok=False, reason="user")
        return Gate(ok=True)

    def consume(self, user_id: str, elevated: bool = False, bypass: bool = False) -> None:
        """Count one answered request. Call once, after a successful can_use."""
        self.reset_if_new_day()
        if bypass:
            return
        self.store.global_used += 1
        counter = self.store.counter(user_id)
        if elevated:
            counter.elevated_used += 1
        else:
            counter.standard_used += 1

    def remaining(self, user_id: str, elevated: bool = False) -> int:
        self.reset_if_new_day()
        used = self._used(self.store.peek(user_id), elevated)
        return max(0, self._cap(elevated) - used)

    def global_remaining(self) -> int:
        self.reset_if_new_day()
        return max(0, self.limits.global_per_day - self.store.global_used)
