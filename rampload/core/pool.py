from __future__ import annotations

import asyncio
import itertools
from dataclasses import dataclass, field
from typing import Protocol

from rampload.core.aggregator import ResultAggregator
from rampload.core.models import IterationOutcome, UserState
from rampload.exceptions import PoolSpawnError, ValidationError
from rampload.logger import Logger, session_logger


class IterationRunner(Protocol):
    async def run_iteration(
        self,
        user_id: int,
        stop_event: asyncio.Event | None = None,
    ) -> IterationOutcome: ...


@dataclass(eq=False)
class VirtualUser:
    user_id: int
    state: UserState = UserState.IDLE
    iterations: int = 0
    stop_event: asyncio.Event = field(default_factory=asyncio.Event, repr=False)
    task: asyncio.Task[None] | None = field(default=None, repr=False)

    def request_stop(self) -> None:
        if self.state in (UserState.IDLE, UserState.RUNNING):
            self.state = UserState.STOPPING
        self.stop_event.set()


class VirtualUserPool:
    """Keeps exactly N virtual users running.

    Shrinking retires the most recently spawned users. A retired user
    finishes its in-flight iteration, never starts another one, and is
    dropped once it reaches STOPPED.
    """

    def __init__(
        self,
        runner: IterationRunner,
        aggregator: ResultAggregator,
        *,
        max_users: int | None = None,
        logger: Logger | None = None,
    ) -> None:
        if max_users is not None and max_users < 0:
            raise ValueError("max_users must be >= 0")

        self._runner = runner
        self._aggregator = aggregator
        self._max_users = max_users
        self._logger = logger or session_logger

        self._ids = itertools.count(start=1)
        self._resize_lock = asyncio.Lock()
        # Spawn order; the tail is retired first.
        self._active: list[VirtualUser] = []
        self._retiring: set[VirtualUser] = set()

    @property
    def active_count(self) -> int:
        return len(self._active)

    @property
    def retiring_count(self) -> int:
        return len(self._retiring)

    def users(self) -> list[VirtualUser]:
        return list(self._active) + list(self._retiring)

    async def resize(self, target_count: int) -> None:
        if target_count < 0:
            raise ValidationError("NEGATIVE_TARGET", "target_count must be >= 0", {"target_count": target_count})

        async with self._resize_lock:
            current = len(self._active)
            if target_count == current:
                return

            if target_count > current:
                if self._max_users is not None and target_count > self._max_users:
                    raise PoolSpawnError(
                        "target concurrency exceeds max_users",
                        {"target": target_count, "max_users": self._max_users, "active": current},
                        code="MAX_USERS_EXCEEDED",
                    )
                for _ in range(target_count - current):
                    self._spawn()
            else:
                excess = self._active[target_count:]
                del self._active[target_count:]
                for user in reversed(excess):
                    user.request_stop()
                    self._retiring.add(user)

            self._logger.debug(
                "pool.resize",
                event="pool.resize",
                previous=current,
                target=target_count,
                retiring=len(self._retiring),
            )

    def stop_all(self) -> asyncio.Future:
        """Mark every user STOPPING; the returned future resolves once all are STOPPED."""
        users = self.users()
        self._active.clear()
        for user in users:
            user.request_stop()
            self._retiring.add(user)

        tasks = [user.task for user in users if user.task is not None]
        return asyncio.ensure_future(_wait_all(tasks))

    def _spawn(self) -> None:
        user = VirtualUser(user_id=next(self._ids))
        try:
            user.task = asyncio.create_task(self._user_loop(user), name=f"vu-{user.user_id}")
        except Exception as exc:
            raise PoolSpawnError(
                "failed to start virtual user",
                {"user_id": user.user_id, "error_type": type(exc).__name__, "error": str(exc)},
            ) from exc
        user.state = UserState.RUNNING
        self._active.append(user)

    async def _user_loop(self, user: VirtualUser) -> None:
        try:
            # The task may start after a shrink already retired this user.
            while user.state is UserState.RUNNING:
                outcome = await self._runner.run_iteration(user.user_id, user.stop_event)
                self._aggregator.record(outcome)
                user.iterations += 1
        finally:
            user.state = UserState.STOPPED
            self._retiring.discard(user)
            if user in self._active:
                self._active.remove(user)
            self._logger.debug(
                "pool.user_stopped",
                event="pool.user_stopped",
                user_id=user.user_id,
                iterations=user.iterations,
            )


async def _wait_all(tasks: list[asyncio.Task[None]]) -> None:
    if not tasks:
        return
    results = await asyncio.gather(*tasks, return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException) and not isinstance(result, asyncio.CancelledError):
            raise result
