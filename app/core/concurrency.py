from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Generic, Iterable, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Settled(Generic[T]):
    """Outcome of one task: exactly one of value/error is meaningful."""

    ok: bool
    value: T | None = None
    error: BaseException | None = None


async def _capture(aw: Awaitable[T], sem: asyncio.Semaphore | None) -> Settled[T]:
    try:
        if sem is None:
            return Settled(ok=True, value=await aw)
        async with sem:
            return Settled(ok=True, value=await aw)
    except Exception as e:
        return Settled(ok=False, error=e)


async def settle_all(
    awaitables: Iterable[Awaitable[T]],
    *,
    max_concurrency: int | None = None,
) -> list[Settled[T]]:
    """
    Run every awaitable inside one TaskGroup and return a Settled per input, in input order.

    Exceptions are captured per task so one failure never cancels its siblings.
    Cancellation of the caller still propagates to every child.
    """
    items = list(awaitables)
    if not items:
        return []

    sem = asyncio.Semaphore(max_concurrency) if max_concurrency else None
    tasks: list[asyncio.Task[Any]] = []
    async with asyncio.TaskGroup() as tg:
        for aw in items:
            tasks.append(tg.create_task(_capture(aw, sem)))
    return [t.result() for t in tasks]
