"""Bounded, order-preserving thread pool map with cooperative cancellation.

``p_map(items, mapper, concurrency=N)`` runs at most ``N`` mapper calls at
once and returns results in input order. The sync orchestrator uses it to
fetch several accounts' transactions concurrently.

Cancellation
------------
Pass a ``threading.Event`` as ``cancel``. Once it is set, no new items are
submitted; calls already running are allowed to finish and their results are
kept. Items that never started are simply absent from the output, so callers
that need to know what ran should return something identifying from the
mapper.

Errors
------
- ``stop_on_error=True`` (default): the first mapper error propagates and
  not-yet-started work is cancelled.
- ``stop_on_error=False``: every mapper runs; failures are raised together as
  an ``ExceptionGroup`` once the pool drains.
- Return ``p_map_skip`` from the mapper to omit a value from the output.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import TypeVar

InT = TypeVar("InT")
OutT = TypeVar("OutT")


class _Skip:
    __slots__ = ()

    def __repr__(self) -> str:  # pragma: no cover - trivial
        return "p_map_skip"


# Sentinel value: mappers can `return p_map_skip` to omit the element.
p_map_skip: object = _Skip()


def p_map(
    iterable: Iterable[InT],
    mapper: Callable[[InT], OutT | object],
    *,
    concurrency: int,
    stop_on_error: bool = True,
    cancel: threading.Event | None = None,
    thread_name_prefix: str = "p_map",
) -> list[OutT]:
    """Map ``iterable`` through ``mapper`` with at most ``concurrency`` calls in flight."""

    if not isinstance(concurrency, int) or concurrency < 1:
        raise ValueError("concurrency must be a positive integer")

    it = enumerate(iterable)
    results: dict[int, OutT | object] = {}
    errors: list[Exception] = []
    future_to_idx: dict[Future, int] = {}

    def _cancelled() -> bool:
        return cancel is not None and cancel.is_set()

    def _submit(pool: ThreadPoolExecutor) -> Future | None:
        if _cancelled():
            return None
        try:
            idx, item = next(it)
        except StopIteration:
            return None
        fut = pool.submit(mapper, item)
        future_to_idx[fut] = idx
        return fut

    with ThreadPoolExecutor(max_workers=concurrency, thread_name_prefix=thread_name_prefix) as pool:
        active: set[Future] = set()
        for _ in range(concurrency):
            fut = _submit(pool)
            if fut is None:
                break
            active.add(fut)

        while active:
            done, active = wait(active, return_when=FIRST_COMPLETED)

            for fut in done:
                idx = future_to_idx.pop(fut)
                try:
                    results[idx] = fut.result()
                except Exception as e:  # noqa: BLE001
                    if stop_on_error:
                        try:
                            pool.shutdown(wait=False, cancel_futures=True)
                        finally:
                            raise
                    errors.append(e)

            # One new submission per completion keeps the window full.
            for _ in range(len(done)):
                fut = _submit(pool)
                if fut is None:
                    break
                active.add(fut)

    if errors:
        raise ExceptionGroup("p_map: one or more mapper calls failed", errors)

    out: list[OutT] = []
    for i in sorted(results):
        val = results[i]
        if val is p_map_skip:
            continue
        out.append(val)  # type: ignore[arg-type]
    return out


__all__ = ["p_map", "p_map_skip"]
