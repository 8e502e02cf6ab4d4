"""Bounded, order-preserving parallel map over a thread pool.

Used by the importer to ingest several statement files at once: each file
gets its own worker thread and its own database session. At most
``concurrency`` mapper calls run at the same time, and results come back in
input order.

``stop_on_error=True`` cancels work that has not started and re-raises the
first failure. With ``stop_on_error=False`` every item runs and failures are
raised together as an ``ExceptionGroup``.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait


def p_map[InT, OutT](
    iterable: Iterable[InT],
    mapper: Callable[[InT], OutT],
    *,
    concurrency: int,
    stop_on_error: bool = True,
) -> list[OutT]:
    """Map ``iterable`` through ``mapper`` with at most ``concurrency`` in flight."""

    if not isinstance(concurrency, int) or concurrency < 1:
        raise ValueError("concurrency must be a positive integer")

    pending = iter(enumerate(iterable))
    results: dict[int, OutT] = {}
    failures: list[tuple[int, Exception]] = []
    in_flight: dict[Future, int] = {}

    with ThreadPoolExecutor(max_workers=concurrency) as pool:

        def fill() -> None:
            while len(in_flight) < concurrency:
                nxt = next(pending, None)
                if nxt is None:
                    return
                idx, item = nxt
                in_flight[pool.submit(mapper, item)] = idx

        fill()
        while in_flight:
            done, _ = wait(in_flight, return_when=FIRST_COMPLETED)
            for fut in done:
                idx = in_flight.pop(fut)
                exc = fut.exception()
                if exc is None:
                    results[idx] = fut.result()
                    continue
                if stop_on_error:
                    pool.shutdown(wait=False, cancel_futures=True)
                    raise exc
                if not isinstance(exc, Exception):
                    raise exc
                failures.append((idx, exc))
            fill()

    if failures:
        failures.sort(key=lambda pair: pair[0])
        raise ExceptionGroup(
            "p_map: one or more mapper calls failed", [exc for _, exc in failures]
        )

    return [results[i] for i in sorted(results)]


__all__ = ["p_map"]
