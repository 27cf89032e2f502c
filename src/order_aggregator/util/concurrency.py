from __future__ import annotations

from concurrent.futures import ALL_COMPLETED, FIRST_COMPLETED, Executor, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Callable, Dict, Generic, Iterable, List, Optional, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Completed result of one joined task: either a value or the error it raised."""

    value: Optional[T] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _guarded(call: Callable[[], T]) -> Callable[[], Outcome[T]]:
    def _run() -> Outcome[T]:
        try:
            return Outcome(value=call())
        except (KeyboardInterrupt, SystemExit):
            raise
        except BaseException as e:  # captured in the outcome, reported by the caller
            return Outcome(error=e)

    return _run


def join_all(calls: Sequence[Callable[[], T]], executor: Optional[Executor] = None) -> List[Outcome[T]]:
    """
    Run every call concurrently and wait until all of them have finished,
    whatever their individual result. Returns one Outcome per call in the
    order the calls were given.

    With no executor a pool sized to len(calls) is created for this join and
    shut down on every exit path. A supplied executor is borrowed and left
    running.
    """
    if not calls:
        return []
    if executor is None:
        with ThreadPoolExecutor(max_workers=len(calls), thread_name_prefix="join") as scoped:
            return _submit_and_join(calls, scoped)
    return _submit_and_join(calls, executor)


def _submit_and_join(calls: Sequence[Callable[[], T]], executor: Executor) -> List[Outcome[T]]:
    futures: List[Future[Outcome[T]]] = [executor.submit(_guarded(call)) for call in calls]
    wait(futures, return_when=ALL_COMPLETED)
    return [fut.result() for fut in futures]


def parallel_map_ordered(
    func: Callable[[T], R],
    items: Sequence[T] | Iterable[T],
    max_workers: int,
) -> List[R]:
    """
    Execute func over items in a thread pool and return results preserving the
    input order. Exceptions from workers are propagated.

    Uses a sliding window of futures so large iterables are not materialized.
    """
    results: List[R] = []
    iterator = iter(items)
    inflight: Dict[Future[R], int] = {}
    pending: Dict[int, R] = {}
    next_index = 0
    submitted = 0

    def _submit_next() -> bool:
        nonlocal submitted
        try:
            item = next(iterator)
        except StopIteration:
            return False
        inflight[executor.submit(func, item)] = submitted
        submitted += 1
        return True

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        for _ in range(max_workers):
            if not _submit_next():
                break

        while inflight:
            done, _ = wait(inflight.keys(), return_when=FIRST_COMPLETED)
            for fut in done:
                idx = inflight.pop(fut)
                try:
                    pending[idx] = fut.result()
                except BaseException:
                    for pending_fut in inflight:
                        pending_fut.cancel()
                    raise
            for _ in range(len(done)):
                if not _submit_next():
                    break
            while next_index in pending:
                results.append(pending.pop(next_index))
                next_index += 1

    return results
