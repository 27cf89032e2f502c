from __future__ import annotations

import io
from concurrent.futures import ThreadPoolExecutor

from rich.console import Console

from order_aggregator.util.rich_progress import EnrichProgress


def test_advance_counts_failures_across_threads() -> None:
    total = 400
    progress = EnrichProgress(enabled=True, total=total, console=Console(file=io.StringIO()))

    with ThreadPoolExecutor(max_workers=16) as pool:
        list(pool.map(lambda _: progress.advance(failed=True), range(total)))

    task = progress._progress.tasks[0]
    assert progress._failed == total
    assert task.completed == total
    assert task.fields["failed"] == f"failed={total}"


def test_disabled_progress_is_a_no_op() -> None:
    progress = EnrichProgress(enabled=False, total=3)

    with progress:
        progress.advance(failed=True)

    assert progress._failed == 0
