from __future__ import annotations

import threading
from typing import Any, Dict, Optional, Sequence

from rich.console import Console
from rich.markup import escape
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from ..models import MISSING_ID, EnrichedOrder


class EnrichProgress:
    def __init__(self, *, enabled: bool, total: Optional[int] = None, console: Optional[Console] = None) -> None:
        self._enabled = bool(enabled)
        self._console = console or Console(stderr=True)
        self._progress: Optional[Progress] = None
        self._task: Optional[Any] = None
        self._started = False
        if self._enabled:
            self._progress = Progress(
                TextColumn("{task.description}"),
                BarColumn(),
                TaskProgressColumn(),
                TextColumn("{task.fields[failed]}", justify="left"),
                TimeElapsedColumn(),
                console=self._console,
                transient=True,
            )
            self._task = self._progress.add_task("Enrichment", total=total, failed="")
        self._failed = 0
        self._lock = threading.Lock()

    def __enter__(self) -> EnrichProgress:
        if self._enabled and self._progress and not self._started:
            self._progress.start()
            self._started = True
        return self

    def __exit__(self, exc_type: Any, exc: Any, exc_tb: Any) -> None:
        if self._enabled and self._progress and self._started:
            self._progress.stop()
            self._started = False

    def advance(self, *, failed: bool = False) -> None:
        if not self._enabled or not self._progress or self._task is None:
            return
        # Called from the request worker threads.
        with self._lock:
            if failed:
                self._failed += 1
            label = f"failed={self._failed}" if self._failed else ""
            self._progress.update(self._task, advance=1, failed=label)


def _cell(value: Any) -> str:
    return "-" if value is None or value == MISSING_ID else str(value)


def render_enriched_table(orders: Sequence[EnrichedOrder], *, console: Optional[Console] = None) -> None:
    table = Table(title="Enriched Orders", show_header=True, header_style="bold")
    table.add_column("Order", style="cyan", justify="right")
    table.add_column("Offer", justify="right")
    table.add_column("Condition")
    table.add_column("Product", justify="right")
    table.add_column("Title")
    for order in orders:
        row = order.to_dict()
        condition = row["offerCondition"]
        table.add_row(
            str(row["orderId"]),
            _cell(row["offerId"]),
            f"[yellow]{condition}[/yellow]" if not order.has_offer else condition,
            _cell(row["productId"]),
            escape(_cell(row["productTitle"])),
        )
    (console or Console()).print(table)


def render_failures_table(failures: Dict[int, str], *, console: Optional[Console] = None) -> None:
    if not failures:
        return
    table = Table(title="Failed Orders", show_header=True, header_style="bold red")
    table.add_column("Seller", style="cyan", justify="right")
    table.add_column("Error", style="white")
    for seller_id, error in sorted(failures.items()):
        table.add_row(str(seller_id), escape(error))
    (console or Console(stderr=True)).print(table)


def render_run_summary_table(
    *,
    enabled: bool,
    metrics: Dict[str, Any],
    console: Optional[Console] = None,
) -> None:
    if not enabled:
        return
    table = Table(title="Run Summary", show_header=True, header_style="bold")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Sellers requested", str(metrics.get("requested", 0)))
    table.add_row("Orders enriched", str(metrics.get("enriched", 0)))
    table.add_row("Offer missing", str(metrics.get("offer_missing", 0)))
    table.add_row("Product missing", str(metrics.get("product_missing", 0)))
    table.add_row("Failed", str(metrics.get("failed", 0)))
    table.add_row("Started at", str(metrics.get("started_at", "")))
    (console or Console()).print(table)
