"""Tabular operator output."""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, Optional, Sequence

from rich.console import Console
from rich.table import Table

if TYPE_CHECKING:
    from sol_batch.batcher import Batch
    from sol_batch.executor import ExecutionResult
    from sol_batch.ops import BalanceRecord


def fmt_amount(value: float) -> str:
    return f"{value:.9f}".rstrip("0").rstrip(".") or "0"


def print_table(
    title: str,
    columns: Sequence[str],
    rows: Iterable[Sequence[object]],
    *,
    console: Optional[Console] = None,
) -> None:
    console = console or Console()
    table = Table(title=title, show_header=True, header_style="bold", expand=False)
    for col in columns:
        table.add_column(col, no_wrap=True)
    for row in rows:
        table.add_row(*(str(cell) for cell in row))
    console.print(table)


def print_batch_summary(batch: "Batch", signature: str, *, console: Optional[Console] = None) -> None:
    print_table(
        signature,
        ["address", "action", "amount"],
        [(op.address, op.action.value, fmt_amount(op.ui_amount)) for op in batch.operations],
        console=console,
    )


def print_balances(
    records: Sequence["BalanceRecord"],
    title: str,
    *,
    console: Optional[Console] = None,
) -> None:
    print_table(
        title,
        ["address", "balance", "raw amount", "lamports"],
        [(r.address, fmt_amount(r.balance), r.raw_amount, r.lamports) for r in records],
        console=console,
    )


def print_plan(batches: Sequence["Batch"], *, console: Optional[Console] = None) -> None:
    print_table(
        f"Planned: {sum(len(b) for b in batches)} accounts in {len(batches)} transactions",
        ["tx", "address", "action", "amount"],
        [
            (n, op.address, op.action.value, fmt_amount(op.ui_amount))
            for n, b in enumerate(batches, start=1)
            for op in b.operations
        ],
        console=console,
    )


def print_results(results: Sequence["ExecutionResult"], *, console: Optional[Console] = None) -> None:
    print_table(
        "Results",
        ["tx", "status", "accounts", "signature / error"],
        [
            (n, "ok" if r.ok else "UNCERTAIN", len(r.batch), r.signature if r.ok else f"{r.signature or '-'} {r.error}")
            for n, r in enumerate(results, start=1)
        ],
        console=console,
    )
