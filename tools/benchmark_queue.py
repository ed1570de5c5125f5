#!/usr/bin/env -S uv run
"""
Queue Benchmark Tool for docqueue

Benchmarks DocumentQueue over the in-memory store (and optionally MongoDB)
using realistic queue operations (add/get/ack).

Usage:
    uv run tools/benchmark_queue.py
    uv run tools/benchmark_queue.py --operations 5000 --concurrency 50
    uv run tools/benchmark_queue.py --adapters memory,mongo
    uv run tools/benchmark_queue.py --help

The mongo adapter reads DOCQUEUE_MONGODB_URL / DOCQUEUE_MONGODB_DATABASE and
writes to a throwaway collection per scenario.
"""
# /// script
# requires-python = ">=3.12"
# dependencies = [
#     "docqueue[mongo,tools]",
# ]
# ///

from __future__ import annotations

import asyncio
import logging
import statistics
import sys
import uuid
from dataclasses import dataclass, field
from time import perf_counter

import structlog
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from docqueue import DocumentQueue, DocumentStorePort, InMemoryDocumentStore, get_settings
from docqueue.adapters.store.mongo import MongoDocumentStore

app = typer.Typer(
    help="Benchmark docqueue store adapters",
    add_completion=False,
)


# ---------------------------------------------------------------------------
# Data Classes
# ---------------------------------------------------------------------------


@dataclass
class BenchmarkConfig:
    """Configuration for benchmark runs."""

    operations: int = 1000
    concurrency_levels: list[int] = field(default_factory=lambda: [10, 50])
    adapters: list[str] = field(default_factory=lambda: ["memory"])


@dataclass
class BenchmarkResult:
    """Results from a single benchmark run."""

    adapter_name: str
    operation: str
    total_time: float
    latencies: list[float]  # seconds

    @property
    def total_ops(self) -> int:
        return len(self.latencies)

    @property
    def ops_per_sec(self) -> float:
        return self.total_ops / self.total_time if self.total_time > 0 else 0.0

    def percentile(self, q: float) -> float:
        """q-th percentile latency in seconds (0 < q <= 1)."""
        if not self.latencies:
            return 0.0
        ordered = sorted(self.latencies)
        return ordered[min(int(len(ordered) * q), len(ordered) - 1)]

    @property
    def p50(self) -> float:
        return statistics.median(self.latencies) if self.latencies else 0.0

    @property
    def max_latency(self) -> float:
        return max(self.latencies) if self.latencies else 0.0


def format_latency_ms(seconds: float) -> str:
    ms = seconds * 1000
    if ms < 1:
        return f"{ms:.3f}ms"
    if ms < 10:
        return f"{ms:.2f}ms"
    return f"{ms:.1f}ms"


# ---------------------------------------------------------------------------
# Scenarios
# ---------------------------------------------------------------------------


async def timed(coro_fn, n: int, concurrency: int) -> tuple[float, list[float]]:
    """Run coro_fn() n times, `concurrency` at a time. Returns (wall time, latencies)."""
    latencies: list[float] = []

    async def one() -> None:
        start = perf_counter()
        await coro_fn()
        latencies.append(perf_counter() - start)

    started = perf_counter()
    for i in range(0, n, concurrency):
        await asyncio.gather(*(one() for _ in range(min(concurrency, n - i))))
    return perf_counter() - started, latencies


async def scenario_add(queue: DocumentQueue, n: int, concurrency: int) -> tuple[float, list[float]]:
    return await timed(lambda: queue.add({"n": 1}), n, concurrency)


async def scenario_get_ack(queue: DocumentQueue, n: int, concurrency: int) -> tuple[float, list[float]]:
    """Lease and acknowledge n pre-added messages."""
    for i in range(n):
        await queue.add({"n": i})

    async def get_ack() -> None:
        message = await queue.get()
        if message is not None:
            await queue.ack(message.ack)

    return await timed(get_ack, n, concurrency)


async def scenario_dedup(queue: DocumentQueue, n: int, concurrency: int) -> tuple[float, list[float]]:
    """Add n messages spread over 10 dedup keys."""
    counter = iter(range(n))
    return await timed(
        lambda: queue.add({"key": next(counter) % 10}, dedup_key="key"), n, concurrency
    )


SCENARIOS = {
    "add": scenario_add,
    "get+ack": scenario_get_ack,
    "add-dedup": scenario_dedup,
}


# ---------------------------------------------------------------------------
# Store Adapter Setup
# ---------------------------------------------------------------------------


def create_store(adapter_name: str) -> DocumentStorePort:
    if adapter_name == "memory":
        return InMemoryDocumentStore()
    if adapter_name == "mongo":
        return MongoDocumentStore.from_settings(get_settings())
    raise ValueError(f"Unknown adapter: {adapter_name}")


async def run_adapter_benchmark(adapter_name: str, config: BenchmarkConfig) -> list[BenchmarkResult]:
    results = []
    for concurrency in config.concurrency_levels:
        for scenario_name, scenario in SCENARIOS.items():
            queue = DocumentQueue(
                store=create_store(adapter_name), name=f"bench-{uuid.uuid4().hex[:8]}"
            )
            await queue.create_indexes()
            total_time, latencies = await scenario(queue, config.operations, concurrency)
            results.append(
                BenchmarkResult(
                    adapter_name=adapter_name,
                    operation=f"{scenario_name}-c{concurrency}",
                    total_time=total_time,
                    latencies=latencies,
                )
            )
    return results


# ---------------------------------------------------------------------------
# Result Formatting
# ---------------------------------------------------------------------------


def format_results(results: list[BenchmarkResult]) -> None:
    console = Console()
    console.print()
    console.print(Panel("[bold cyan]docqueue Benchmark Results[/bold cyan]", expand=False))

    by_adapter: dict[str, list[BenchmarkResult]] = {}
    for result in results:
        by_adapter.setdefault(result.adapter_name, []).append(result)

    for adapter_name, adapter_results in by_adapter.items():
        console.print()
        console.print(f"[bold yellow]Adapter: {adapter_name}[/bold yellow]")
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Operation", style="cyan", width=16)
        table.add_column("Ops", justify="right")
        table.add_column("Ops/sec", justify="right", style="green")
        table.add_column("P50", justify="right")
        table.add_column("P95", justify="right")
        table.add_column("P99", justify="right")
        table.add_column("Max", justify="right")
        for result in adapter_results:
            table.add_row(
                result.operation,
                str(result.total_ops),
                f"{result.ops_per_sec:.1f}",
                format_latency_ms(result.p50),
                format_latency_ms(result.percentile(0.95)),
                format_latency_ms(result.percentile(0.99)),
                format_latency_ms(result.max_latency),
            )
        console.print(table)
    console.print()


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


@app.command()
def main(
    operations: int = typer.Option(
        1000, "--operations", "-n", help="Number of operations per scenario"
    ),
    concurrency: str = typer.Option(
        "10,50", "--concurrency", "-c", help="Comma-separated concurrency levels"
    ),
    adapters: str = typer.Option(
        "memory", "--adapters", "-a", help="Comma-separated adapters to test (memory, mongo)"
    ),
) -> None:
    """
    Benchmark docqueue store adapters.

    Measures throughput (ops/sec) and latency percentiles (p50/p95/p99/max)
    for add, get+ack and deduplicated add.
    """
    # Per-operation debug events would dominate the timings.
    structlog.configure(wrapper_class=structlog.make_filtering_bound_logger(logging.INFO))

    config = BenchmarkConfig(
        operations=operations,
        concurrency_levels=[int(c) for c in concurrency.split(",")],
        adapters=[a.strip() for a in adapters.split(",")],
    )

    all_results = []
    for adapter_name in config.adapters:
        try:
            all_results.extend(asyncio.run(run_adapter_benchmark(adapter_name, config)))
        except Exception as e:
            print(f"\nError benchmarking {adapter_name}: {e}", file=sys.stderr)

    if not all_results:
        print("\nNo benchmark results to display.", file=sys.stderr)
        raise typer.Exit(code=1)
    format_results(all_results)


if __name__ == "__main__":
    app()
