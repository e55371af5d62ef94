"""Resolver discovery: query every host of a network range and store the answers."""
from __future__ import annotations

import argparse
import asyncio
import os
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.traceback import install as install_rich_traceback

from netProbe.db.sinks import SinkError, open_sink
from netProbe.scanner.addresses import iterate_addresses
from netProbe.scanner.config import ConfigError, ScanConfig
from netProbe.scanner.coordinator import ScanCoordinator, ScanStats
from netProbe.scanner.dispatcher import DnsDispatcher, QueryDispatcher
from netProbe.logging_config import get_logger, sanitize_dsn

install_rich_traceback()
console = Console()
logger = get_logger("cli")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="dns-netprobe",
        description="Query every address of a network range as a DNS resolver and record the answers",
    )
    parser.add_argument("--domain", help="Domain to query")
    parser.add_argument("--network", help="Network range to query, in CIDR notation")
    parser.add_argument("--timeout", type=float, help="Timeout for DNS queries in seconds (default 5)")
    parser.add_argument("--domains", help="Comma-separated list of additional domains to query")
    parser.add_argument(
        "--db",
        default=os.getenv("NETPROBE_DB"),
        help="SQLite database file or PostgreSQL DSN (default dns.db)",
    )
    parser.add_argument("--concurrent", type=int, help="Limit for concurrent queries (default 256)")
    parser.add_argument("--qtype", help="DNS query type (default A)")
    parser.add_argument("--tcp", action="store_true", help="Send queries over TCP instead of UDP")
    parser.add_argument("--port", type=int, help="Destination port (default 53)")
    parser.add_argument(
        "--config",
        default=os.getenv("NETPROBE_CONFIG"),
        help="Path to scan YAML config; command-line flags take precedence",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log failed queries at INFO instead of DEBUG",
    )
    return parser.parse_args(argv)


def build_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    """Map CLI flags onto ScanConfig fields; unset flags stay None."""
    return {
        "domain": args.domain,
        "network": args.network,
        "timeout_seconds": args.timeout,
        "domains": args.domains,
        "database": args.db,
        "concurrency": args.concurrent,
        "qtype": args.qtype,
        "transport": "tcp" if args.tcp else None,
        "port": args.port,
        "log_failures": True if args.verbose else None,
    }


async def run_probe(cfg: ScanConfig, dispatcher: Optional[QueryDispatcher] = None) -> ScanStats:
    """Open the sink, scan the configured range and close the sink again."""
    network = cfg.address_range
    sink = await open_sink(cfg.database)
    try:
        if dispatcher is None:
            dispatcher = DnsDispatcher(qtype=cfg.qtype, transport=cfg.transport, port=cfg.port)
        coordinator = ScanCoordinator(
            dispatcher,
            sink,
            cfg.all_domains,
            cfg.concurrency,
            timeout=cfg.timeout_seconds,
            log_failures=cfg.log_failures,
        )
        logger.info(
            "Scanning network",
            extra={
                "network": str(network),
                "num_addresses": network.num_addresses,
                "qtype": cfg.qtype,
                "transport": cfg.transport,
                "db_target": sanitize_dsn(cfg.database),
            }
        )
        return await coordinator.run(iterate_addresses(network))
    finally:
        await sink.close()


def print_summary(stats: ScanStats) -> None:
    table = Table(title="Scan summary", show_header=False)
    table.add_column("metric", style="cyan")
    table.add_column("value", justify="right")
    table.add_row("addresses", str(stats.addresses))
    table.add_row("queries", str(stats.queries))
    table.add_row("records", str(stats.records))
    for kind, count in sorted(stats.failures.items()):
        table.add_row(f"failed ({kind})", str(count))
    if stats.sink_errors:
        table.add_row("sink errors", f"[red]{stats.sink_errors}")
    if stats.unit_errors:
        table.add_row("unit errors", f"[red]{stats.unit_errors}")
    table.add_row("peak in flight", str(stats.peak_in_flight))
    table.add_row("duration", f"{stats.duration:.1f}s")
    console.print(table)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    try:
        cfg = ScanConfig.from_sources(args.config, build_overrides(args))
    except ConfigError as exc:
        logger.error(
            f"Configuration error: {exc}",
            extra={"outcome": "fatal_error", "error_type": type(exc).__name__}
        )
        console.print(f"[red]Configuration error:[/red] {escape(str(exc))}")
        return 1

    console.print(
        f"[green]Probing {escape(cfg.network)} for {escape(', '.join(cfg.all_domains))}",
        highlight=False,
    )
    try:
        stats = asyncio.run(run_probe(cfg))
    except SinkError as exc:
        logger.error(
            f"Persistence error: {exc}",
            exc_info=True,
            extra={"outcome": "fatal_error", "error_type": type(exc).__name__}
        )
        console.print(f"[red]Persistence error:[/red] {escape(str(exc))}")
        return 1

    print_summary(stats)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
