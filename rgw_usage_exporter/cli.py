"""
Command line interface for the RGW usage exporter.
"""

import argparse
import dataclasses
import logging
import signal
import sys
import threading
from typing import List, Optional

from prometheus_client import REGISTRY, start_http_server
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from .collector import RGWUsageCollector
from .models import ExporterConfig, Snapshot
from .rgw_client import RGWAdminClient

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(verbose: bool = False):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        stream=sys.stdout,
    )


def format_bytes(b: Optional[float]) -> str:
    """Format bytes to human readable."""
    if b is None:
        return "-"
    for unit in ['B', 'KB', 'MB', 'GB', 'TB', 'PB']:
        if abs(b) < 1024:
            return f"{b:.1f} {unit}"
        b /= 1024
    return f"{b:.1f} PB"


def format_count(n: Optional[float]) -> str:
    if n is None:
        return "-"
    return f"{int(n):,}"


def format_flag(flag: Optional[bool]) -> str:
    if flag is None:
        return "-"
    return "[green]on[/green]" if flag else "off"


def load_config(args) -> ExporterConfig:
    """Environment first, then any flag given on the command line."""
    config = ExporterConfig.from_env()
    overrides = {
        'endpoint': args.endpoint,
        'store': args.store,
        'port': getattr(args, 'port', None),
        'insecure': True if args.insecure else None,
        'timeout': args.timeout,
        'workers': args.workers,
    }
    overrides = {k: v for k, v in overrides.items() if v is not None}
    return dataclasses.replace(config, **overrides)


def build_client(config: ExporterConfig) -> Optional[RGWAdminClient]:
    """Create the admin client. Returns None (after logging) when it cannot be built."""
    missing = config.missing_required()
    if missing:
        logger.error("Required environment variables: %s", ", ".join(missing))
        return None

    try:
        return RGWAdminClient(
            endpoint=config.endpoint,
            access_key=config.access_key,
            secret_key=config.secret_key,
            region=config.region,
            verify_tls=not config.insecure,
            timeout=config.timeout,
        )
    except ValueError as e:
        logger.error("Failed to create RGW admin client error=%s", e)
        return None


def cmd_serve(args, config: ExporterConfig) -> int:
    """Serve /metrics until SIGINT or SIGTERM."""
    client = build_client(config)
    if client is None:
        return 1

    collector = RGWUsageCollector(client, store=config.store, workers=config.workers)
    REGISTRY.register(collector)

    server, thread = start_http_server(config.port)
    logger.info("RADOSGW exporter started port=%s endpoint=%s store=%s",
                config.port, config.endpoint, config.store)

    stop = threading.Event()

    def _signal_handler(signum, frame):
        stop.set()

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    stop.wait()
    logger.info("Shutdown signal received, initiating graceful shutdown...")

    server.shutdown()
    server.server_close()
    thread.join(timeout=10)
    REGISTRY.unregister(collector)
    client.close()

    logger.info("Server stopped")
    return 0


def render_snapshot(snapshot: Snapshot, console: Console, limit: int = 50):
    """Print one collection pass as tables."""
    status = "[bold green]UP[/bold green]" if snapshot.up else "[bold red]DOWN[/bold red]"
    console.print()
    console.print(Panel.fit(
        f"[bold blue]RGW USAGE SNAPSHOT[/bold blue]  store={snapshot.store}  "
        f"{status}  {snapshot.duration_seconds:.2f}s",
        border_style="blue" if snapshot.up else "red"
    ))

    for error in snapshot.errors:
        console.print(f"[red]ERROR[/red] {escape(error)}")

    # Usage
    usage = Table(title=f"Usage ({len(snapshot.usage)} series)")
    usage.add_column("Bucket", style="cyan", max_width=40)
    usage.add_column("Owner", style="blue", max_width=20)
    usage.add_column("Category", style="magenta")
    usage.add_column("Ops", justify="right", style="green")
    usage.add_column("Successful", justify="right", style="green")
    usage.add_column("Sent", justify="right", style="yellow")
    usage.add_column("Received", justify="right", style="yellow")

    ranked = sorted(snapshot.usage.items(), key=lambda kv: kv[1].ops, reverse=True)
    for key, counters in ranked[:limit]:
        usage.add_row(
            key.bucket[:40], key.owner[:20], key.category,
            format_count(counters.ops), format_count(counters.successful_ops),
            format_bytes(counters.bytes_sent), format_bytes(counters.bytes_received),
        )
    console.print(usage)

    # Users
    users = Table(title="Users")
    users.add_column("User", style="cyan", max_width=30)
    users.add_column("Objects", justify="right", style="green")
    users.add_column("Size", justify="right", style="yellow")
    users.add_column("Quota", justify="center")
    users.add_column("Quota Size", justify="right")
    users.add_column("Quota Objects", justify="right")
    users.add_column("Bucket Quota", justify="center")
    users.add_column("Bucket Quota Size", justify="right")
    users.add_column("Bucket Quota Objects", justify="right")

    buckets = Table(title="Buckets")
    buckets.add_column("Bucket", style="cyan", max_width=40)
    buckets.add_column("Owner", style="blue", max_width=20)
    buckets.add_column("Objects", justify="right", style="green")
    buckets.add_column("Size", justify="right", style="yellow")

    for result in snapshot.users:
        if result.skipped:
            continue
        u = result.user
        users.add_row(
            u.user_id[:30], format_count(u.num_objects), format_bytes(u.size_bytes),
            format_flag(u.user_quota.enabled), format_bytes(u.user_quota.max_size_bytes),
            format_count(u.user_quota.max_objects),
            format_flag(u.bucket_quota.enabled), format_bytes(u.bucket_quota.max_size_bytes),
            format_count(u.bucket_quota.max_objects),
        )
        for b in result.buckets:
            buckets.add_row(b.bucket[:40], b.owner[:20], format_count(b.num_objects),
                            format_bytes(b.size_bytes))

    console.print(users)
    console.print(buckets)

    skipped = snapshot.skipped_users
    if skipped:
        table = Table(title=f"Skipped ({len(skipped)})")
        table.add_column("User", style="cyan")
        table.add_column("Scope")
        table.add_column("Reason", style="red")
        for result in skipped:
            scope = "buckets" if result.buckets_skipped else "user"
            table.add_row(escape(result.user_id), scope, escape(result.skip_reason))
        console.print(table)

    console.print()


def cmd_snapshot(args, config: ExporterConfig) -> int:
    """Run a single pass and print it."""
    client = build_client(config)
    if client is None:
        return 1

    try:
        collector = RGWUsageCollector(client, store=config.store, workers=config.workers)
        snapshot = collector.build_snapshot()
    finally:
        client.close()

    render_snapshot(snapshot, Console(), limit=args.limit)
    return 0 if snapshot.up else 1


def add_connection_args(p: argparse.ArgumentParser):
    p.add_argument('--endpoint',
                   help='RADOSGW endpoint URL (env: RADOSGW_ENDPOINT)')
    p.add_argument('--store',
                   help='Value of the store label (env: STORE, default: us-east-1)')
    p.add_argument('--insecure', action='store_true',
                   help='Skip TLS verification (env: INSECURE_SKIP_VERIFY)')
    p.add_argument('--timeout', type=float,
                   help='Admin API timeout seconds (env: RADOSGW_TIMEOUT, default: 30)')
    p.add_argument('--workers', type=int,
                   help='Parallel user lookups per pass (env: WALK_WORKERS, default: 1)')


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='RGW Usage Exporter',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Credentials are read from ACCESS_KEY and SECRET_KEY.

Examples:
  # Serve /metrics on the default port (9242)
  %(prog)s serve --endpoint http://rgw.example:8080

  # Print a single collection pass
  %(prog)s snapshot --endpoint http://rgw.example:8080 --store eu-west
        """
    )
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Debug logging')

    subparsers = parser.add_subparsers(dest='command', help='Command')

    # Serve
    serve_p = subparsers.add_parser('serve', help='Serve Prometheus metrics')
    add_connection_args(serve_p)
    serve_p.add_argument('--port', type=int,
                         help='Metrics port (env: METRICS_PORT, default: 9242)')
    serve_p.set_defaults(func=cmd_serve)

    # Snapshot
    snapshot_p = subparsers.add_parser('snapshot', help='Run one collection pass and print it')
    add_connection_args(snapshot_p)
    snapshot_p.add_argument('--limit', type=int, default=50,
                            help='Usage rows to show (default: 50)')
    snapshot_p.set_defaults(func=cmd_snapshot)

    return parser


def main(argv: List[str] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    configure_logging(args.verbose)
    try:
        config = load_config(args)
    except ValueError as e:
        logger.error("Invalid configuration: %s", e)
        return 1

    return args.func(args, config)


if __name__ == '__main__':
    sys.exit(main())
