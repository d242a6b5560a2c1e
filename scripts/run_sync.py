"""Run a full or incremental sync from the remote site into the local store.

Reads the site profile and credentials from the environment (see
core.config.SyncConfig.from_env) and prints the run summary.

Usage:
    python scripts/run_sync.py                 # full sync
    python scripts/run_sync.py --incremental
    python scripts/run_sync.py --stats         # print store statistics only
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add repo root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from connectors.wordpress import SEOPressProvider, WordPressConnector
from core.config import SyncConfig
from core.models import SyncMode, SyncResult
from core.observability.logging import configure_logging
from local_store import LocalStore
from local_store.sync_meta import get_sync_stats
from sync_engine import SyncEngine
from sync_engine.field_audit import get_latest_audit


def print_progress(phase: str, progress: float, detail: str = None) -> None:
    suffix = f" {detail}" if detail else ""
    print(f"\r[{progress * 100:5.1f}%] {phase}{suffix}".ljust(80), end="", flush=True)


async def run_sync(config: SyncConfig, mode: SyncMode, show_progress: bool = True) -> SyncResult:
    """Open the store and the connector, then run one sync."""
    with LocalStore(config.db_path, config.legacy_db_path) as store:
        async with WordPressConnector(config) as connector:
            engine = SyncEngine(
                store,
                connector,
                config,
                side_data=[SEOPressProvider(connector.client)],
                progress=print_progress if show_progress else None,
            )
            result = await engine.sync(mode)
        if show_progress:
            print()
        return result


def print_stats(config: SyncConfig) -> None:
    with LocalStore(config.db_path, config.legacy_db_path) as store:
        stats = get_sync_stats(store)
        print(f"Records:   {stats.total_resources} ({stats.dirty_resources} dirty)")
        for post_type, count in sorted(stats.by_post_type.items()):
            print(f"  {post_type}: {count}")
        for taxonomy, count in sorted(stats.terms_by_taxonomy.items()):
            print(f"  terms[{taxonomy}]: {count}")
        print(f"Last sync: {stats.last_sync_time or 'never'}")

        audit = get_latest_audit(store)
        if audit is not None:
            print(f"Field audit {audit.audit_run_at}: {audit.summary}")
            for entry in audit.entries:
                if entry.status.value != "ok":
                    print(f"  [{entry.status.value}] {entry.field_name}: {entry.detail}")


def main():
    parser = argparse.ArgumentParser(description="Sync remote content into the local store")
    parser.add_argument("--incremental", action="store_true", help="Only fetch records modified since the last sync")
    parser.add_argument("--stats", action="store_true", help="Print store statistics and exit")
    parser.add_argument("--env-file", type=Path, default=None, help="Path to a .env file")
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON log lines")
    parser.add_argument("--quiet", action="store_true", help="Do not print progress")
    args = parser.parse_args()

    configure_logging(logging.INFO, json_format=args.json_logs)

    try:
        config = SyncConfig.from_env(args.env_file)
        if args.stats:
            print_stats(config)
            return 0

        mode = SyncMode.INCREMENTAL if args.incremental else SyncMode.FULL
        result = asyncio.run(run_sync(config, mode, show_progress=not args.quiet))
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"\n=== {result.mode.value.upper()} SYNC ===")
    print(f"  Terms updated:     {result.taxonomies_updated}")
    print(f"  Records updated:   {result.resources_updated}")
    print(f"  Records deleted:   {result.resources_deleted}")
    print(f"  Dirty preserved:   {result.dirty_preserved}")
    print(f"  Orphans cleared:   {result.orphans_cleared}")
    for error in result.errors:
        print(f"  ERROR {error}")
    return 0 if result.success else 2


if __name__ == "__main__":
    sys.exit(main())
