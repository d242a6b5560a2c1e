"""Push locally edited (dirty) records back to the remote site.

Usage:
    python scripts/push_dirty.py                        # all dirty records
    python scripts/push_dirty.py --content-type resource
    python scripts/push_dirty.py --id 101 --id 102      # specific records
    python scripts/push_dirty.py --check-only           # report conflicts only
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
from core.models import PushAllResult
from core.observability.logging import configure_logging
from local_store import LocalStore
from local_store.records import get_dirty_records
from push_engine import PushEngine


async def push(config: SyncConfig, args) -> PushAllResult:
    with LocalStore(config.db_path, config.legacy_db_path) as store:
        async with WordPressConnector(config) as connector:
            engine = PushEngine(store, connector, config, side_data=[SEOPressProvider(connector.client)])

            if args.check_only:
                ids = args.id or [r.id for r in get_dirty_records(store, args.content_type)]
                return PushAllResult(conflicts=await engine.check_for_conflicts(ids))

            if args.id:
                results = []
                for record_id in args.id:
                    results.append(await engine.push_resource(record_id, args.skip_conflict_check))
                return PushAllResult(results=results)

            return await engine.push_all_dirty(args.skip_conflict_check, args.content_type)


def main():
    parser = argparse.ArgumentParser(description="Push dirty records to the remote site")
    parser.add_argument("--id", type=int, action="append", help="Record id to push (repeatable)")
    parser.add_argument("--content-type", default=None, help="Only push records of this content type")
    parser.add_argument("--skip-conflict-check", action="store_true", help="Push even if the remote changed")
    parser.add_argument("--check-only", action="store_true", help="Only report conflicts")
    parser.add_argument("--env-file", type=Path, default=None, help="Path to a .env file")
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON log lines")
    args = parser.parse_args()

    configure_logging(logging.INFO, json_format=args.json_logs)

    try:
        config = SyncConfig.from_env(args.env_file)
        outcome = asyncio.run(push(config, args))
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print("\n=== PUSH RESULT ===")
    for conflict in outcome.conflicts:
        print(
            f"  CONFLICT {conflict.resource_id} {conflict.title!r}: "
            f"local={conflict.local_modified} server={conflict.server_modified}"
        )
    for result in outcome.results:
        status = "OK  " if result.success else "FAIL"
        print(f"  {status} {result.resource_id} {result.error or ''}".rstrip())
        for message in result.side_data_errors:
            print(f"       side data: {message}")
    print(f"  Pushed {outcome.pushed}, failed {outcome.failed}")
    return 0 if outcome.failed == 0 else 2


if __name__ == "__main__":
    sys.exit(main())
