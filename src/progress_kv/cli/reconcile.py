# Copyright 2024 Heinrich Krupp
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Reconcile legacy KV into the primary store.

Usage:
    progress-kv-reconcile              # Dry run: report divergence only
    progress-kv-reconcile --write      # Copy legacy values into primary and verify

Stdout carries one CSV header line and one row per key. Exit codes:
    0  every key matched or was repaired (always 0 in dry mode)
    1  configuration missing or a store was unreachable
    2  write mode finished with wrote_mismatch / write_error rows
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional, Sequence, TextIO

from ..config import MigrationSettings, Settings, require_reconcile_config
from ..exceptions import ConfigMissing, StoreUnavailable
from ..reconcile import EXIT_ERROR, Reconciler, ReconciliationReport
from ..storage.base import RawStore
from ..storage.keys import RECONCILE_KEYS
from .utils import get_stores, setup_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="progress-kv-reconcile",
        description="Compare legacy KV with the primary store and optionally repair drift",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Report which keys differ
  progress-kv-reconcile

  # Repair a single key
  progress-kv-reconcile --write --key metadata:v1
""",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--write", action="store_true", help="Copy legacy values into primary and verify")
    mode.add_argument("--dry-run", action="store_true", help="Report only (default)")
    parser.add_argument(
        "--key",
        dest="keys",
        action="append",
        metavar="KEY",
        help=f"Logical key to reconcile; repeatable (default: {', '.join(RECONCILE_KEYS)})",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


async def reconcile(legacy: RawStore,
                    primary: RawStore,
                    mode: str,
                    keys: Sequence[str],
                    out: TextIO) -> ReconciliationReport:
    """Run the reconciler and close both stores afterwards."""
    try:
        return await Reconciler(legacy, primary, mode=mode).run(keys, out=out)
    finally:
        await legacy.close()
        await primary.close()


def main(argv: Optional[Sequence[str]] = None, out: TextIO = None) -> int:
    """CLI entry point. Returns the process exit code."""
    args = build_parser().parse_args(argv)
    out = out or sys.stdout
    setup_logging(args.verbose)

    settings = Settings()
    try:
        require_reconcile_config(settings)
    except ConfigMissing as e:
        for name in e.missing:
            logger.error(f"ENV {name} is required")
        return EXIT_ERROR

    mode = "write" if args.write else "dry"
    if mode == "write" and MigrationSettings().migration_dry_run:
        logger.warning("MIGRATION_DRY_RUN is set; ignoring --write and running in dry mode")
        mode = "dry"

    keys = args.keys or list(RECONCILE_KEYS)
    legacy, primary = get_stores(settings)
    logger.info(f"# mode={mode} namespace={settings.namespace.namespace}")

    try:
        report = asyncio.run(reconcile(legacy, primary, mode, keys, out))
    except StoreUnavailable as e:
        logger.error(f"Reconciliation aborted: {e}")
        return EXIT_ERROR

    return report.exit_code


if __name__ == "__main__":
    sys.exit(main())
