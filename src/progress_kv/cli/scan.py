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
Audit the primary store for the known progress keys.

Reports which namespaced keys exist and warns about accidental writes
under the ``dev`` namespace.
"""

import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass
from typing import Optional, Sequence

from ..config import Settings
from ..exceptions import ConfigMissing, StoreUnavailable
from ..reconcile import EXIT_ERROR, EXIT_OK, byte_size
from ..storage.base import RawStore
from ..storage.keys import DEV_NAMESPACE, KNOWN_KEYS, namespaced_key, resolve_namespace
from ..storage.rest import UpstashStore
from .utils import setup_logging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KeyPresence:
    key: str
    exists: bool
    size: int = 0


async def scan_keys(store: RawStore, namespace: str) -> tuple[list[KeyPresence], list[KeyPresence]]:
    """
    Check the known keys under ``namespace`` and under the dev namespace.

    Returns:
        (namespaced key presence, dev key presence). The dev list is empty
        when ``namespace`` is itself the dev namespace.
    """
    async def check(key: str) -> KeyPresence:
        value = await store.get(key)
        if value is None:
            return KeyPresence(key, False)
        return KeyPresence(key, True, byte_size(value))

    known = [await check(namespaced_key(key, namespace)) for key in KNOWN_KEYS]
    dev = []
    if namespace != DEV_NAMESPACE:
        dev = [await check(namespaced_key(key, DEV_NAMESPACE)) for key in KNOWN_KEYS]
    return known, dev


async def run_scan(store: RawStore, namespace: str) -> int:
    try:
        known, dev = await scan_keys(store, namespace)
    finally:
        await store.close()

    logger.info("Checking known keys:")
    for entry in known:
        logger.info(f"  {entry.key}: exists={int(entry.exists)} size={entry.size}")

    if dev:
        logger.info("Checking for accidental dev: keys...")
    for entry in dev:
        if entry.exists:
            logger.warning(f"  Found accidental dev key: {entry.key} ({entry.size} bytes)")
        else:
            logger.info(f"  OK: No dev key found: {entry.key}")
    return EXIT_OK


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="progress-kv-scan",
        description="Audit known progress keys and accidental dev: keys in Upstash",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    settings = Settings()
    ns = settings.namespace
    try:
        if not settings.upstash.is_configured:
            raise ConfigMissing(["UPSTASH_REDIS_REST_URL", "UPSTASH_REDIS_REST_TOKEN"])
        namespace = resolve_namespace(ns.namespace, ns.app_env, ns.log_ns_warn)
    except ConfigMissing as e:
        logger.error(str(e))
        return EXIT_ERROR

    logger.info(f"Environment: {ns.app_env}")
    logger.info(f"Namespace: {ns.namespace or 'none (using fallback)'}")

    store = UpstashStore.from_settings(settings.upstash, namespace, settings.transport)
    try:
        return asyncio.run(run_scan(store, namespace))
    except StoreUnavailable as e:
        logger.error(f"Scan failed: {e}")
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
