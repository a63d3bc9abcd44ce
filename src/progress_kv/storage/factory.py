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
Storage factory for progress-kv.

Builds the primary and legacy stores and the migration store from configuration.
"""

import logging
from typing import Optional

from ..config import EnvFeatureFlags, FeatureFlagProvider, Settings
from ..exceptions import ConfigMissing
from ..metrics import StorageMetrics
from .base import RawStore
from .keys import resolve_namespace
from .memory import InMemoryStore
from .migration import MigrationStore
from .rest import LEGACY_STORE_ID, UPSTASH_STORE_ID, LegacyKVStore, UpstashStore

logger = logging.getLogger(__name__)


def create_primary_store(settings: Settings) -> RawStore:
    """
    Create the primary store.

    Outside production, missing Upstash credentials fall back to an
    in-memory store so the app still starts locally.
    """
    ns = settings.namespace
    namespace = resolve_namespace(ns.namespace, ns.app_env, ns.log_ns_warn)

    if settings.upstash.is_configured:
        logger.info(f"Using Upstash primary store (namespace={namespace})")
        return UpstashStore.from_settings(settings.upstash, namespace, settings.transport)

    if ns.app_env == 'production':
        raise ConfigMissing(["UPSTASH_REDIS_REST_URL", "UPSTASH_REDIS_REST_TOKEN"])

    logger.warning("Upstash not configured, using in-memory primary store")
    return InMemoryStore(name=UPSTASH_STORE_ID, namespace=namespace)


def create_legacy_store(settings: Settings) -> RawStore:
    """Create the legacy store; an empty in-memory stand-in when KV is not configured."""
    if settings.legacy_kv.is_configured:
        logger.info("Using Vercel KV legacy store")
        return LegacyKVStore.from_settings(settings.legacy_kv, settings.transport)

    logger.warning("Legacy KV not configured, fallback reads will always miss")
    return InMemoryStore(name=LEGACY_STORE_ID)


def create_migration_store(settings: Optional[Settings] = None,
                           metrics: Optional[StorageMetrics] = None,
                           flags: Optional[FeatureFlagProvider] = None) -> MigrationStore:
    """
    Build a MigrationStore from configuration.

    Args:
        settings: Settings to use (loaded from the environment by default)
        metrics: Aggregator to report into (a new one by default)
        flags: Flag provider (environment-backed by default)
    """
    settings = settings or Settings()
    metrics = metrics or StorageMetrics.from_settings(settings.metrics)
    flags = flags or EnvFeatureFlags()

    return MigrationStore(
        primary=create_primary_store(settings),
        legacy=create_legacy_store(settings),
        metrics=metrics,
        flags=flags,
    )
