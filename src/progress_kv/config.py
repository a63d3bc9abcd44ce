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
progress-kv configuration using Pydantic Settings

All configuration is type-safe, validated, and loaded from environment variables.
Credentials use SecretStr so they never end up in logs.

Connection credentials are read once at process start. The two migration
flags (USE_KV_FALLBACK, DUAL_WRITE) are re-read on every store operation
through a FeatureFlagProvider so they can be flipped during a live rollout.
"""

import logging
from dataclasses import dataclass
from typing import Literal, Optional, Protocol

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigMissing, NamespaceMissing

logger = logging.getLogger(__name__)


# =============================================================================
# Settings Models
# =============================================================================

class NamespaceSettings(BaseSettings):
    """Environment and key namespace."""

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=False,
        env_ignore_empty=True,
        extra='ignore'
    )

    namespace: Optional[str] = Field(
        default=None,
        alias='UPSTASH_NAMESPACE',
        description="Prefix applied to every key in the primary store"
    )

    app_env: Literal['development', 'test', 'production'] = Field(
        default='development',
        alias='APP_ENV',
        description="Deployment environment; production requires a namespace"
    )

    log_ns_warn: bool = Field(
        default=True,
        alias='LOG_NS_WARN',
        description="Warn when falling back to the dev namespace"
    )


class UpstashSettings(BaseSettings):
    """Primary store (Upstash Redis REST) connection."""

    model_config = SettingsConfigDict(
        env_prefix='UPSTASH_REDIS_REST_',
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=False,
        env_ignore_empty=True,
        extra='ignore'
    )

    url: Optional[str] = Field(default=None, description="Upstash REST endpoint")
    token: Optional[SecretStr] = Field(default=None, description="Upstash REST token")

    @property
    def is_configured(self) -> bool:
        """Check if all required Upstash settings are provided."""
        return all([self.url, self.token])


class LegacyKVSettings(BaseSettings):
    """Legacy store (Vercel KV REST) connection."""

    model_config = SettingsConfigDict(
        env_prefix='KV_REST_API_',
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=False,
        env_ignore_empty=True,
        extra='ignore'
    )

    url: Optional[str] = Field(default=None, description="Vercel KV REST endpoint")
    token: Optional[SecretStr] = Field(default=None, description="Vercel KV REST token")

    @property
    def is_configured(self) -> bool:
        """Check if all required legacy KV settings are provided."""
        return all([self.url, self.token])


class MigrationSettings(BaseSettings):
    """Migration feature flags. Instantiate per call to pick up live changes."""

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=False,
        env_ignore_empty=True,
        extra='ignore'
    )

    use_kv_fallback: bool = Field(
        default=False,
        alias='USE_KV_FALLBACK',
        description="Read from legacy KV when the primary store misses"
    )

    dual_write: bool = Field(
        default=False,
        alias='DUAL_WRITE',
        description="Mirror primary writes into legacy KV"
    )

    migration_dry_run: bool = Field(
        default=False,
        alias='MIGRATION_DRY_RUN',
        description="Refuse reconciliation write runs"
    )

    def flags(self) -> "MigrationFlags":
        return MigrationFlags(fallback_enabled=self.use_kv_fallback, dual_write_enabled=self.dual_write)


class TransportSettings(BaseSettings):
    """HTTP transport used by the REST stores."""

    model_config = SettingsConfigDict(
        env_prefix='PROGRESS_KV_',
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=False,
        env_ignore_empty=True,
        extra='ignore'
    )

    request_timeout: float = Field(default=10.0, gt=0, le=120.0, description="Per-request timeout (seconds)")


class MetricsSettings(BaseSettings):
    """Rolling-window metrics aggregator."""

    model_config = SettingsConfigDict(
        env_prefix='PROGRESS_KV_METRICS_',
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=False,
        env_ignore_empty=True,
        extra='ignore'
    )

    window_seconds: float = Field(default=3600.0, gt=0, description="Trailing window for counters and percentiles")
    max_samples: int = Field(default=1000, ge=1, le=100_000, description="Retained entries per series")


# =============================================================================
# Main Settings Class
# =============================================================================

class Settings(BaseSettings):
    """
    Main progress-kv settings.

    Combines all configuration sections into a single, validated settings object.
    Automatically loads from .env file and environment variables.
    """

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=False,
        extra='ignore',
        validate_default=True
    )

    namespace: NamespaceSettings = Field(default_factory=NamespaceSettings)
    upstash: UpstashSettings = Field(default_factory=UpstashSettings)
    legacy_kv: LegacyKVSettings = Field(default_factory=LegacyKVSettings)
    transport: TransportSettings = Field(default_factory=TransportSettings)
    metrics: MetricsSettings = Field(default_factory=MetricsSettings)

    def log_configuration(self):
        """Log current configuration (excluding secrets)."""
        flags = MigrationSettings()
        logger.info("=" * 80)
        logger.info("progress-kv Configuration")
        logger.info("=" * 80)
        logger.info(f"Environment: {self.namespace.app_env}")
        logger.info(f"Namespace: {self.namespace.namespace or 'none (using fallback)'}")
        logger.info(f"Upstash Configured: {self.upstash.is_configured}")
        if self.upstash.is_configured:
            logger.info(f"  Upstash URL: {self.upstash.url}")
        logger.info(f"Legacy KV Configured: {self.legacy_kv.is_configured}")
        if self.legacy_kv.is_configured:
            logger.info(f"  Legacy KV URL: {self.legacy_kv.url}")
        logger.info(f"Flags: USE_KV_FALLBACK={flags.use_kv_fallback} DUAL_WRITE={flags.dual_write} "
                    f"MIGRATION_DRY_RUN={flags.migration_dry_run}")
        logger.info(f"Metrics window: {self.metrics.window_seconds:.0f}s, max samples: {self.metrics.max_samples}")
        logger.info("=" * 80)


# =============================================================================
# Feature Flags
# =============================================================================

@dataclass(frozen=True)
class MigrationFlags:
    """The two toggles consulted by the migration store on each operation."""
    fallback_enabled: bool = False
    dual_write_enabled: bool = False


class FeatureFlagProvider(Protocol):
    """Polled once per store operation; implementations must not cache."""

    def current(self) -> MigrationFlags:
        ...


class EnvFeatureFlags:
    """Reads USE_KV_FALLBACK / DUAL_WRITE from the environment on every call."""

    def current(self) -> MigrationFlags:
        return MigrationSettings().flags()


class StaticFeatureFlags:
    """Mutable in-process flags, for tests and embedding."""

    def __init__(self, fallback_enabled: bool = False, dual_write_enabled: bool = False):
        self.fallback_enabled = fallback_enabled
        self.dual_write_enabled = dual_write_enabled

    def current(self) -> MigrationFlags:
        return MigrationFlags(fallback_enabled=self.fallback_enabled, dual_write_enabled=self.dual_write_enabled)


# =============================================================================
# Validation
# =============================================================================

def validate_storage_config(settings: Optional[Settings] = None) -> None:
    """
    Startup validation for storage configuration.

    Raises NamespaceMissing in production when UPSTASH_NAMESPACE is unset;
    elsewhere only logs what is missing.
    """
    settings = settings or Settings()
    ns = settings.namespace

    if ns.app_env == 'production':
        if not ns.namespace or not ns.namespace.strip():
            raise NamespaceMissing()
        logger.info(f'[storage] Production mode: using namespace "{ns.namespace}"')
    elif ns.namespace:
        logger.info(f'[storage] {ns.app_env.capitalize()} mode: using namespace "{ns.namespace}"')
    else:
        logger.warning(f'[storage] {ns.app_env.capitalize()} mode: no UPSTASH_NAMESPACE, will use fallback')

    if not settings.upstash.is_configured:
        logger.warning("[storage] Missing Redis env vars: UPSTASH_REDIS_REST_URL / UPSTASH_REDIS_REST_TOKEN")


def require_reconcile_config(settings: Settings) -> None:
    """Fail fast unless every connection parameter the reconciler needs is present."""
    missing = []
    if not settings.upstash.url:
        missing.append('UPSTASH_REDIS_REST_URL')
    if not settings.upstash.token:
        missing.append('UPSTASH_REDIS_REST_TOKEN')
    if not settings.namespace.namespace or not settings.namespace.namespace.strip():
        missing.append('UPSTASH_NAMESPACE')
    if not settings.legacy_kv.url:
        missing.append('KV_REST_API_URL')
    if not settings.legacy_kv.token:
        missing.append('KV_REST_API_TOKEN')

    if missing:
        raise ConfigMissing(missing)
