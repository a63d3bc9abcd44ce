"""
Unit tests for progress-kv configuration and feature flags.
"""

import pytest

from progress_kv.config import (
    EnvFeatureFlags,
    MetricsSettings,
    MigrationFlags,
    MigrationSettings,
    Settings,
    StaticFeatureFlags,
    TransportSettings,
    require_reconcile_config,
    validate_storage_config,
)
from progress_kv.exceptions import ConfigMissing, NamespaceMissing


def _full_env(env):
    env.setenv("UPSTASH_REDIS_REST_URL", "https://primary.example")
    env.setenv("UPSTASH_REDIS_REST_TOKEN", "primary-token")
    env.setenv("UPSTASH_NAMESPACE", "prod")
    env.setenv("KV_REST_API_URL", "https://legacy.example")
    env.setenv("KV_REST_API_TOKEN", "legacy-token")


class TestSettings:
    def test_defaults(self):
        settings = Settings()
        assert settings.namespace.namespace is None
        assert settings.namespace.app_env == "development"
        assert settings.upstash.is_configured is False
        assert settings.legacy_kv.is_configured is False
        assert settings.transport.request_timeout == 10.0
        assert settings.metrics.window_seconds == 3600.0
        assert settings.metrics.max_samples == 1000

    def test_loads_connection_settings(self, clean_env):
        _full_env(clean_env)
        settings = Settings()
        assert settings.upstash.is_configured
        assert settings.upstash.url == "https://primary.example"
        assert settings.upstash.token.get_secret_value() == "primary-token"
        assert settings.legacy_kv.is_configured
        assert settings.namespace.namespace == "prod"

    def test_tokens_are_not_rendered(self, clean_env):
        _full_env(clean_env)
        assert "primary-token" not in repr(Settings())

    def test_empty_values_are_ignored(self, clean_env):
        clean_env.setenv("UPSTASH_NAMESPACE", "")
        assert Settings().namespace.namespace is None

    def test_metrics_and_transport_overrides(self, clean_env):
        clean_env.setenv("PROGRESS_KV_METRICS_WINDOW_SECONDS", "60")
        clean_env.setenv("PROGRESS_KV_METRICS_MAX_SAMPLES", "10")
        clean_env.setenv("PROGRESS_KV_REQUEST_TIMEOUT", "2.5")
        assert MetricsSettings().window_seconds == 60
        assert MetricsSettings().max_samples == 10
        assert TransportSettings().request_timeout == 2.5


class TestFeatureFlags:
    def test_default_flags_off(self):
        assert EnvFeatureFlags().current() == MigrationFlags(False, False)

    def test_env_flags_are_read_per_call(self, clean_env):
        provider = EnvFeatureFlags()
        assert provider.current().fallback_enabled is False

        clean_env.setenv("USE_KV_FALLBACK", "1")
        clean_env.setenv("DUAL_WRITE", "true")
        assert provider.current() == MigrationFlags(fallback_enabled=True, dual_write_enabled=True)

        clean_env.setenv("USE_KV_FALLBACK", "0")
        assert provider.current().fallback_enabled is False

    def test_dry_run_flag(self, clean_env):
        clean_env.setenv("MIGRATION_DRY_RUN", "1")
        assert MigrationSettings().migration_dry_run is True

    def test_static_flags_are_mutable(self):
        provider = StaticFeatureFlags()
        assert provider.current() == MigrationFlags(False, False)
        provider.dual_write_enabled = True
        assert provider.current().dual_write_enabled is True


class TestValidation:
    def test_production_without_namespace_raises(self, clean_env):
        clean_env.setenv("APP_ENV", "production")
        with pytest.raises(NamespaceMissing, match="UPSTASH_NAMESPACE is required in production"):
            validate_storage_config(Settings())

    def test_development_without_namespace_only_warns(self, caplog):
        validate_storage_config(Settings())
        assert "will use fallback" in caplog.text

    def test_reconcile_config_complete(self, clean_env):
        _full_env(clean_env)
        require_reconcile_config(Settings())

    def test_reconcile_config_lists_every_missing_variable(self, clean_env):
        clean_env.setenv("UPSTASH_REDIS_REST_URL", "https://primary.example")
        with pytest.raises(ConfigMissing) as exc_info:
            require_reconcile_config(Settings())
        assert exc_info.value.missing == [
            "UPSTASH_REDIS_REST_TOKEN",
            "UPSTASH_NAMESPACE",
            "KV_REST_API_URL",
            "KV_REST_API_TOKEN",
        ]

    def test_reconcile_config_rejects_blank_namespace(self, clean_env):
        _full_env(clean_env)
        clean_env.setenv("UPSTASH_NAMESPACE", "  ")
        with pytest.raises(ConfigMissing) as exc_info:
            require_reconcile_config(Settings())
        assert exc_info.value.missing == ["UPSTASH_NAMESPACE"]
