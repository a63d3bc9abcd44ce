"""
Tests for the reconcile and scan command-line tools.
"""

import io
from unittest.mock import AsyncMock, patch

import pytest

from progress_kv.cli import reconcile as reconcile_cli
from progress_kv.cli import scan as scan_cli
from progress_kv.reconcile import CSV_HEADER, EXIT_ERROR, EXIT_FAILURES, EXIT_OK


@pytest.fixture
def configured_env(clean_env):
    clean_env.setenv("UPSTASH_REDIS_REST_URL", "https://primary.example")
    clean_env.setenv("UPSTASH_REDIS_REST_TOKEN", "primary-token")
    clean_env.setenv("UPSTASH_NAMESPACE", "prod")
    clean_env.setenv("KV_REST_API_URL", "https://legacy.example")
    clean_env.setenv("KV_REST_API_TOKEN", "legacy-token")
    return clean_env


@pytest.fixture
def stores(make_store, configured_env):
    legacy = make_store(name="vercelKV")
    primary = make_store(name="upstash", namespace="prod")
    configured_env.setattr(reconcile_cli, "get_stores", lambda settings: (legacy, primary))
    return legacy, primary


class TestReconcileCLI:
    def test_missing_config_fails_before_any_io(self, clean_env, caplog):
        called = []
        clean_env.setattr(reconcile_cli, "get_stores", lambda settings: called.append(settings))
        out = io.StringIO()

        assert reconcile_cli.main([], out=out) == EXIT_ERROR
        assert out.getvalue() == ""
        assert called == []
        assert "ENV UPSTASH_REDIS_REST_URL is required" in caplog.text

    def test_dry_run_prints_csv_and_exits_zero(self, stores):
        legacy, primary = stores
        legacy.data["metadata:v1"] = '{"m":1}'
        out = io.StringIO()

        assert reconcile_cli.main(["--dry-run"], out=out) == EXIT_OK

        lines = out.getvalue().splitlines()
        assert lines[0] == ",".join(CSV_HEADER)
        assert [line.split(",")[0] for line in lines[1:]] == ["studentData:v1", "metadata:v1"]
        assert lines[1].endswith(",source_null")
        assert lines[2].endswith(",dry_run_needs_write")
        assert primary.set_calls == []

    def test_write_repairs(self, stores):
        legacy, primary = stores
        legacy.data["metadata:v1"] = '{"m":1}'

        assert reconcile_cli.main(["--write", "--key", "metadata:v1"], out=io.StringIO()) == EXIT_OK
        assert primary.data["prod:metadata:v1"] == '{"m":1}'

    def test_write_failures_exit_nonzero(self, stores):
        legacy, primary = stores
        legacy.data["metadata:v1"] = '{"m":1}'
        primary.corrupt_with = "bad"
        out = io.StringIO()

        assert reconcile_cli.main(["--write"], out=out) == EXIT_FAILURES
        assert out.getvalue().splitlines()[2].endswith(",wrote_mismatch")

    def test_migration_dry_run_downgrades_write(self, stores, configured_env):
        legacy, primary = stores
        legacy.data["metadata:v1"] = '{"m":1}'
        configured_env.setenv("MIGRATION_DRY_RUN", "1")

        assert reconcile_cli.main(["--write"], out=io.StringIO()) == EXIT_OK
        assert primary.set_calls == []

    def test_store_outage_exits_with_error(self, stores):
        legacy, _ = stores
        legacy.fail_get = True
        assert reconcile_cli.main([], out=io.StringIO()) == EXIT_ERROR

    def test_stores_closed_after_run(self, stores):
        legacy, primary = stores
        legacy.fail_get = True
        with patch.object(legacy, "close", new_callable=AsyncMock) as legacy_close, \
                patch.object(primary, "close", new_callable=AsyncMock) as primary_close:
            reconcile_cli.main([], out=io.StringIO())
        legacy_close.assert_awaited_once()
        primary_close.assert_awaited_once()

    def test_write_and_dry_run_are_exclusive(self, configured_env):
        with pytest.raises(SystemExit):
            reconcile_cli.main(["--write", "--dry-run"])


@pytest.mark.asyncio
class TestScan:
    async def test_reports_known_and_dev_keys(self, make_store):
        store = make_store(name="upstash", namespace="prod")
        store.data["prod:metadata:v1"] = "{}"
        store.data["dev:studentData:v1"] = '{"s":1}'

        known, dev = await scan_cli.scan_keys(store, "prod")

        assert [(entry.key, entry.exists) for entry in known] == [
            ("prod:studentData:v1", False),
            ("prod:metadata:v1", True),
            ("prod:lastLoadedAt", False),
        ]
        assert [entry.key for entry in dev if entry.exists] == ["dev:studentData:v1"]

    async def test_dev_namespace_skips_dev_check(self, make_store):
        store = make_store(name="upstash", namespace="dev")
        _, dev = await scan_cli.scan_keys(store, "dev")
        assert dev == []

    async def test_run_scan_warns_on_dev_keys(self, make_store, caplog):
        store = make_store(name="upstash", namespace="prod")
        store.data["dev:metadata:v1"] = "{}"
        assert await scan_cli.run_scan(store, "prod") == EXIT_OK
        assert "Found accidental dev key: dev:metadata:v1" in caplog.text

    def test_scan_requires_upstash(self):
        assert scan_cli.main([]) == EXIT_ERROR
