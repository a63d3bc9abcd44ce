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
Migration store: read/write indirection over the primary and legacy backends.

This implementation provides:
- Reads from the primary store, falling back to legacy KV on a miss when
  USE_KV_FALLBACK is on, with best-effort repair of the primary store
- Writes to the primary store, mirrored to legacy KV when DUAL_WRITE is on
- Primary failures always propagate; legacy failures are logged and counted
- Flags polled on every call so a rollout can flip them without a restart
"""

import enum
import logging
import time
from dataclasses import dataclass
from typing import Optional

from ..config import FeatureFlagProvider
from ..exceptions import DualWriteFailure, StoreUnavailable
from ..metrics import StorageMetrics
from .base import RawStore

logger = logging.getLogger(__name__)


class RepairOutcome(str, enum.Enum):
    """What happened to the primary store while serving a read."""
    NOT_NEEDED = "not_needed"   # served from primary, or nothing to copy
    REPAIRED = "repaired"       # legacy value copied into primary
    FAILED = "failed"           # copy attempted and failed; the read still succeeded


@dataclass(frozen=True)
class ReadResult:
    """Outcome of get_with_fallback(). ``value is None`` means absent everywhere."""
    key: str
    value: Optional[str]
    source: Optional[str] = None
    repair: RepairOutcome = RepairOutcome.NOT_NEEDED
    repair_error: Optional[BaseException] = None
    legacy_error: Optional[BaseException] = None

    @property
    def found(self) -> bool:
        return self.value is not None

    @property
    def from_fallback(self) -> bool:
        return self.repair != RepairOutcome.NOT_NEEDED


@dataclass(frozen=True)
class WriteResult:
    """Outcome of set_with_dual_write(). The primary half always succeeded."""
    key: str
    duration_ms: float
    mirrored: bool = False
    dual_write_error: Optional[DualWriteFailure] = None


class MigrationStore:
    """
    Primary/legacy façade used by request handlers.

    The reconciliation tool bypasses this class and talks to
    both RawStores directly.
    """

    def __init__(self,
                 primary: RawStore,
                 legacy: RawStore,
                 metrics: StorageMetrics,
                 flags: FeatureFlagProvider):
        """
        Args:
            primary: Authoritative store (new backend)
            legacy: Store being migrated away from
            metrics: Aggregator owned by the composition root
            flags: Polled once per operation for fallback/dual-write toggles
        """
        self.primary = primary
        self.legacy = legacy
        self.metrics = metrics
        self.flags = flags

    async def get_with_fallback(self, logical_key: str) -> ReadResult:
        """
        Read ``logical_key``, preferring the primary store.

        Raises:
            StoreUnavailable: if the primary store fails; fallback only covers misses
        """
        value = await self.primary.get(self.primary.storage_key(logical_key))
        if value is not None:
            return ReadResult(key=logical_key, value=value, source=self.primary.name)

        if not self.flags.current().fallback_enabled:
            return ReadResult(key=logical_key, value=None)

        try:
            legacy_value = await self.legacy.get(self.legacy.storage_key(logical_key))
        except StoreUnavailable as e:
            self.metrics.record_legacy_read_error()
            logger.warning(f"Legacy fallback read failed for {logical_key}: {e}")
            return ReadResult(key=logical_key, value=None, legacy_error=e)

        if legacy_value is None:
            return ReadResult(key=logical_key, value=None)

        self.metrics.record_fallback_hit()
        logger.info(f"Fallback hit for {logical_key}: served from {self.legacy.name}")

        try:
            await self.primary.set(self.primary.storage_key(logical_key), legacy_value)
        except Exception as e:
            self.metrics.record_repair_error()
            logger.warning(f"Repair-on-read into {self.primary.name} failed for {logical_key}: {e}")
            return ReadResult(
                key=logical_key,
                value=legacy_value,
                source=self.legacy.name,
                repair=RepairOutcome.FAILED,
                repair_error=e,
            )

        logger.debug(f"Repaired {logical_key} into {self.primary.name}")
        return ReadResult(key=logical_key, value=legacy_value, source=self.legacy.name, repair=RepairOutcome.REPAIRED)

    async def set_with_dual_write(self, logical_key: str, value: str) -> WriteResult:
        """
        Write ``value`` to the primary store, mirroring to legacy when enabled.

        Raises:
            StoreUnavailable: if the primary write fails
        """
        start = time.perf_counter()
        try:
            await self.primary.set(self.primary.storage_key(logical_key), value)
        finally:
            duration_ms = (time.perf_counter() - start) * 1000
            self.metrics.record_write_latency(duration_ms)

        if not self.flags.current().dual_write_enabled:
            return WriteResult(key=logical_key, duration_ms=duration_ms)

        try:
            await self.legacy.set(self.legacy.storage_key(logical_key), value)
        except Exception as e:
            self.metrics.record_dual_write_error()
            failure = DualWriteFailure(self.legacy.name, logical_key, e)
            logger.warning(str(failure))
            return WriteResult(key=logical_key, duration_ms=duration_ms, dual_write_error=failure)

        return WriteResult(key=logical_key, duration_ms=duration_ms, mirrored=True)

    async def get(self, logical_key: str) -> Optional[str]:
        """Value of ``logical_key`` or None."""
        return (await self.get_with_fallback(logical_key)).value

    async def set(self, logical_key: str, value: str) -> None:
        await self.set_with_dual_write(logical_key, value)

    async def delete(self, logical_key: str) -> None:
        """Delete from primary, and from legacy on a best-effort basis when dual write is on."""
        await self.primary.delete(self.primary.storage_key(logical_key))

        if self.flags.current().dual_write_enabled:
            try:
                await self.legacy.delete(self.legacy.storage_key(logical_key))
            except Exception as e:
                self.metrics.record_dual_write_error()
                logger.warning(f"Dual delete from {self.legacy.name} failed for {logical_key}: {e}")

    async def close(self) -> None:
        await self.primary.close()
        await self.legacy.close()
