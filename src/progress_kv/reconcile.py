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
Legacy → primary reconciliation.

Reads each logical key from both stores, compares canonical fingerprints,
and in write mode copies the legacy value into the primary store and
re-reads it to verify. Talks to the RawStores directly, never through the
MigrationStore.
"""

import asyncio
import csv
import enum
import hashlib
import io
import json
import logging
from dataclasses import astuple, dataclass, field
from typing import Iterable, Literal, Optional

from .exceptions import ReconciliationMismatch, StoreUnavailable
from .storage.base import RawStore

logger = logging.getLogger(__name__)

Mode = Literal["dry", "write"]

CSV_HEADER = (
    "key",
    "source(store)",
    "target(store)",
    "sourceSize",
    "sourceHash",
    "targetSize",
    "targetHash",
    "status",
)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_FAILURES = 2


def canonicalize(value: Optional[str]) -> str:
    """
    Canonical form used for comparison.

    JSON is re-serialized with keys sorted at every depth and no insignificant
    whitespace. Anything that does not parse is compared as the raw string.
    """
    if value is None:
        return ""
    try:
        parsed = json.loads(value)
    except ValueError:
        return value
    return json.dumps(parsed, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def fingerprint(value: Optional[str]) -> str:
    """SHA-256 hex digest of the canonical form."""
    return hashlib.sha256(canonicalize(value).encode("utf-8", "surrogatepass")).hexdigest()


def byte_size(value: Optional[str]) -> int:
    return len(value.encode("utf-8", "surrogatepass")) if value is not None else 0


class ReconcileStatus(str, enum.Enum):
    SOURCE_NULL = "source_null"
    MATCH = "match"
    DRY_RUN_NEEDS_WRITE = "dry_run_needs_write"
    WROTE_MATCH = "wrote_match"
    WROTE_MISMATCH = "wrote_mismatch"
    WRITE_ERROR = "write_error"

    @property
    def is_failure(self) -> bool:
        return self in (ReconcileStatus.WROTE_MISMATCH, ReconcileStatus.WRITE_ERROR)


@dataclass(frozen=True)
class ReconciliationRow:
    key: str
    source_store: str
    target_store: str
    source_size: int
    source_hash: str
    target_size: int
    target_hash: str
    status: ReconcileStatus

    def as_csv_fields(self) -> list[str]:
        return [str(v.value if isinstance(v, ReconcileStatus) else v) for v in astuple(self)]


@dataclass
class ReconciliationReport:
    mode: Mode
    rows: list[ReconciliationRow] = field(default_factory=list)

    @property
    def failed_rows(self) -> list[ReconciliationRow]:
        return [row for row in self.rows if row.status.is_failure]

    @property
    def failures(self) -> int:
        return len(self.failed_rows)

    @property
    def exit_code(self) -> int:
        # Dry runs only report
        if self.mode == "write" and self.failures:
            return EXIT_FAILURES
        return EXIT_OK

    def raise_for_failures(self) -> None:
        if self.exit_code != EXIT_OK:
            raise ReconciliationMismatch(self.failed_rows)

    def to_csv(self) -> str:
        buffer = io.StringIO()
        write_csv(self.rows, buffer)
        return buffer.getvalue()


def write_csv(rows: Iterable[ReconciliationRow], out, header: bool = True) -> None:
    writer = csv.writer(out, lineterminator="\n")
    if header:
        writer.writerow(CSV_HEADER)
    for row in rows:
        writer.writerow(row.as_csv_fields())


class Reconciler:
    """Compares and optionally repairs logical keys between legacy and primary."""

    def __init__(self, legacy: RawStore, primary: RawStore, mode: Mode = "dry"):
        if mode not in ("dry", "write"):
            raise ValueError(f"Unsupported mode: {mode!r}. Use 'dry' or 'write'.")
        self.legacy = legacy
        self.primary = primary
        self.mode = mode

    async def reconcile_key(self, logical_key: str) -> ReconciliationRow:
        """
        Reconcile one key.

        Raises:
            StoreUnavailable: if either initial read fails
        """
        source_key = self.legacy.storage_key(logical_key)
        target_key = self.primary.storage_key(logical_key)

        source_value, target_value = await asyncio.gather(
            self.legacy.get(source_key),
            self.primary.get(target_key),
        )

        source_hash = fingerprint(source_value)
        target_hash = fingerprint(target_value)
        target_size = byte_size(target_value)

        if source_value is None:
            status = ReconcileStatus.SOURCE_NULL
        elif source_hash == target_hash:
            status = ReconcileStatus.MATCH
        elif self.mode == "dry":
            status = ReconcileStatus.DRY_RUN_NEEDS_WRITE
        else:
            repaired = await self._repair(logical_key, target_key, source_value, source_hash)
            if repaired is None:
                status = ReconcileStatus.WRITE_ERROR
            else:
                status, target_size, target_hash = repaired

        return ReconciliationRow(
            key=logical_key,
            source_store=self.legacy.name,
            target_store=self.primary.name,
            source_size=byte_size(source_value),
            source_hash=source_hash,
            target_size=target_size,
            target_hash=target_hash,
            status=status,
        )

    async def _repair(self,
                      logical_key: str,
                      target_key: str,
                      source_value: str,
                      source_hash: str) -> Optional[tuple[ReconcileStatus, int, str]]:
        """
        Copy the legacy value into primary and verify it.

        Returns:
            (status, target size, target hash) after the re-read, or None if the write itself failed
        """
        try:
            await self.primary.set(target_key, source_value)
        except Exception as e:
            logger.error(f"Write to {self.primary.name} failed for {logical_key}: {e}")
            return None

        try:
            echoed = await self.primary.get(target_key)
        except StoreUnavailable as e:
            logger.error(f"Verification read from {self.primary.name} failed for {logical_key}: {e}")
            return ReconcileStatus.WROTE_MISMATCH, 0, fingerprint(None)

        echoed_hash = fingerprint(echoed)
        if echoed_hash != source_hash:
            logger.error(f"Verification mismatch for {logical_key}: source={source_hash} target={echoed_hash}")
            return ReconcileStatus.WROTE_MISMATCH, byte_size(echoed), echoed_hash

        logger.info(f"Repaired {logical_key} in {self.primary.name}")
        return ReconcileStatus.WROTE_MATCH, byte_size(echoed), echoed_hash

    async def run(self, keys: Iterable[str], out=None) -> ReconciliationReport:
        """
        Reconcile ``keys`` one at a time, in order.

        Args:
            keys: Logical keys
            out: Optional text stream; receives the CSV header and each row as it completes
        """
        report = ReconciliationReport(mode=self.mode)
        if out is not None:
            write_csv([], out)

        for logical_key in keys:
            row = await self.reconcile_key(logical_key)
            report.rows.append(row)
            if out is not None:
                write_csv([row], out, header=False)
                out.flush()

        if report.failures:
            logger.error(f"FAILURES={report.failures}")
        return report
