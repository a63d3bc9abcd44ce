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
Error taxonomy for the persistence migration layer.

Absence of a key is not an error anywhere in this package: reads return
``None`` (or a ``ReadResult`` whose ``value`` is ``None``) instead.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .reconcile import ReconciliationRow


class ProgressKVError(Exception):
    """Base class for all progress-kv errors."""


class StoreUnavailable(ProgressKVError):
    """A key-value backend could not be reached or answered with a transport error."""

    def __init__(self, store: str, key: Optional[str], message: str):
        self.store = store
        self.key = key
        self.message = message
        where = f"{store}" if key is None else f"{store} (key={key!r})"
        super().__init__(f"{where}: {message}")


class ConfigMissing(ProgressKVError):
    """Required configuration is absent."""

    def __init__(self, missing: list[str], message: Optional[str] = None):
        self.missing = list(missing)
        super().__init__(message or f"Missing required configuration: {', '.join(self.missing)}")


class NamespaceMissing(ConfigMissing):
    """UPSTASH_NAMESPACE is unset or blank where a namespace is mandatory."""

    def __init__(self):
        super().__init__(["UPSTASH_NAMESPACE"], "UPSTASH_NAMESPACE is required in production")


class DualWriteFailure(ProgressKVError):
    """The legacy half of a dual write failed. Recorded, never raised by the façade."""

    def __init__(self, store: str, key: str, cause: BaseException):
        self.store = store
        self.key = key
        self.cause = cause
        super().__init__(f"Dual write to {store} failed for {key!r}: {cause}")


class ReconciliationMismatch(ProgressKVError):
    """One or more keys could not be repaired during a reconciliation write run."""

    def __init__(self, rows: list["ReconciliationRow"]):
        self.rows = list(rows)
        keys = ", ".join(f"{row.key}={row.status.value}" for row in self.rows)
        super().__init__(f"Reconciliation failed for {len(self.rows)} key(s): {keys}")


class AtomicWriteError(ProgressKVError):
    """A temporary write could not be verified before being swapped into place."""
