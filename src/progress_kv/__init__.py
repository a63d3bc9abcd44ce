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

"""progress-kv: persistence migration layer for the student progress dashboard."""

__version__ = "1.0.0"

from .exceptions import (
    AtomicWriteError,
    ConfigMissing,
    DualWriteFailure,
    NamespaceMissing,
    ProgressKVError,
    ReconciliationMismatch,
    StoreUnavailable,
)
from .metrics import MetricsSnapshot, StorageMetrics
from .persistence import DocumentStore
from .reconcile import ReconcileStatus, Reconciler, ReconciliationReport, ReconciliationRow
from .storage import MigrationStore, ReadResult, RepairOutcome, WriteResult, k

__all__ = [
    "__version__",
    "ProgressKVError",
    "StoreUnavailable",
    "ConfigMissing",
    "NamespaceMissing",
    "DualWriteFailure",
    "ReconciliationMismatch",
    "AtomicWriteError",
    "StorageMetrics",
    "MetricsSnapshot",
    "MigrationStore",
    "ReadResult",
    "RepairOutcome",
    "WriteResult",
    "DocumentStore",
    "Reconciler",
    "ReconcileStatus",
    "ReconciliationRow",
    "ReconciliationReport",
    "k",
]
