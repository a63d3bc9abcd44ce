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
Storage backends for progress-kv.

Provides:
- RawStore: ABC for string key-value backends
- UpstashStore / LegacyKVStore: REST backends (primary / legacy)
- InMemoryStore: process-local backend
- MigrationStore: fallback and dual-write façade over primary + legacy
"""

from .base import RawStore
from .factory import create_legacy_store, create_migration_store, create_primary_store
from .keys import KNOWN_KEYS, LAST_LOADED_AT_KEY, METADATA_KEY, RECONCILE_KEYS, STUDENT_DATA_KEY, k, namespaced_key
from .memory import InMemoryStore
from .migration import MigrationStore, ReadResult, RepairOutcome, WriteResult
from .rest import LegacyKVStore, RestKVStore, UpstashStore

__all__ = [
    "RawStore",
    "RestKVStore",
    "UpstashStore",
    "LegacyKVStore",
    "InMemoryStore",
    "MigrationStore",
    "ReadResult",
    "RepairOutcome",
    "WriteResult",
    "create_primary_store",
    "create_legacy_store",
    "create_migration_store",
    "k",
    "namespaced_key",
    "STUDENT_DATA_KEY",
    "METADATA_KEY",
    "LAST_LOADED_AT_KEY",
    "RECONCILE_KEYS",
    "KNOWN_KEYS",
]
