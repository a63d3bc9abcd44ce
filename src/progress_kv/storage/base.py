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
Raw key-value store interface.

Values are opaque strings. Implementations raise StoreUnavailable on any
transport or backend failure and never retry; recovery policy belongs to
the caller.
"""

from abc import ABC, abstractmethod
from typing import Optional

from .keys import namespaced_key


class RawStore(ABC):
    """Abstract base class for raw string key-value backends."""

    def __init__(self, name: str, namespace: Optional[str] = None):
        """
        Args:
            name: Store identifier used in logs, errors and reconciliation rows
            namespace: Key namespace applied by storage_key(), or None for bare keys
        """
        self.name = name
        self.namespace = namespace

    def storage_key(self, logical_key: str) -> str:
        """Map a logical key to the key this backend stores it under."""
        return namespaced_key(logical_key, self.namespace)

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the value stored at ``key``, or None when absent."""
        pass

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Store ``value`` at ``key``."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove ``key``. Deleting a missing key is not an error."""
        pass

    async def close(self) -> None:
        """Release transport resources. Default is a no-op."""
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, namespace={self.namespace!r})"
