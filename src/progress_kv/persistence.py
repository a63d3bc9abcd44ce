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
Document-level access to the student data, metadata and lastLoadedAt keys.

Documents are JSON; their schema is owned elsewhere and not checked here.
"""

import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Optional

from .exceptions import AtomicWriteError
from .storage.keys import LAST_LOADED_AT_KEY, METADATA_KEY, STUDENT_DATA_KEY
from .storage.migration import MigrationStore

logger = logging.getLogger(__name__)

TMP_STUDENT_DATA_PREFIX = "tmp:studentData:"


class DocumentStore:
    """JSON document accessors on top of a MigrationStore."""

    def __init__(self, store: MigrationStore):
        self.store = store

    async def _get_json(self, logical_key: str) -> Optional[Any]:
        raw = await self.store.get(logical_key)
        return json.loads(raw) if raw is not None else None

    async def get_student_data(self) -> Optional[dict]:
        return await self._get_json(STUDENT_DATA_KEY)

    async def get_metadata(self) -> Optional[Any]:
        return await self._get_json(METADATA_KEY)

    async def set_metadata(self, meta: Any) -> None:
        await self.store.set_with_dual_write(METADATA_KEY, json.dumps(meta))

    async def get_last_loaded_at(self) -> Optional[str]:
        """ISO-8601 timestamp of the last save; older writers stored it unquoted."""
        raw = await self.store.get(LAST_LOADED_AT_KEY)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            return raw

    async def save_student_data_atomically(self, draft: dict) -> str:
        """
        Save student data via temp write, verify, swap, cleanup, timestamp.

        The temporary copy lives only in the primary store.

        Returns:
            The ISO-8601 lastLoadedAt timestamp that was written

        Raises:
            AtomicWriteError: if the temporary write does not read back intact
            StoreUnavailable: if the primary store fails at any step
        """
        body = json.dumps(draft)
        primary = self.store.primary
        tmp_key = primary.storage_key(f"{TMP_STUDENT_DATA_PREFIX}{int(time.time() * 1000)}")

        await primary.set(tmp_key, body)

        echo = await primary.get(tmp_key)
        if echo != body:
            await primary.delete(tmp_key)
            raise AtomicWriteError(f"Temp write verification failed for {tmp_key}")

        await self.store.set_with_dual_write(STUDENT_DATA_KEY, echo)
        await primary.delete(tmp_key)

        loaded_at = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
        await self.store.set_with_dual_write(LAST_LOADED_AT_KEY, json.dumps(loaded_at))
        logger.info(f"Saved student data ({len(body.encode('utf-8'))} bytes), lastLoadedAt={loaded_at}")
        return loaded_at
