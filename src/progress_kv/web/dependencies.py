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
FastAPI dependencies for the HTTP interface.

Everything lives on ``app.state``, set up by the application lifespan.
"""

from fastapi import HTTPException, Request

from ..config import Settings
from ..metrics import StorageMetrics
from ..storage.migration import MigrationStore


def get_migration_store(request: Request) -> MigrationStore:
    """Get the migration store owned by this application."""
    store = getattr(request.app.state, "migration_store", None)
    if store is None:
        raise HTTPException(status_code=503, detail="Storage not initialized")
    return store


def get_metrics(request: Request) -> StorageMetrics:
    return get_migration_store(request).metrics


def get_settings(request: Request) -> Settings:
    return request.app.state.settings
