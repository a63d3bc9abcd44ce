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
Storage health endpoints.

Read-only: the checks go straight to the primary RawStore and never
trigger fallback reads, repairs or metric updates.
"""

import logging
import time
from typing import Optional

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST
from pydantic import BaseModel, Field

from ..config import MigrationSettings
from ..exceptions import StoreUnavailable
from ..metrics import StorageMetrics
from ..storage.keys import METADATA_KEY, STUDENT_DATA_KEY
from ..storage.migration import MigrationStore
from .dependencies import get_metrics, get_migration_store

router = APIRouter()
logger = logging.getLogger(__name__)


class MetricsSummary(BaseModel):
    fallbackHits1h: int
    dualWriteErrors1h: int
    storageWriteP50: Optional[float] = None
    storageWriteP95: Optional[float] = None


class KeysPresent(BaseModel):
    studentDataV1: bool
    metadataV1: bool


class FlagsState(BaseModel):
    USE_KV_FALLBACK: bool
    DUAL_WRITE: bool
    MIGRATION_DRY_RUN: bool


class StorageHealthResponse(BaseModel):
    """Response model for the storage health check."""
    namespace: Optional[str] = Field(None, description="Namespace applied to primary keys")
    upstashPingMs: float = Field(..., description="Round trip of a primary read, in milliseconds")
    metrics: MetricsSummary
    keysPresent: KeysPresent
    flags: FlagsState


@router.get("/api/health/storage", response_model=StorageHealthResponse)
async def storage_health(store: MigrationStore = Depends(get_migration_store)):
    """Ping the primary store and report metrics, key presence and flags."""
    primary = store.primary
    try:
        metadata_key = primary.storage_key(METADATA_KEY)
        started = time.perf_counter()
        metadata = await primary.get(metadata_key)
        ping_ms = (time.perf_counter() - started) * 1000

        student_data = await primary.get(primary.storage_key(STUDENT_DATA_KEY))
    except StoreUnavailable as e:
        logger.error(f"Storage health check failed: {e}")
        return JSONResponse(
            status_code=500,
            content={"error": "Health check failed", "details": str(e), "namespace": primary.namespace},
        )

    flags = store.flags.current()
    return StorageHealthResponse(
        namespace=primary.namespace,
        upstashPingMs=round(ping_ms, 2),
        metrics=MetricsSummary(**store.metrics.snapshot().as_summary()),
        keysPresent=KeysPresent(studentDataV1=student_data is not None, metadataV1=metadata is not None),
        flags=FlagsState(
            USE_KV_FALLBACK=flags.fallback_enabled,
            DUAL_WRITE=flags.dual_write_enabled,
            MIGRATION_DRY_RUN=MigrationSettings().migration_dry_run,
        ),
    )


@router.get("/metrics")
async def prometheus_metrics(metrics: StorageMetrics = Depends(get_metrics)):
    """Prometheus exposition of the storage metrics."""
    return Response(content=metrics.render_prometheus(), media_type=CONTENT_TYPE_LATEST)
