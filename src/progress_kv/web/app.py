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
FastAPI application for the storage health surface.

The lifespan is the composition root: it builds the metrics aggregator,
both stores and the migration façade once and keeps them on ``app.state``.
"""

import argparse
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI

from .. import __version__
from ..config import Settings, validate_storage_config
from ..storage.factory import create_migration_store
from ..storage.migration import MigrationStore
from .health import router as health_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings: Settings = app.state.settings
    owned = app.state.migration_store is None

    if owned:
        logger.info("Initializing progress-kv storage...")
        validate_storage_config(settings)
        settings.log_configuration()
        app.state.migration_store = create_migration_store(settings)

    try:
        yield
    finally:
        if owned:
            logger.info("Shutting down progress-kv storage...")
            await app.state.migration_store.close()
            app.state.migration_store = None


def create_app(settings: Optional[Settings] = None,
               migration_store: Optional[MigrationStore] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Settings override (loaded from the environment by default)
        migration_store: Pre-built façade; when given the app neither builds nor closes one
    """
    app = FastAPI(
        title="progress-kv",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings or Settings()
    app.state.migration_store = migration_store
    app.include_router(health_router)
    return app


def main() -> None:
    """Serve the health surface with uvicorn."""
    import uvicorn

    parser = argparse.ArgumentParser(prog="progress-kv-server", description="Serve the storage health endpoints")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
    logger.info(f"Starting HTTP server on {args.host}:{args.port}")
    uvicorn.run(create_app(), host=args.host, port=args.port, log_config=None)


if __name__ == "__main__":
    main()
