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
API test fixtures.

Builds the app around an injected migration store so no network
credentials are needed.
"""

import pytest
from fastapi.testclient import TestClient

from progress_kv.config import Settings
from progress_kv.web.app import create_app


@pytest.fixture
def app(migration_store):
    return create_app(settings=Settings(), migration_store=migration_store)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client
