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
CLI utilities for progress-kv.
"""

import logging
import sys

from ..config import Settings
from ..storage.rest import LegacyKVStore, UpstashStore

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


def setup_logging(verbose: bool = False) -> None:
    """Log to stderr so stdout stays machine-parseable."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        stream=sys.stderr,
    )


def get_stores(settings: Settings) -> tuple[LegacyKVStore, UpstashStore]:
    """
    Build the legacy and primary REST stores for CLI operations.

    Configuration must already have been validated; the primary store always
    uses the configured namespace, never the dev fallback.

    Returns:
        (legacy, primary)
    """
    legacy = LegacyKVStore.from_settings(settings.legacy_kv, settings.transport)
    primary = UpstashStore.from_settings(settings.upstash, settings.namespace.namespace, settings.transport)
    return legacy, primary
