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
Logical key names and the namespacing transform.

The primary (Upstash) store is shared between environments, so every key
written there is prefixed with ``UPSTASH_NAMESPACE``. The legacy store
predates namespacing and is addressed by the bare logical key.
"""

import logging
from typing import Final, Optional

from ..exceptions import NamespaceMissing

logger = logging.getLogger(__name__)

STUDENT_DATA_KEY: Final[str] = "studentData:v1"
METADATA_KEY: Final[str] = "metadata:v1"
LAST_LOADED_AT_KEY: Final[str] = "lastLoadedAt"

# Keys the reconciliation tool walks by default
RECONCILE_KEYS: Final[tuple[str, ...]] = (STUDENT_DATA_KEY, METADATA_KEY)

# Keys the audit tool and health check look for
KNOWN_KEYS: Final[tuple[str, ...]] = (STUDENT_DATA_KEY, METADATA_KEY, LAST_LOADED_AT_KEY)

DEV_NAMESPACE: Final[str] = "dev"
SEPARATOR: Final[str] = ":"


def namespaced_key(logical_key: str, namespace: Optional[str]) -> str:
    """Map a logical key into ``namespace``. ``None`` leaves the key untouched."""
    if namespace is None:
        return logical_key
    return f"{namespace}{SEPARATOR}{logical_key}"


def resolve_namespace(
    namespace: Optional[str],
    app_env: str = "development",
    warn: bool = True,
) -> str:
    """
    Pick the namespace to use for the primary store.

    Outside production a missing namespace falls back to ``dev`` so local
    workflows keep working; in production it is a hard error so nothing is
    ever written to un-namespaced keys.
    """
    if namespace and namespace.strip():
        return namespace

    if app_env != "production":
        if warn:
            logger.warning(f'[storage] UPSTASH_NAMESPACE missing; using fallback "{DEV_NAMESPACE}"')
        return DEV_NAMESPACE

    raise NamespaceMissing()


def k(logical_key: str) -> str:
    """Namespace ``logical_key`` using the configured environment."""
    from ..config import NamespaceSettings

    ns_settings = NamespaceSettings()
    namespace = resolve_namespace(ns_settings.namespace, ns_settings.app_env, ns_settings.log_ns_warn)
    return namespaced_key(logical_key, namespace)
