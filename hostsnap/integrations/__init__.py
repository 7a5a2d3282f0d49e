# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Framework integrations for hostsnap.
"""

from hostsnap.integrations.fastapi import (
    get_orchestrator,
    hostsnap_lifespan,
    register_snapshot_routes,
    verify_api_key,
)

__all__ = [
    "get_orchestrator",
    "hostsnap_lifespan",
    "register_snapshot_routes",
    "verify_api_key",
]
