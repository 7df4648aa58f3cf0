from __future__ import annotations

from typing import List

from src.shared.logging import get_logger
from src.system_settings.application.context import ActorContext
from src.system_settings.application.services.collection_service import RoleService
from src.system_settings.domain.modules import DEFAULT_ROLES

logger = get_logger(__name__)


async def initialize_default_roles(roles: RoleService) -> List[str]:
    """
    Seed the global role catalogue with any default role that is missing.
    Existing roles are left untouched; returns the names inserted.
    """
    existing = {e["name"] for e in await roles.live_entries_or_empty(None)}
    missing = [
        {"name": name, "permissions": list(perms)}
        for name, perms in DEFAULT_ROLES.items()
        if name not in existing
    ]
    if not missing:
        logger.debug("default_roles_present")
        return []
    result = await roles.bulk_create(None, missing, ActorContext.system())
    names = [r["name"] for r in result["created"]]
    logger.info("default_roles_seeded", roles=names)
    return names
