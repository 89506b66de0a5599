"""Standing permissions for command types"""
import logging
from typing import List
from laila.storage import Storage

logger = logging.getLogger(__name__)

PERMISSIONS_KEY = "allowed_command_types"

class PermissionStore:
    """Persisted set of command types the user has always allowed"""

    def __init__(self, storage: Storage):
        self.storage = storage

    async def allowed(self) -> List[str]:
        return sorted(await self.storage.get_setting(PERMISSIONS_KEY, []))

    async def is_allowed(self, command_type: str) -> bool:
        return command_type in await self.storage.get_setting(PERMISSIONS_KEY, [])

    async def grant(self, command_type: str):
        current = set(await self.storage.get_setting(PERMISSIONS_KEY, []))
        if command_type in current:
            return
        current.add(command_type)
        await self.storage.save_setting(PERMISSIONS_KEY, sorted(current))
        logger.info("Standing permission granted for %s", command_type)

    async def reset(self):
        await self.storage.save_setting(PERMISSIONS_KEY, [])
        logger.info("Standing permissions reset")
