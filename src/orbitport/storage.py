"""
Token storage backends
"""

import json
import logging
import os
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Awaitable, Callable, Optional

import aiofiles

from .errors import ErrorCode, OrbitportError
from .settings import Settings

logger = logging.getLogger(__name__)


class TokenStorage(ABC):
    """Abstract base class for access-token storage"""

    @abstractmethod
    async def get(self) -> Optional[str]:
        """Return the stored token, or None when absent or expired"""

    @abstractmethod
    async def set(self, token: str, expires_at: float):
        """Store a token with its expiry (seconds since the epoch)"""

    @abstractmethod
    async def clear(self):
        """Forget the stored token"""


class MemoryTokenStorage(TokenStorage):
    """In-process storage"""

    def __init__(self):
        self.token: Optional[str] = None
        self.expires_at = 0.0

    async def get(self) -> Optional[str]:
        if not self.token or time.time() >= self.expires_at:
            self.token = None
            return None
        return self.token

    async def set(self, token: str, expires_at: float):
        self.token = token
        self.expires_at = expires_at

    async def clear(self):
        self.token = None
        self.expires_at = 0.0


class FileTokenStorage(TokenStorage):
    """JSON file storage"""

    def __init__(self, file_path: str = ".orbitport_token"):
        self.file_path = Path(file_path)

    async def get(self) -> Optional[str]:
        if not self.file_path.exists():
            return None

        try:
            async with aiofiles.open(self.file_path, "r", encoding="utf-8") as f:
                token_data = json.loads(await f.read())
        except (OSError, ValueError) as e:
            logger.warning(f"⚠️ Failed to read token file {self.file_path}: {e}")
            return None

        if not isinstance(token_data, dict):
            logger.warning(f"⚠️ Ignoring malformed token file {self.file_path}")
            return None

        if time.time() >= float(token_data.get("expires_at", 0)):
            await self.clear()
            return None

        return token_data.get("access_token")

    async def set(self, token: str, expires_at: float):
        token_data = {
            "access_token": token,
            "expires_at": expires_at,
            "stored_at": time.time(),
        }
        try:
            self.file_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(self.file_path, "w", encoding="utf-8") as f:
                await f.write(json.dumps(token_data, indent=2))
            os.chmod(self.file_path, 0o600)
        except OSError as e:
            raise OrbitportError(f"Failed to store token in {self.file_path}: {e}",
                                 ErrorCode.STORAGE_ERROR) from e

    async def clear(self):
        try:
            if self.file_path.exists():
                self.file_path.unlink()
        except OSError as e:
            logger.warning(f"⚠️ Failed to clear token file {self.file_path}: {e}")


class CustomTokenStorage(TokenStorage):
    """Storage backed by caller-supplied coroutines"""

    def __init__(self,
                 getter: Callable[[], Awaitable[Optional[str]]],
                 setter: Callable[[str, float], Awaitable[None]],
                 clearer: Callable[[], Awaitable[None]]):
        self.getter = getter
        self.setter = setter
        self.clearer = clearer

    async def get(self) -> Optional[str]:
        return await self.getter()

    async def set(self, token: str, expires_at: float):
        await self.setter(token, expires_at)

    async def clear(self):
        await self.clearer()


def create_default_storage(settings: Settings) -> TokenStorage:
    """File storage when a token file is configured, memory otherwise"""
    if settings.token_file:
        return FileTokenStorage(settings.token_file)
    return MemoryTokenStorage()
