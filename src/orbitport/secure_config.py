"""
Secure Configuration Manager for Orbitport
Handles client credential loading with proper security practices
"""

import os
import logging
from typing import Optional, Dict, Any, List, Tuple
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Priority order for config loading (highest to lowest priority)
DEFAULT_CONFIG_PATHS = [
    "config/secrets/.env.local",
    os.path.expanduser("~/.orbitport/.env"),
    ".env",
]

PLACEHOLDER_VALUES = {
    "your_client_id_here",
    "your_client_secret_here",
    "changeme",
    "...",
}


def mask(value: Optional[str]) -> str:
    if not value:
        return "Not set"
    return value[:4] + "..." + value[-2:] if len(value) > 8 else "***"


class SecureConfig:
    """Loads .env files without overriding the real environment"""

    def __init__(self, config_paths: Optional[List[str]] = None):
        self.config_paths = config_paths if config_paths is not None else DEFAULT_CONFIG_PATHS
        self.loaded_configs: List[str] = []
        self._load_config()

    def _load_config(self):
        for config_path in self.config_paths:
            if os.path.exists(config_path):
                load_dotenv(config_path, override=False)
                self.loaded_configs.append(config_path)
                logger.info(f"✅ Loaded config from: {config_path}")

        if not self.loaded_configs:
            logger.debug("No .env files found, using process environment only")

    def _read(self, name: str) -> Optional[str]:
        value = os.getenv(f"ORBITPORT_{name.upper()}")
        if value is None:
            return None
        value = value.strip()
        if not value or value in PLACEHOLDER_VALUES:
            if value:
                logger.warning(f"⚠️ ORBITPORT_{name.upper()} appears to be a placeholder. Please set a real value.")
            return None
        return value

    def get_credentials(self) -> Optional[Tuple[str, str]]:
        """Client id and secret, or None when either is missing"""
        client_id = self._read("client_id")
        client_secret = self._read("client_secret")

        if client_id and client_secret:
            logger.info(f"✅ Client credentials loaded: {mask(client_id)}")
            return client_id, client_secret

        logger.info("ℹ️ No client credentials configured, the IPFS beacon will be used")
        return None

    def is_secure_mode(self) -> bool:
        """Check if local secrets were loaded"""
        return "config/secrets/.env.local" in self.loaded_configs

    def get_config_summary(self) -> Dict[str, Any]:
        """Configuration summary (safe for logging)"""
        credentials = self.get_credentials()
        return {
            "loaded_configs": list(self.loaded_configs),
            "credentials": {
                "client_id": mask(credentials[0]) if credentials else "Not set",
                "client_secret": "***" if credentials else "Not set",
            },
            "security": {
                "secure_mode": self.is_secure_mode(),
            },
        }
