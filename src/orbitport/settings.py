"""
Configuration settings for the Orbitport cTRNG client
"""

from pydantic import BaseModel, ConfigDict
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


DEFAULT_AUTH_URL = "https://dev-1usujmbby8627ni8.us.auth0.com"
DEFAULT_API_URL = "https://op.spacecomputer.io"
DEFAULT_IPFS_GATEWAY = "https://ipfs.io"
DEFAULT_IPFS_API_URL = "https://ipfs.io"
DEFAULT_BEACON_PATH = "/ipns/k2k4r8pigrw8i34z63om8f015tt5igdq0c46xupq8spp1bogt35k5vhe"


class Settings(BaseSettings):
    """Orbitport configuration settings"""

    model_config = SettingsConfigDict(
        env_prefix="ORBITPORT_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # API Credentials
    client_id: Optional[str] = None
    client_secret: Optional[str] = None

    # Endpoints
    auth_url: str = DEFAULT_AUTH_URL
    api_url: str = DEFAULT_API_URL

    # Request Behaviour
    timeout_ms: int = 30000
    retry_attempts: int = 3
    retry_delay_ms: int = 1000

    # IPFS Beacon
    ipfs_gateway: str = DEFAULT_IPFS_GATEWAY
    ipfs_api_url: str = DEFAULT_IPFS_API_URL
    default_beacon_path: str = DEFAULT_BEACON_PATH
    enable_fallback: bool = True

    # Token Storage
    token_file: Optional[str] = None

    # Server Configuration
    server_host: str = "127.0.0.1"
    server_port: int = 3001
    log_level: str = "INFO"

    @property
    def credentials_present(self) -> bool:
        """True when both client credentials are set to non-blank values"""
        return bool(
            self.client_id and self.client_id.strip()
            and self.client_secret and self.client_secret.strip()
        )


class BeaconDefaults(BaseModel):
    """Immutable defaults shared by the transport, resolver and router"""

    model_config = ConfigDict(frozen=True)

    gateway_base_url: str = DEFAULT_IPFS_GATEWAY
    api_base_url: str = DEFAULT_IPFS_API_URL
    timeout_ms: int = 30000
    default_beacon_path: str = DEFAULT_BEACON_PATH
    enable_fallback: bool = True
    retry_attempts: int = 3
    retry_delay_ms: int = 1000

    @classmethod
    def from_settings(cls, settings: Settings) -> "BeaconDefaults":
        return cls(
            gateway_base_url=settings.ipfs_gateway.rstrip("/"),
            api_base_url=settings.ipfs_api_url.rstrip("/"),
            timeout_ms=settings.timeout_ms,
            default_beacon_path=settings.default_beacon_path,
            enable_fallback=settings.enable_fallback,
            retry_attempts=settings.retry_attempts,
            retry_delay_ms=settings.retry_delay_ms,
        )
