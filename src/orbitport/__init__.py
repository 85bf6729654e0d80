"""
Orbitport - cosmic true random numbers

Client for the Orbitport cTRNG service. Random values come from the
centralized cTRNG API when credentials are configured, with the IPFS beacon
(cross-checked between a public gateway and an IPFS API node) as the
credential-free source and the fallback.
"""

__version__ = "1.0.0"

from .client import OrbitportClient, load_settings
from .errors import ErrorCode, OrbitportError
from .settings import BeaconDefaults, Settings

__all__ = [
    "OrbitportClient",
    "load_settings",
    "ErrorCode",
    "OrbitportError",
    "BeaconDefaults",
    "Settings",
]
