"""
OpenSoul - Swap your agent's soul

Two halves:
1. Registry server - publish, rate and rank SOUL.md documents (FastAPI)
2. CLI - swap the local SOUL.md for one from the registry, and roll back
"""

__version__ = "0.1.0"
__author__ = "OpenSoul"

from .config import ClientConfig, OpenSoulConfig, load_config, load_client_config
from .errors import OpenSoulError

__all__ = [
    "__version__",
    "ClientConfig",
    "OpenSoulConfig",
    "OpenSoulError",
    "load_config",
    "load_client_config",
]
