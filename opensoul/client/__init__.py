"""
OpenSoul Client

Local side of OpenSoul: swap the active SOUL.md, cache fetched souls,
resolve what the user typed, and talk to the registry.
"""

from .swap import SwapEngine, SwapResult, SwapStatus, SoulState, SWAP_MARKER
from .cache import SoulCache, CacheEntry, CachedSoul
from .registry_client import RegistryClient
from .resolve import Resolver, Resolution, SourceKind, normalize, to_label
from .skill import SkillInstaller, InstallResult

__all__ = [
    "SwapEngine",
    "SwapResult",
    "SwapStatus",
    "SoulState",
    "SWAP_MARKER",
    "SoulCache",
    "CacheEntry",
    "CachedSoul",
    "RegistryClient",
    "Resolver",
    "Resolution",
    "SourceKind",
    "normalize",
    "to_label",
    "SkillInstaller",
    "InstallResult",
]
