"""
Core modules for image-ecolo
"""

from .config import Settings, get_settings
from .palette_cache import PaletteCache, PaletteKey

__all__ = [
    "Settings",
    "get_settings",
    "PaletteCache",
    "PaletteKey",
]
