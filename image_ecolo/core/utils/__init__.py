"""
Utility modules for core functionality.

Modules:
- debounce: Asyncio trailing-edge debouncer
- decorators: Utility decorators (timer, etc.)
"""

from .debounce import Debouncer
from .decorators import timer

__all__ = [
    "Debouncer",
    "timer",
]
