"""
FinishStrong - offline-first workout logging with background sync.

Type what you did, get structured entries.
"""

from .core import FinishStrong

try:
    from importlib.metadata import version

    __version__ = version("finishstrong")
except Exception:
    __version__ = "0.0.0"

__all__ = ["FinishStrong"]
