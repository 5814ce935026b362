# Common utilities and shared modules
"""
Shared components used by every layer:
- Project configuration
- Logging configuration
- Error types
"""

from .config import settings, PROJECT_ROOT, DATA_DIR, DATA_EXPORTS_DIR
from .errors import UnsupportedOutputFormatError
from .logging import setup_logging

__all__ = [
    "settings",
    "PROJECT_ROOT",
    "DATA_DIR",
    "DATA_EXPORTS_DIR",
    "UnsupportedOutputFormatError",
    "setup_logging",
]
