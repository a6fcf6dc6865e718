"""
Leasy - rental listing management with CSV import and duplicate detection
"""
from .config import settings

__version__ = settings.APP_VERSION

__all__ = ['settings', '__version__']
