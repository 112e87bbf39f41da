"""Settings domain - persisted platform settings"""

from .router import router

__all__ = ["router"]
