"""Support domain - tickets, message threads and attachments"""

from .router import router

__all__ = ["router"]
