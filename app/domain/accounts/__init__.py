"""Accounts domain - read-only directory of admin, clinic and therapist accounts"""

from .repository import AccountDirectory

__all__ = ["AccountDirectory"]
