"""Scholiums domain exports."""

from .service import ScholiumService

__all__ = ["ScholiumService"]
