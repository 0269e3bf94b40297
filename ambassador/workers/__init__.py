"""Background workers."""
from .dispatcher import BackgroundDispatcher

__all__ = ["BackgroundDispatcher"]
