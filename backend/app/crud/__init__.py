from .appointment import appointment

__all__ = ["appointment"]
