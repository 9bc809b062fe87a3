from . import analytics

__all__ = [
    "analytics",
]
