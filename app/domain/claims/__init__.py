"""Field claims and ownership transfer"""

from .router import router

__all__ = ["router"]
