"""Field owner earnings and payout reconciliation"""

from .router import router

__all__ = ["router"]
