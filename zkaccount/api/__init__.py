from zkaccount.api.accounts import router as accounts_router
from zkaccount.api.health import router as health_router

__all__ = ["accounts_router", "health_router"]
