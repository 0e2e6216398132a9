from solsync.api.routes.health import router as health_router
from solsync.api.routes.sync import router as sync_router

__all__ = ["health_router", "sync_router"]
