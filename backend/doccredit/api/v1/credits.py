from ...domains.credits.routes import admin_router, router

__all__ = ["router", "admin_router"]
