from ...domains.catalog.routes import admin_router, router

__all__ = ["router", "admin_router"]
