from ...domains.documents.routes import admin_router, router

__all__ = ["router", "admin_router"]
