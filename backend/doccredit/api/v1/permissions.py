from ...domains.permissions.routes import router

__all__ = ["router"]
