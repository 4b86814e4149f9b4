from ...domains.webhooks.routes import router

__all__ = ["router"]
