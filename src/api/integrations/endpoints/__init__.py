from src.api.integrations.endpoints.integration_errors import router as integration_errors_router

__all__ = ["integration_errors_router"]
