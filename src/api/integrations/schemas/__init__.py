from .integration_error import (
    IntegrationErrorCreate,
    IntegrationErrorRead,
    IntegrationErrorUpdate,
    IntegrationErrorFilter,
    IntegrationErrorPage,
)

__all__ = [
    "IntegrationErrorCreate",
    "IntegrationErrorRead",
    "IntegrationErrorUpdate",
    "IntegrationErrorFilter",
    "IntegrationErrorPage",
]
