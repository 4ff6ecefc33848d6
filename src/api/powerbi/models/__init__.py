"""Power BI sync models package."""
from src.api.powerbi.models.connection import PowerBIConnection
from src.api.powerbi.models.sync_config import SyncConfig
from src.api.powerbi.models.sync_schedule import SyncSchedule
from src.api.powerbi.models.sync_queue import SyncQueueItem
from src.api.powerbi.models.external_records import (
    ExternalSale,
    ExternalCashFlow,
    ExternalCashFlowStatement,
    ExternalCompany,
    ExternalEmployee,
    ExternalProduct,
    ExternalCategory,
    ExternalStock,
    ENTITY_MODELS,
    get_entity_model,
)

__all__ = [
    "PowerBIConnection",
    "SyncConfig",
    "SyncSchedule",
    "SyncQueueItem",
    "ExternalSale",
    "ExternalCashFlow",
    "ExternalCashFlowStatement",
    "ExternalCompany",
    "ExternalEmployee",
    "ExternalProduct",
    "ExternalCategory",
    "ExternalStock",
    "ENTITY_MODELS",
    "get_entity_model",
]
