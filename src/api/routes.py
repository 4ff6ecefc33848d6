from fastapi import APIRouter
from src.api.integrations.endpoints.integration_errors import router as integration_errors_router
from src.api.powerbi.endpoints.connections import router as connections_router
from src.api.powerbi.endpoints.cron import router as cron_router
from src.api.powerbi.endpoints.schedules import router as schedules_router
from src.api.powerbi.endpoints.sync_configs import router as sync_configs_router
from src.api.powerbi.endpoints.sync_queue import router as sync_queue_router
from src.api.powerbi.endpoints.sync_stats import router as sync_stats_router

powerbi_router = APIRouter(prefix="/powerbi")

# Include all domain routers
powerbi_router.include_router(connections_router)
powerbi_router.include_router(sync_configs_router)
powerbi_router.include_router(schedules_router)
powerbi_router.include_router(sync_queue_router)
powerbi_router.include_router(sync_stats_router)
powerbi_router.include_router(integration_errors_router)

# triggered by the external scheduler
powerbi_router.include_router(cron_router)

api_router = APIRouter()
api_router.include_router(powerbi_router)
