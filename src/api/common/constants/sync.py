from enum import Enum


class SyncQueueStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    EMPTY = "empty"
    CANCELLED = "cancelled"
    DAY_ERROR = "day_error"
    FETCH_ERROR = "fetch_error"


ACTIVE_QUEUE_STATUSES = (SyncQueueStatus.PENDING, SyncQueueStatus.PROCESSING)

TERMINAL_QUEUE_STATUSES = (
    SyncQueueStatus.COMPLETED,
    SyncQueueStatus.EMPTY,
    SyncQueueStatus.CANCELLED,
    SyncQueueStatus.DAY_ERROR,
    SyncQueueStatus.FETCH_ERROR,
)


class DayResultStatus(str, Enum):
    """Status returned by one day-processing step"""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    EMPTY = "empty"
    CANCELLED = "cancelled"
    DAY_ERROR = "day_error"
    FETCH_ERROR = "fetch_error"
    # The conditional checkpoint update lost: another invocation owns the job
    BUSY = "busy"
    NOT_FOUND = "not_found"


# Statuses that end the drainer's inner loop for a job
STOP_DRAINING_STATUSES = {
    DayResultStatus.COMPLETED,
    DayResultStatus.EMPTY,
    DayResultStatus.CANCELLED,
    DayResultStatus.DAY_ERROR,
    DayResultStatus.FETCH_ERROR,
    DayResultStatus.BUSY,
    DayResultStatus.NOT_FOUND,
}


class SyncType(str, Enum):
    FULL = "full"
    INCREMENTAL = "incremental"


class ScheduleType(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"


class EntityType(str, Enum):
    SALES = "sales"
    CASH_FLOW = "cash_flow"
    CASH_FLOW_STATEMENT = "cash_flow_statement"
    COMPANIES = "companies"
    EMPLOYEES = "employees"
    PRODUCTS = "products"
    CATEGORIES = "categories"
    STOCK = "stock"


# Entities partitioned by date and ingested day by day
DATED_ENTITY_TYPES = {
    EntityType.SALES,
    EntityType.CASH_FLOW,
    EntityType.CASH_FLOW_STATEMENT,
}
