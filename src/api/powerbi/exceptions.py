from typing import Optional


class SyncError(Exception):
    """Base class for sync pipeline failures"""


class AuthenticationFailure(SyncError):
    """The identity provider refused or could not issue a token"""


class UpstreamQueryFailure(SyncError):
    """The analytics API rejected the query or could not be reached"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class MappingFailure(SyncError):
    """A row could not be turned into a destination record"""

    def __init__(self, message: str, external_id: Optional[str] = None):
        super().__init__(message)
        self.external_id = external_id


class PersistenceFailure(SyncError):
    """The destination store rejected a batch"""


class ActiveJobExists(SyncError):
    """A pending or processing job already exists for the config"""

    def __init__(self, config_id: int, queue_id: int):
        super().__init__(f"Config {config_id} already has active job {queue_id}")
        self.config_id = config_id
        self.queue_id = queue_id


class InvalidJobState(SyncError):
    """The requested transition is not allowed from the job's current status"""
