"""
Python data-access layer over the SiteDesk API.

Typical wiring::

    transport = HttpTransport.from_settings()
    identity = IdentityManager(transport)
    store = WebsiteStore(transport, identity)
    if identity.login('alice', 'secret'):
        store.fetch_all()
"""
from .cache import SnapshotCache
from .result import Ok, Err, DataAccessError, ErrorKind
from .retry import retry
from .schemas import (
    Profile, Submission, SubmissionFile, ManagementRecord, Task,
    UserChanges, NewSubmission, SubmissionChanges, NewRecord, RecordChanges, InvalidRequest,
)
from .session import IdentityManager, SessionState
from .store import WebsiteStore
from .transport import HttpTransport

__all__ = [
    'SnapshotCache', 'Ok', 'Err', 'DataAccessError', 'ErrorKind', 'retry',
    'Profile', 'Submission', 'SubmissionFile', 'ManagementRecord', 'Task',
    'UserChanges', 'NewSubmission', 'SubmissionChanges', 'NewRecord', 'RecordChanges', 'InvalidRequest',
    'IdentityManager', 'SessionState', 'WebsiteStore', 'HttpTransport',
]
