"""Client-side state engine: connection lifecycle, catalog, records, notifications."""

from .catalog import SchemaCatalog
from .foreign_keys import ForeignKeyResolver
from .forms import EditForm, FormMode
from .lifecycle import ConnectionLifecycle, ConnectionPhase, ConnectionStatus
from .notifications import Notification, NotificationKind, NotificationQueue
from .records import RecordSetController
from .scheduler import AsyncioScheduler, ManualScheduler, Scheduler
from .session import BrowserSession, create_session

__all__ = [
    "AsyncioScheduler",
    "BrowserSession",
    "ConnectionLifecycle",
    "ConnectionPhase",
    "ConnectionStatus",
    "EditForm",
    "FormMode",
    "ForeignKeyResolver",
    "ManualScheduler",
    "Notification",
    "NotificationKind",
    "NotificationQueue",
    "RecordSetController",
    "Scheduler",
    "SchemaCatalog",
    "create_session",
]
