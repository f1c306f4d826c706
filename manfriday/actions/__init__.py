from .base import ActionContext, ActionExecutor, ActionRequest, ActionResult
from .calendar import GoogleCalendarExecutor
from .gmail import GmailExecutor
from .google_api import GoogleApiClient
from .registry import ActionCatalog, ActionDefinition
from .reminder import ReminderExecutor
from .tasks import GoogleTasksExecutor

__all__ = [
    "ActionCatalog",
    "ActionContext",
    "ActionDefinition",
    "ActionExecutor",
    "ActionRequest",
    "ActionResult",
    "GmailExecutor",
    "GoogleApiClient",
    "GoogleCalendarExecutor",
    "GoogleTasksExecutor",
    "ReminderExecutor",
]
