"""
Business logic services for the NGO account surface.
"""

from .notifications import NotificationClient, NotificationDispatcher, get_notification_dispatcher
from .storage import FileStorage, get_file_storage
from .request_workflow import TransitionError, transition

__all__ = [
    "NotificationClient",
    "NotificationDispatcher",
    "get_notification_dispatcher",
    "FileStorage",
    "get_file_storage",
    "TransitionError",
    "transition"
]
