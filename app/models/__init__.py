from app.models.client import Client
from app.models.notification_job import NotificationJob, QueueState
from app.models.notification_log import NotificationLog
from app.models.operator import Operator
from app.models.reminder import Reminder

__all__ = ["Client", "NotificationJob", "NotificationLog", "Operator", "QueueState", "Reminder"]
