"""Re-export all models so Base.metadata sees them."""

from formrelay.db.models.email_settings import EmailSettings
from formrelay.db.models.form import Form
from formrelay.db.models.global_settings import GlobalSettings
from formrelay.db.models.notification_log import NotificationLog
from formrelay.db.models.submission import Submission
from formrelay.db.models.tenant import Tenant

__all__ = [
    "EmailSettings",
    "Form",
    "GlobalSettings",
    "NotificationLog",
    "Submission",
    "Tenant",
]
