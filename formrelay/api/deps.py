"""FastAPI dependency providers for the service layer."""

from fastapi import Depends

from formrelay.core.config import get_settings
from formrelay.db.base import get_session_factory
from formrelay.db.store import SubmissionStore
from formrelay.services.delivery_service import DeliveryExecutor
from formrelay.services.email_rendering import EmailRenderer
from formrelay.services.form_service import FormService
from formrelay.services.mail import MailTransport, get_mail_transport, send_budget_seconds
from formrelay.services.query_service import SubmissionQueryService
from formrelay.services.quota_service import QuotaLedger
from formrelay.services.submission_service import SubmissionService


def get_store() -> SubmissionStore:
    return SubmissionStore(get_session_factory())


def get_quota_ledger(store: SubmissionStore = Depends(get_store)) -> QuotaLedger:
    return QuotaLedger(store)


def get_form_service(
    store: SubmissionStore = Depends(get_store),
    ledger: QuotaLedger = Depends(get_quota_ledger),
) -> FormService:
    return FormService(store, ledger)


def get_query_service(store: SubmissionStore = Depends(get_store)) -> SubmissionQueryService:
    return SubmissionQueryService(store)


def get_submission_service(
    store: SubmissionStore = Depends(get_store),
    ledger: QuotaLedger = Depends(get_quota_ledger),
    transport: MailTransport = Depends(get_mail_transport),
) -> SubmissionService:
    settings = get_settings()
    executor = DeliveryExecutor(
        store,
        transport,
        EmailRenderer(settings.default_from_email, settings.default_reply_to),
        timeout_seconds=send_budget_seconds(settings.mail_send_timeout_seconds, settings.mail_max_attempts),
    )
    return SubmissionService(store, ledger, executor)
