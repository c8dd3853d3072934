"""Submission history routes: filtered listing, search, per-submission logs, delete."""

from datetime import date

from fastapi import APIRouter, Depends, Query

from formrelay.api.deps import get_form_service, get_query_service
from formrelay.core.auth import get_request_context
from formrelay.domain.context import RequestContext
from formrelay.domain.notifications import NotificationStatus, NotificationType
from formrelay.schemas.submissions import NotificationLogEntry, SubmissionItem, SubmissionPage
from formrelay.services.form_service import FormService
from formrelay.services.query_service import SubmissionFilters, SubmissionQueryService

router = APIRouter()


@router.get("/logs", response_model=SubmissionPage)
async def get_submissions(
    search: str | None = None,
    status: NotificationStatus | None = None,
    notification_type: NotificationType | None = Query(None, alias="type"),
    form_id: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    ctx: RequestContext = Depends(get_request_context),
    service: SubmissionQueryService = Depends(get_query_service),
):
    """Paginated submissions with reconciled notification logs, newest first.

    Date filters require the PRO plan; lower tiers get 403 plan_restricted.
    """
    filters = SubmissionFilters(
        search=search,
        status=status,
        type=notification_type,
        form_id=form_id,
        start_date=start_date,
        end_date=end_date,
    )
    return await service.query(ctx, filters, page=page, limit=limit)


@router.get("/search", response_model=list[SubmissionItem])
async def search_submissions(
    q: str = Query(..., min_length=1),
    form_id: str | None = None,
    ctx: RequestContext = Depends(get_request_context),
    service: SubmissionQueryService = Depends(get_query_service),
):
    """Search by email substring, or by id substring with an ``@`` prefix."""
    return await service.search(ctx, q, form_id)


@router.get("/{submission_id}/logs", response_model=list[NotificationLogEntry])
async def get_submission_logs(
    submission_id: str,
    ctx: RequestContext = Depends(get_request_context),
    service: SubmissionQueryService = Depends(get_query_service),
):
    return await service.submission_logs(ctx, submission_id)


@router.delete("/{submission_id}")
async def delete_submission(
    submission_id: str,
    ctx: RequestContext = Depends(get_request_context),
    service: FormService = Depends(get_form_service),
):
    await service.delete_submission(ctx, submission_id)
    return {"success": True}
