"""Form routes: public intake, form lifecycle, per-form settings, analytics and export."""

from typing import Any, Literal

from fastapi import APIRouter, Body, Depends, Query, Request

from formrelay.api.deps import get_form_service, get_submission_service
from formrelay.core.auth import get_request_context
from formrelay.db.models.global_settings import GlobalSettings
from formrelay.domain.analytics import RequestMetadata
from formrelay.domain.context import RequestContext
from formrelay.schemas.forms import (
    EmailSettingsResponse,
    EmailSettingsToggle,
    EmailSettingsUpdate,
    FormCreate,
    FormFromTemplate,
    FormListResponse,
    FormResponse,
    FormTemplateResponse,
    GlobalSettingsResponse,
)
from formrelay.schemas.submissions import (
    ExportRequest,
    ExportResponse,
    FormSubmissionItem,
    SubmissionCreateResponse,
)
from formrelay.services.form_service import FormService
from formrelay.services.submission_service import SubmissionService

router = APIRouter()


@router.post("/{form_id}/submissions", response_model=SubmissionCreateResponse, status_code=201)
async def submit_form(
    form_id: str,
    request: Request,
    payload: dict[str, Any] = Body(...),
    service: SubmissionService = Depends(get_submission_service),
):
    """Public intake endpoint; the owning tenant is derived from the form."""
    result = await service.submit(form_id, payload, RequestMetadata.from_headers(request.headers))
    return SubmissionCreateResponse(
        submission_id=result.submission_id,
        message=result.message,
        created_at=result.created_at,
        notifications=result.notifications,
    )


@router.get("/templates", response_model=list[FormTemplateResponse])
async def list_templates(service: FormService = Depends(get_form_service)):
    return [
        FormTemplateResponse(id=t.id.value, name=t.name, description=t.description, fields=t.fields)
        for t in service.templates()
    ]


@router.get("", response_model=FormListResponse)
async def list_forms(
    limit: int = Query(10, ge=1, le=100),
    cursor: str | None = None,
    ctx: RequestContext = Depends(get_request_context),
    service: FormService = Depends(get_form_service),
):
    return await service.list_forms(ctx, limit=limit, cursor=cursor)


@router.post("", response_model=FormResponse, status_code=201)
async def create_form(
    body: FormCreate,
    ctx: RequestContext = Depends(get_request_context),
    service: FormService = Depends(get_form_service),
):
    form = await service.create_form(ctx, body.name, body.description, body.form_schema)
    return FormResponse.model_validate(form)


@router.post("/from-template", response_model=FormResponse, status_code=201)
async def create_form_from_template(
    body: FormFromTemplate,
    ctx: RequestContext = Depends(get_request_context),
    service: FormService = Depends(get_form_service),
):
    form = await service.create_from_template(ctx, body.template_id)
    return FormResponse.model_validate(form)


@router.get("/{form_id}", response_model=FormResponse)
async def get_form(
    form_id: str,
    ctx: RequestContext = Depends(get_request_context),
    service: FormService = Depends(get_form_service),
):
    return FormResponse.model_validate(await service.get_form(ctx, form_id))


@router.delete("/{form_id}")
async def delete_form(
    form_id: str,
    ctx: RequestContext = Depends(get_request_context),
    service: FormService = Depends(get_form_service),
):
    await service.delete_form(ctx, form_id)
    return {"success": True}


@router.get("/{form_id}/submissions", response_model=list[FormSubmissionItem])
async def list_form_submissions(
    form_id: str,
    ctx: RequestContext = Depends(get_request_context),
    service: FormService = Depends(get_form_service),
):
    return await service.form_submissions(ctx, form_id)


@router.get("/{form_id}/analytics")
async def form_analytics(
    form_id: str,
    time_range: Literal["day", "week", "month"] = "day",
    ctx: RequestContext = Depends(get_request_context),
    service: FormService = Depends(get_form_service),
):
    return await service.analytics(ctx, form_id, time_range)


@router.post("/{form_id}/export", response_model=ExportResponse)
async def export_submissions(
    form_id: str,
    body: ExportRequest | None = None,
    ctx: RequestContext = Depends(get_request_context),
    service: FormService = Depends(get_form_service),
):
    body = body or ExportRequest()
    records = await service.export(ctx, form_id, body.start_date, body.end_date)
    return ExportResponse(form_id=form_id, count=len(records), records=records)


# ==================== EMAIL SETTINGS ====================


@router.get("/{form_id}/email-settings", response_model=EmailSettingsResponse)
async def get_email_settings(
    form_id: str,
    ctx: RequestContext = Depends(get_request_context),
    service: FormService = Depends(get_form_service),
):
    return EmailSettingsResponse.model_validate(await service.get_email_settings(ctx, form_id))


@router.post("/{form_id}/email-settings/toggle", response_model=EmailSettingsResponse)
async def toggle_email_settings(
    form_id: str,
    body: EmailSettingsToggle,
    ctx: RequestContext = Depends(get_request_context),
    service: FormService = Depends(get_form_service),
):
    developer = None
    if body.developer_notifications is not None:
        developer = body.developer_notifications.model_dump(mode="json")
    settings = await service.toggle_email_settings(ctx, form_id, body.enabled, developer)
    return EmailSettingsResponse.model_validate(settings)


@router.put("/{form_id}/email-settings", response_model=EmailSettingsResponse | GlobalSettingsResponse)
async def update_email_settings(
    form_id: str,
    body: EmailSettingsUpdate,
    ctx: RequestContext = Depends(get_request_context),
    service: FormService = Depends(get_form_service),
):
    """Partial update. ``global`` as the form id updates the tenant-wide settings."""
    settings = await service.update_email_settings(ctx, form_id, **body.model_dump())
    if isinstance(settings, GlobalSettings):
        return GlobalSettingsResponse.model_validate(settings)
    return EmailSettingsResponse.model_validate(settings)
