from fastapi import APIRouter, Depends

from formrelay.api.deps import get_form_service
from formrelay.core.auth import get_request_context
from formrelay.domain.context import RequestContext
from formrelay.schemas.forms import GlobalSettingsResponse, GlobalSettingsUpdate
from formrelay.services.form_service import FormService

router = APIRouter()


@router.get("/global", response_model=GlobalSettingsResponse)
async def get_global_settings(
    ctx: RequestContext = Depends(get_request_context),
    service: FormService = Depends(get_form_service),
):
    return await service.get_global_settings(ctx)


@router.put("/global", response_model=GlobalSettingsResponse)
async def update_global_settings(
    body: GlobalSettingsUpdate,
    ctx: RequestContext = Depends(get_request_context),
    service: FormService = Depends(get_form_service),
):
    settings = await service.update_global_settings(ctx, **body.model_dump())
    return GlobalSettingsResponse.model_validate(settings)
