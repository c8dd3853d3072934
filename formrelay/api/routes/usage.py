from fastapi import APIRouter, Depends

from formrelay.api.deps import get_quota_ledger
from formrelay.core.auth import get_request_context
from formrelay.domain.context import RequestContext
from formrelay.schemas.usage import UsageResponse
from formrelay.services.quota_service import QuotaLedger

router = APIRouter()


@router.get("/usage", response_model=UsageResponse)
async def get_usage(
    ctx: RequestContext = Depends(get_request_context),
    ledger: QuotaLedger = Depends(get_quota_ledger),
):
    """Forms owned and month-to-date submissions against the plan limits."""
    return await ledger.usage(ctx)
