from pydantic import BaseModel


class QuotaUsage(BaseModel):
    current: int
    limit: int  # -1 means unlimited


class SubmissionQuotaUsage(QuotaUsage):
    period_start: str


class UsageResponse(BaseModel):
    plan: str
    forms: QuotaUsage
    submissions: SubmissionQuotaUsage
