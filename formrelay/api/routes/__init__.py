from fastapi import APIRouter

from formrelay.api.routes import forms, health, settings, submissions, usage

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(forms.router, prefix="/forms", tags=["forms"])
api_router.include_router(submissions.router, prefix="/submissions", tags=["submissions"])
api_router.include_router(settings.router, prefix="/settings", tags=["settings"])
api_router.include_router(usage.router, tags=["usage"])
