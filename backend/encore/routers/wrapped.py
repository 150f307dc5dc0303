"""Yearly listening summary endpoint."""

from fastapi import APIRouter, Depends

from encore.config import get_settings
from encore.dependencies import get_wrapped_service
from encore.routers.errors import run_engine_call
from encore.schemas import CamelModel, WrappedStats
from encore.services.auth import require_user_id
from encore.services.wrapped import WrappedService

router = APIRouter()
settings = get_settings()


class WrappedResponse(CamelModel):
    wrapped: WrappedStats


@router.get("", response_model=WrappedResponse)
async def get_wrapped(
    user_id: int = Depends(require_user_id),
    service: WrappedService = Depends(get_wrapped_service),
):
    stats = await run_engine_call(service.compute_wrapped(user_id), settings.request_timeout_seconds)
    return WrappedResponse(wrapped=stats)
