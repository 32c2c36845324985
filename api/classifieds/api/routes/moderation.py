from fastapi import APIRouter, Depends

from classifieds.api.deps import get_moderation_service, to_http_exception
from classifieds.core.security import get_human_principal
from classifieds.schemas.ads import AdOut
from classifieds.schemas.moderation import ApproveRequest, ModerationRecordOut, ModerationResultOut, RejectRequest
from classifieds.services.errors import ServiceError

router = APIRouter()


@router.get("/pending", response_model=list[AdOut])
async def list_pending_ads(
    principal=Depends(get_human_principal),
    service=Depends(get_moderation_service),
) -> list[AdOut]:
    try:
        rows = await service.list_pending(principal)
    except ServiceError as exc:
        raise to_http_exception(exc, failure_message="Failed to fetch pending ads") from exc
    return [AdOut(**row) for row in rows]


@router.post("/approve", response_model=ModerationResultOut)
async def approve_ad(
    payload: ApproveRequest,
    principal=Depends(get_human_principal),
    service=Depends(get_moderation_service),
) -> ModerationResultOut:
    try:
        record = await service.approve(payload.ad_id, principal)
    except ServiceError as exc:
        raise to_http_exception(exc, failure_message="Failed to approve ad") from exc
    return ModerationResultOut(message="Ad approved successfully", record=ModerationRecordOut(**record))


@router.post("/reject", response_model=ModerationResultOut)
async def reject_ad(
    payload: RejectRequest,
    principal=Depends(get_human_principal),
    service=Depends(get_moderation_service),
) -> ModerationResultOut:
    try:
        record = await service.reject(payload.ad_id, payload.reason, principal)
    except ServiceError as exc:
        raise to_http_exception(exc, failure_message="Failed to reject ad") from exc
    return ModerationResultOut(message="Ad rejected successfully", record=ModerationRecordOut(**record))


@router.get("/ads/{ad_id}/records", response_model=list[ModerationRecordOut])
async def list_moderation_records(
    ad_id: str,
    principal=Depends(get_human_principal),
    service=Depends(get_moderation_service),
) -> list[ModerationRecordOut]:
    try:
        rows = await service.history(ad_id, principal)
    except ServiceError as exc:
        raise to_http_exception(exc, failure_message="Failed to fetch moderation records") from exc
    return [ModerationRecordOut(**row) for row in rows]
