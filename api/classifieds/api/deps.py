import logging

from fastapi import Depends, HTTPException, Request, status

from classifieds.core.config import Settings, get_settings
from classifieds.services.ads import AdService
from classifieds.services.catalog import CatalogService
from classifieds.services.categories import CategoryService
from classifieds.services.errors import (
    ConflictError,
    NotFoundError,
    ServiceError,
    UnauthorizedError,
    UpstreamError,
    ValidationError,
)
from classifieds.services.images import ImageUploader
from classifieds.services.moderation import ModerationService
from classifieds.services.repository import PostgresRepository

logger = logging.getLogger(__name__)


def get_repository(request: Request) -> PostgresRepository:
    return request.app.state.repository


def get_image_uploader(request: Request) -> ImageUploader:
    return request.app.state.image_uploader


def get_ad_service(
    repository=Depends(get_repository),
    image_uploader=Depends(get_image_uploader),
) -> AdService:
    return AdService(repository, image_uploader)


def get_moderation_service(
    repository=Depends(get_repository),
    settings: Settings = Depends(get_settings),
) -> ModerationService:
    return ModerationService(
        repository,
        approve_clears_rejection_reason=settings.approve_clears_rejection_reason,
    )


def get_catalog_service(
    repository=Depends(get_repository),
    settings: Settings = Depends(get_settings),
) -> CatalogService:
    return CatalogService(
        repository,
        default_limit=settings.catalog_default_limit,
        max_limit=settings.catalog_max_limit,
    )


def get_category_service(repository=Depends(get_repository)) -> CategoryService:
    return CategoryService(repository)


def to_http_exception(exc: ServiceError, *, failure_message: str) -> HTTPException:
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, UnauthorizedError):
        return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc) or "Unauthorized")
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, ConflictError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, UpstreamError):
        logger.error("upstream failure: %s (%s)", failure_message, exc, exc_info=exc)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=failure_message)
