from fastapi import APIRouter, Depends, Query, status

from classifieds.api.deps import get_category_service, to_http_exception
from classifieds.core.security import get_human_principal
from classifieds.schemas.categories import (
    DeletedOut,
    SubcategoryCreateRequest,
    SubcategoryMutationOut,
    SubcategoryOut,
    SubcategoryRenameRequest,
)
from classifieds.services.errors import ServiceError

router = APIRouter()


@router.get("", response_model=list[SubcategoryOut])
async def list_subcategories(
    category_id: str | None = Query(default=None, alias="categoryId"),
    service=Depends(get_category_service),
) -> list[SubcategoryOut]:
    try:
        rows = await service.list_subcategories(category_id)
    except ServiceError as exc:
        raise to_http_exception(exc, failure_message="Failed to fetch subcategories") from exc
    return [SubcategoryOut(**row) for row in rows]


@router.post("", response_model=SubcategoryMutationOut, status_code=status.HTTP_201_CREATED)
async def create_subcategory(
    payload: SubcategoryCreateRequest,
    principal=Depends(get_human_principal),
    service=Depends(get_category_service),
) -> SubcategoryMutationOut:
    try:
        row = await service.create_subcategory(payload.name, payload.category_id, principal)
    except ServiceError as exc:
        raise to_http_exception(exc, failure_message="Failed to create subcategory") from exc
    return SubcategoryMutationOut(message="Subcategory created successfully", subcategory=SubcategoryOut(**row))


@router.put("/{subcategory_id}", response_model=SubcategoryMutationOut)
async def rename_subcategory(
    subcategory_id: str,
    payload: SubcategoryRenameRequest,
    principal=Depends(get_human_principal),
    service=Depends(get_category_service),
) -> SubcategoryMutationOut:
    try:
        row = await service.rename_subcategory(subcategory_id, payload.name, principal)
    except ServiceError as exc:
        raise to_http_exception(exc, failure_message="Failed to update subcategory") from exc
    return SubcategoryMutationOut(message="Subcategory updated successfully", subcategory=SubcategoryOut(**row))


@router.delete("/{subcategory_id}", response_model=DeletedOut)
async def delete_subcategory(
    subcategory_id: str,
    principal=Depends(get_human_principal),
    service=Depends(get_category_service),
) -> DeletedOut:
    try:
        await service.delete_subcategory(subcategory_id, principal)
    except ServiceError as exc:
        raise to_http_exception(exc, failure_message="Failed to delete subcategory") from exc
    return DeletedOut(message="Subcategory deleted successfully")
