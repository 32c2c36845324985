from fastapi import APIRouter, Depends, status

from classifieds.api.deps import get_category_service, to_http_exception
from classifieds.core.security import get_human_principal
from classifieds.schemas.categories import CategoryMutationOut, CategoryOut, CategoryWriteRequest, DeletedOut
from classifieds.services.errors import ServiceError

router = APIRouter()


@router.get("", response_model=list[CategoryOut])
async def list_categories(service=Depends(get_category_service)) -> list[CategoryOut]:
    try:
        rows = await service.list_categories()
    except ServiceError as exc:
        raise to_http_exception(exc, failure_message="Failed to fetch categories") from exc
    return [CategoryOut(**row) for row in rows]


@router.post("", response_model=CategoryMutationOut, status_code=status.HTTP_201_CREATED)
async def create_category(
    payload: CategoryWriteRequest,
    principal=Depends(get_human_principal),
    service=Depends(get_category_service),
) -> CategoryMutationOut:
    try:
        row = await service.create_category(payload.name, principal)
    except ServiceError as exc:
        raise to_http_exception(exc, failure_message="Failed to create category") from exc
    return CategoryMutationOut(message="Category created successfully", category=CategoryOut(**row))


@router.put("/{category_id}", response_model=CategoryMutationOut)
async def rename_category(
    category_id: str,
    payload: CategoryWriteRequest,
    principal=Depends(get_human_principal),
    service=Depends(get_category_service),
) -> CategoryMutationOut:
    try:
        row = await service.rename_category(category_id, payload.name, principal)
    except ServiceError as exc:
        raise to_http_exception(exc, failure_message="Failed to update category") from exc
    return CategoryMutationOut(message="Category updated successfully", category=CategoryOut(**row))


@router.delete("/{category_id}", response_model=DeletedOut)
async def delete_category(
    category_id: str,
    principal=Depends(get_human_principal),
    service=Depends(get_category_service),
) -> DeletedOut:
    try:
        removed = await service.delete_category(category_id, principal)
    except ServiceError as exc:
        raise to_http_exception(exc, failure_message="Failed to delete category") from exc
    return DeletedOut(message="Category and its subcategories deleted successfully", subcategories_removed=removed)
