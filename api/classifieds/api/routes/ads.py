from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status as http_status

from classifieds.api.deps import get_ad_service, get_catalog_service, to_http_exception
from classifieds.core.auth import Action, is_allowed
from classifieds.core.security import get_human_principal, get_optional_principal
from classifieds.schemas.ads import AdCreatedOut, AdOut, AdUpdatedOut
from classifieds.services.ads import AdInput, ImageFile, parse_retained_images
from classifieds.services.errors import ServiceError

router = APIRouter()


@router.get("", response_model=list[AdOut])
async def search_ads(
    category: str | None = Query(default=None),
    subcategory: str | None = Query(default=None),
    search: str | None = Query(default=None),
    limit: int | None = Query(default=None, ge=1, le=100),
    catalog=Depends(get_catalog_service),
) -> list[AdOut]:
    try:
        rows = await catalog.search(
            category_id=category,
            subcategory_id=subcategory,
            search_text=search,
            limit=limit,
        )
    except ServiceError as exc:
        raise to_http_exception(exc, failure_message="Failed to fetch ads") from exc
    return [AdOut(**row) for row in rows]


@router.post("", response_model=AdCreatedOut, status_code=http_status.HTTP_201_CREATED)
async def create_ad(
    title: str | None = Form(default=None),
    description: str | None = Form(default=None),
    price: str | None = Form(default=None),
    category: str | None = Form(default=None),
    subcategory: str | None = Form(default=None),
    city: str | None = Form(default=None),
    country: str | None = Form(default=None),
    ad_status: str | None = Form(default=None, alias="status"),
    images: list[UploadFile] | None = File(default=None),
    principal=Depends(get_human_principal),
    service=Depends(get_ad_service),
) -> AdCreatedOut:
    payload = AdInput(
        title=title,
        description=description,
        price=price,
        category=category,
        subcategory=subcategory,
        city=city,
        country=country,
        status=ad_status,
    )
    try:
        ad_id = await service.create(payload, principal, await _read_images(images))
    except ServiceError as exc:
        raise to_http_exception(exc, failure_message="Failed to create ad") from exc
    return AdCreatedOut(message="Ad created successfully and pending approval", id=ad_id)


@router.get("/mine", response_model=list[AdOut])
async def list_my_ads(
    principal=Depends(get_human_principal),
    service=Depends(get_ad_service),
) -> list[AdOut]:
    try:
        rows = await service.list_mine(principal)
    except ServiceError as exc:
        raise to_http_exception(exc, failure_message="Failed to fetch ads") from exc
    return [AdOut(**row) for row in rows]


@router.get("/{ad_id}", response_model=AdOut)
async def get_ad(
    ad_id: str,
    principal=Depends(get_optional_principal),
    service=Depends(get_ad_service),
) -> AdOut:
    try:
        row = await service.fetch_by_id(ad_id)
    except ServiceError as exc:
        raise to_http_exception(exc, failure_message="Failed to fetch ad") from exc
    # Unreviewed and rejected ads are hidden from everyone but the owner and moderators.
    if not is_allowed(principal, Action.VIEW_AD, row):
        raise HTTPException(status_code=http_status.HTTP_404_NOT_FOUND, detail="Ad not found")
    return AdOut(**row)


@router.put("/{ad_id}", response_model=AdUpdatedOut)
async def update_ad(
    ad_id: str,
    title: str | None = Form(default=None),
    description: str | None = Form(default=None),
    price: str | None = Form(default=None),
    category: str | None = Form(default=None),
    subcategory: str | None = Form(default=None),
    city: str | None = Form(default=None),
    country: str | None = Form(default=None),
    existing_images: str | None = Form(default=None, alias="existingImages"),
    images: list[UploadFile] | None = File(default=None),
    principal=Depends(get_human_principal),
    service=Depends(get_ad_service),
) -> AdUpdatedOut:
    payload = AdInput(
        title=title,
        description=description,
        price=price,
        category=category,
        subcategory=subcategory,
        city=city,
        country=country,
    )
    try:
        row = await service.update(
            ad_id,
            payload,
            principal,
            retained_images=parse_retained_images(existing_images),
            images=await _read_images(images),
        )
    except ServiceError as exc:
        raise to_http_exception(exc, failure_message="Failed to update ad") from exc
    return AdUpdatedOut(message="Ad updated successfully and pending approval", ad=AdOut(**row))


async def _read_images(uploads: list[UploadFile] | None) -> list[ImageFile]:
    files: list[ImageFile] = []
    for upload in uploads or []:
        data = await upload.read()
        # Browsers submit an empty part when no file was picked.
        if not data and not upload.filename:
            continue
        files.append(ImageFile(data=data, filename=upload.filename))
    return files
