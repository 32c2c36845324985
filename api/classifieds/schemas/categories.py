from datetime import datetime

from pydantic import AliasChoices, BaseModel, Field

from classifieds.schemas.ads import NamedRef


class CategoryOut(BaseModel):
    id: str
    name: str
    created_at: datetime
    updated_at: datetime


class CategoryWriteRequest(BaseModel):
    name: str | None = None


class SubcategoryOut(BaseModel):
    id: str
    name: str
    category: NamedRef
    created_at: datetime
    updated_at: datetime


class SubcategoryCreateRequest(BaseModel):
    name: str | None = None
    category_id: str | None = Field(default=None, validation_alias=AliasChoices("categoryId", "category_id"))


class SubcategoryRenameRequest(BaseModel):
    name: str | None = None


class CategoryMutationOut(BaseModel):
    message: str
    category: CategoryOut


class SubcategoryMutationOut(BaseModel):
    message: str
    subcategory: SubcategoryOut


class DeletedOut(BaseModel):
    message: str
    subcategories_removed: int = 0
