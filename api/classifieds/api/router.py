from fastapi import APIRouter

from classifieds.api.routes import ads, categories, health, moderation, subcategories

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(ads.router, prefix="/ads", tags=["ads"])
api_router.include_router(categories.router, prefix="/categories", tags=["catalog"])
api_router.include_router(subcategories.router, prefix="/subcategories", tags=["catalog"])
api_router.include_router(moderation.router, prefix="/moderation", tags=["moderation"])
