"""API routes."""

from fastapi import APIRouter

from supplier_catalog.api.routes import supplier_products

api_router = APIRouter()

api_router.include_router(
    supplier_products.router, prefix="/supplier-products", tags=["supplier-products", "catalog"]
)
