from fastapi import APIRouter

from medlegal.api.v1.endpoints import bills, documents, users

api_router = APIRouter()

api_router.include_router(documents.router, prefix="/documents", tags=["Documents"])
api_router.include_router(bills.router, tags=["Medical Bills"])
api_router.include_router(users.router, prefix="/user", tags=["User"])

__all__ = ["api_router"]
