from fastapi import APIRouter
from app.api.v1.endpoints import planning

api_router = APIRouter()

api_router.include_router(planning.router, prefix="/planning", tags=["Planning"])
