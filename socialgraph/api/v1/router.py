from fastapi import APIRouter

from socialgraph.api.v1.endpoints import relationships, suggestions, sync

api_router = APIRouter()

# Include routers
api_router.include_router(relationships.router, prefix="/relationships", tags=["relationships"])
api_router.include_router(suggestions.router, prefix="/suggestions", tags=["suggestions"])
api_router.include_router(sync.router, prefix="/sync", tags=["sync"])
