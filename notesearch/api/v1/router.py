from fastapi import APIRouter

from notesearch.api.v1.endpoints import (
    note_endpoints,
    instance_endpoints,
)

api_router = APIRouter()

api_router.include_router(note_endpoints.router, prefix="/notes", tags=["notes"])
api_router.include_router(instance_endpoints.router, prefix="/instance", tags=["instance"])
