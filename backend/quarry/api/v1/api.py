"""API router for v1 of the Quarry API."""

from fastapi import APIRouter

from quarry.api.v1.endpoints import datasources, datastores

api_router = APIRouter()
api_router.include_router(datasources.router, prefix="/datasources", tags=["datasources"])
api_router.include_router(datastores.router, prefix="/datastores", tags=["datastores"])
