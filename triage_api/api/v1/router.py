from fastapi import APIRouter
from triage_api.api.v1.endpoints import webhooks, vapi

api_router = APIRouter()
api_router.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])
api_router.include_router(vapi.router, prefix="/vapi", tags=["vapi"])
