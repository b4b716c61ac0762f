from fastapi import APIRouter

from portal.modules.benefit_flows import router as benefit_flows_router

api_router = APIRouter()

api_router.include_router(benefit_flows_router, tags=["Benefit Flows"])
