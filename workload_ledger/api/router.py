"""Top-level API router."""

from fastapi import APIRouter

from workload_ledger.api.routes.health import router as health_router
from workload_ledger.api.routes.initiatives import router as initiatives_router
from workload_ledger.api.routes.me import router as me_router
from workload_ledger.api.routes.notifications import router as notifications_router
from workload_ledger.api.routes.projects import router as projects_router
from workload_ledger.api.routes.users import router as users_router
from workload_ledger.api.routes.workload import router as workload_router

api_router = APIRouter()
api_router.include_router(health_router, tags=["health"])
api_router.include_router(notifications_router)
api_router.include_router(me_router)
api_router.include_router(users_router)
api_router.include_router(workload_router)
api_router.include_router(projects_router)
api_router.include_router(initiatives_router)
