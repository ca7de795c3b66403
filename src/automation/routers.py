from fastapi import APIRouter

from .features.domain_events.router import router as domain_events_router
from .features.manage_flows.router import router as manage_flows_router
from .features.operator_commands.router import router as operator_commands_router

router = APIRouter()

router.include_router(manage_flows_router)
router.include_router(operator_commands_router)
router.include_router(domain_events_router)
