"""API v1 router aggregation."""

from fastapi import APIRouter

from fundingpipe.api.v1.jobs import router as jobs_router
from fundingpipe.api.v1.programs import router as programs_router
from fundingpipe.api.v1.agencies import router as agencies_router

router = APIRouter(prefix="/api/v1")

router.include_router(jobs_router)
router.include_router(programs_router)
router.include_router(agencies_router)
