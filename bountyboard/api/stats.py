"""
GET /stats
GET /health
"""
from fastapi import APIRouter, Depends

from bountyboard.api.deps import get_container
from bountyboard.core.constants import PAYMENT_CHAIN
from bountyboard.core.container import Container

router = APIRouter(tags=["Status"])

VERSION = "0.1.0"


@router.get("/stats")
async def get_stats(container: Container = Depends(get_container)):
    return container.engine.stats()


@router.get("/health")
async def health_check(container: Container = Depends(get_container)):
    return {
        "status": "ok",
        "version": VERSION,
        "ready": container.is_ready,
        "durable": container.caches.is_durable,
        "network": PAYMENT_CHAIN,
    }
