"""
API v1 Router - ShipOps
"""
from fastapi import APIRouter
from shipops.api.v1.endpoints import shipments

router = APIRouter()

# Shipments (fulfillment, tracking, delivery)
router.include_router(shipments.router)
