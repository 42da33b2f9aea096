"""
Main API Router - Consolidates all module routes
"""

from fastapi import APIRouter
from freightops.api.v1 import allocations, pickups, bookings

api_router = APIRouter()

# Stock allocation routes
api_router.include_router(allocations.router, tags=["allocation"])

# Pickup routes
api_router.include_router(pickups.router, tags=["pickup"])

# Booking progression routes
api_router.include_router(bookings.router, tags=["bookings"])
