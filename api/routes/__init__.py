"""
API Routes Package

This module consolidates the checkout and payment routes.
"""

from fastapi import APIRouter

from . import checkout
from . import payments

# Create main router
router = APIRouter()

# Include all route modules
router.include_router(checkout.router, prefix="/checkout", tags=["checkout"])
router.include_router(payments.router, prefix="/payments", tags=["payments"])

# Export for use in main application
__all__ = ["router"]
