"""
Main API Router - Consolidates all module routes
"""

from fastapi import APIRouter
from agrisupply.api.v1 import (
    auth,
    reference,
    supplies,
    suppliers,
    process,
    payments
)

api_router = APIRouter()

# Authentication routes
api_router.include_router(auth.router, prefix="/auth", tags=["authentication"])

# Lookup tables for the intake screens
api_router.include_router(reference.router, tags=["reference"])

# Supply intake, list and detail
api_router.include_router(supplies.router, prefix="/supplies", tags=["supplies"])
api_router.include_router(suppliers.router, prefix="/suppliers", tags=["suppliers"])

# Process tracking
api_router.include_router(process.router, prefix="/process", tags=["process"])

# Supply payments
api_router.include_router(payments.router, prefix="/payments", tags=["payments"])
