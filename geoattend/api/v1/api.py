"""
V1 API router aggregator: wires all endpoint modules together.
"""

from fastapi import APIRouter

from geoattend.api.v1.endpoints import (alarms, attendance, audit, auth,
                                        employees, health, kiosks, qrcodes)

api_router = APIRouter()

# Operator login
api_router.include_router(auth.router)

# QR + GPS scan, attendance history, invalidation
api_router.include_router(attendance.router)

# Anomaly review
api_router.include_router(alarms.router)

# Who did what
api_router.include_router(audit.router)

# Registry: employees, kiosks, issued credentials
api_router.include_router(employees.router)
api_router.include_router(kiosks.router)
api_router.include_router(qrcodes.router)

api_router.include_router(health.router)
