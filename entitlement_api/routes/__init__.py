"""
Entitlement API route modules.
"""

from .entitlements import router as entitlements_router

__all__ = [
    "entitlements_router",
]
