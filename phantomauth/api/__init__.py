"""
API server for PhantomAuth.

Provides REST endpoints for:
- Context derivation and matching
- Login link request and redemption
- Device token validation and revocation
- Session token validation
"""

from .server import create_app, get_flow, set_flow
from .routes import router

__all__ = [
    "create_app",
    "get_flow",
    "set_flow",
    "router",
]
