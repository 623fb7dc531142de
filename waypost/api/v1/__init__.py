"""
API v1 package.

Contains versioned API routes for account signup, email confirmation and
OAuth provider management.
"""

from waypost.api.v1.routes import router

__all__ = ["router"]
