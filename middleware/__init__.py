"""
Middleware package for request authorization
"""
from .admin_auth import require_admin

__all__ = ["require_admin"]
