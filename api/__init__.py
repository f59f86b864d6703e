# API module - Import all routers

from . import (
    social_auth,  # OAuth connect/callback/refresh/disconnect
    admin_integrations,  # Per-platform client settings
)

__all__ = [
    "social_auth",
    "admin_integrations",
]
