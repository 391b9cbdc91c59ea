"""FastAPI layer: routers, dependency wiring and the app factory."""

from contribution_review.api_server.dependencies import (
    ServiceContainer,
    build_services,
    current_principal,
    get_services,
)

__all__ = ["ServiceContainer", "build_services", "current_principal", "get_services"]
