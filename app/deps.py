"""
Dependency helpers for the FastAPI app.
"""

from __future__ import annotations

from fastapi import Request

from secondbrain.container import Services


def get_services(request: Request) -> Services:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise RuntimeError("Services not initialized - lifespan has not run")
    return services
