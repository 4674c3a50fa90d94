"""
Request-scoped dependencies shared by the routers.
"""

from __future__ import annotations

from fastapi import Request

from forgeguard.services import Services


def get_services(request: Request) -> Services:
    return request.app.state.services


def client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"
