"""
Shared route dependencies
"""
from fastapi import Request

from campus_leave.core.database import Services


def get_services(request: Request) -> Services:
    """Services assembled at startup (see main.lifespan)"""
    return request.app.state.services
