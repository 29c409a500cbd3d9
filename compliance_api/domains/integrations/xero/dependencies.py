# compliance_api/domains/integrations/xero/dependencies.py
from fastapi import Depends, Request

from compliance_api.domains.auth.dependencies import get_session_id

from .session import XeroSession, XeroSessionRegistry


def get_registry(request: Request) -> XeroSessionRegistry:
    """Session registry dependency, created by the application lifespan."""
    return request.app.state.xero_sessions


def get_xero_session(
    session_id: str = Depends(get_session_id),
    registry: XeroSessionRegistry = Depends(get_registry),
) -> XeroSession:
    return registry.get(session_id)
