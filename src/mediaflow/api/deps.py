"""Request dependencies."""
from typing import Optional

from fastapi import Header, Request

from mediaflow.services import WorkflowService

USER_HEADER = "X-User-Id"


def get_user_id(x_user_id: Optional[str] = Header(default=None, alias=USER_HEADER)) -> Optional[str]:
    """Identity resolved by the auth layer in front of the API, if any."""
    return x_user_id or None


def get_service(request: Request) -> WorkflowService:
    return request.app.state.service
