"""Upload signature routes."""
from typing import Optional

from fastapi import APIRouter, Depends, Request

from mediaflow.api.deps import get_user_id
from mediaflow.errors import AuthenticationRequiredError
from mediaflow.integrations import UploadSignature, create_upload_signature

router = APIRouter()


@router.post("/v1/uploads/signature", response_model=UploadSignature)
def upload_signature(
    request: Request,
    user_id: Optional[str] = Depends(get_user_id),
) -> UploadSignature:
    """Signed Transloadit parameters for a direct browser upload."""
    if not user_id:
        raise AuthenticationRequiredError("Unauthorized")
    return create_upload_signature(request.app.state.settings)
