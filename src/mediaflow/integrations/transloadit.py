"""Transloadit signed upload parameters."""
import hashlib
import hmac
import json
from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import BaseModel, Field

from mediaflow.config import Settings, get_settings
from mediaflow.errors import ConfigurationError
from mediaflow.observability import get_logger

logger = get_logger(__name__)


class UploadSignature(BaseModel):
    """Signed parameters the browser posts to Transloadit with the file."""

    url: str = Field(..., description="Assemblies endpoint")
    params: str = Field(..., description="Compact JSON of auth and steps")
    signature: str = Field(..., description="Hex HMAC-SHA1 of params")


def format_expires(moment: datetime) -> str:
    """ISO-8601 UTC with milliseconds and a trailing Z (2026-01-01T00:00:00.000Z)."""
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def sign_params(params_json: str, secret: str) -> str:
    return hmac.new(
        secret.encode("utf-8"),
        params_json.encode("utf-8"),
        hashlib.sha1,
    ).hexdigest()


def create_upload_signature(
    settings: Optional[Settings] = None,
    now: Optional[datetime] = None,
) -> UploadSignature:
    """
    Build signed upload parameters valid for ``upload_signature_ttl_s``.

    Raises:
        ConfigurationError: If the Transloadit key or secret is missing
    """
    settings = settings or get_settings()
    if not settings.transloadit_key or settings.transloadit_secret is None:
        logger.error("Transloadit credentials missing")
        raise ConfigurationError("Transloadit credentials are not configured")

    now = now or datetime.now(timezone.utc)
    expires = now + timedelta(seconds=settings.upload_signature_ttl_s)
    params = {
        "auth": {
            "key": settings.transloadit_key,
            "expires": format_expires(expires),
        },
        "steps": {
            ":original": {"robot": "/upload/handle"},
        },
    }
    params_json = json.dumps(params, separators=(",", ":"))

    return UploadSignature(
        url=settings.transloadit_url,
        params=params_json,
        signature=sign_params(
            params_json, settings.transloadit_secret.get_secret_value()
        ),
    )
