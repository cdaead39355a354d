"""Helpers for media artifacts passed between nodes (data URLs and remote URLs)."""
import base64
import binascii
import re
from typing import Optional, Tuple

import httpx

from mediaflow.errors import ExternalServiceError, MediaTimeoutError

_DATA_URL_RE = re.compile(
    r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?P<params>(?:;[\w.+-]+=[\w.+-]+)*)(?P<b64>;base64)?,(?P<data>.*)$",
    re.DOTALL,
)

DEFAULT_IMAGE_MIME = "image/jpeg"


def is_data_url(value: Optional[str]) -> bool:
    return isinstance(value, str) and value.startswith("data:")


def is_remote_url(value: Optional[str]) -> bool:
    return isinstance(value, str) and value.startswith(("http://", "https://"))


def to_data_url(data: bytes, mime_type: str) -> str:
    """Encode bytes as a base64 data URL."""
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def parse_data_url(url: str) -> Tuple[str, bytes]:
    """
    Decode a data URL.

    Returns:
        (mime_type, payload bytes)

    Raises:
        ValueError: If the value is not a valid data URL
    """
    match = _DATA_URL_RE.match(url)
    if not match:
        raise ValueError("Invalid data URL")
    mime_type = match.group("mime") or "text/plain"
    payload = match.group("data")
    if match.group("b64"):
        try:
            return mime_type, base64.b64decode(payload, validate=False)
        except binascii.Error as e:
            raise ValueError(f"Invalid base64 payload: {e}") from e
    return mime_type, payload.encode("utf-8")


def split_base64_image(value: str) -> Tuple[str, str]:
    """
    Split an inline image into (mime_type, base64 payload).

    Bare base64 strings are assumed to be JPEG.
    """
    match = _DATA_URL_RE.match(value)
    if match and match.group("b64"):
        return match.group("mime") or DEFAULT_IMAGE_MIME, match.group("data")
    return DEFAULT_IMAGE_MIME, value


async def load_bytes(
    ref: str,
    timeout_s: float,
    client: Optional[httpx.AsyncClient] = None,
) -> Tuple[bytes, str]:
    """
    Load a media reference: data URL, http(s) URL, or bare base64.

    Args:
        ref: Media reference
        timeout_s: Bound for remote fetches
        client: Optional shared HTTP client

    Returns:
        (payload bytes, mime type)

    Raises:
        MediaTimeoutError: If the remote fetch times out
        ExternalServiceError: If the remote fetch fails
    """
    if is_data_url(ref):
        mime_type, payload = parse_data_url(ref)
        return payload, mime_type

    if is_remote_url(ref):
        try:
            if client is not None:
                response = await client.get(ref, timeout=timeout_s)
            else:
                async with httpx.AsyncClient(timeout=timeout_s) as own_client:
                    response = await own_client.get(ref)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise MediaTimeoutError(f"Timed out fetching media after {timeout_s}s") from e
        except httpx.HTTPStatusError as e:
            raise ExternalServiceError(
                f"Media fetch failed with status {e.response.status_code}"
            ) from e
        except httpx.RequestError as e:
            raise ExternalServiceError(f"Media fetch failed: {e}") from e

        mime_type = response.headers.get("content-type", "application/octet-stream")
        return response.content, mime_type.split(";")[0].strip()

    try:
        return base64.b64decode(ref, validate=True), DEFAULT_IMAGE_MIME
    except binascii.Error as e:
        raise ValueError("Unsupported media reference") from e
