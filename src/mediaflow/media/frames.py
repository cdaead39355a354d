"""Frame extraction from video with OpenCV."""
import asyncio
import os
import re
import tempfile
from typing import Optional, Tuple

import cv2

from mediaflow.config import Settings, get_settings
from mediaflow.errors import ExternalServiceError, MediaTimeoutError
from mediaflow.media.artifacts import is_data_url, parse_data_url, to_data_url
from mediaflow.observability import get_logger

logger = get_logger(__name__)

_PERCENT_RE = re.compile(r"^\s*(-?\d+(?:\.\d+)?)\s*%\s*$")

_VIDEO_SUFFIXES = {
    "video/mp4": ".mp4",
    "video/webm": ".webm",
    "video/quicktime": ".mov",
    "video/x-msvideo": ".avi",
}


def parse_timestamp(timestamp: Optional[str], duration: float) -> float:
    """
    Resolve a timestamp to seconds.

    Accepts seconds ("12.5") or a percentage of the duration ("50%").
    Unparseable values fall back to 0. The result is clamped to
    [0, duration] when the duration is known.
    """
    value = str(timestamp).strip() if timestamp is not None else "0"
    match = _PERCENT_RE.match(value)
    if match:
        seconds = float(match.group(1)) / 100 * duration
    else:
        try:
            seconds = float(value)
        except ValueError:
            seconds = 0.0

    seconds = max(0.0, seconds)
    if duration > 0:
        seconds = min(seconds, duration)
    return seconds


def _fit_within(width: int, height: int, max_dimension: int) -> Tuple[int, int]:
    scale = min(1.0, max_dimension / max(width, height))
    return max(1, int(round(width * scale))), max(1, int(round(height * scale)))


def extract_frame_sync(
    source: str,
    timestamp: Optional[str],
    max_dimension: int,
    jpeg_quality: int,
) -> bytes:
    """
    Seek a video to ``timestamp`` and encode that frame as JPEG.

    Blocking; call through ``extract_frame``.
    """
    capture = cv2.VideoCapture(source)
    try:
        if not capture.isOpened():
            raise ExternalServiceError("Failed to load video")

        fps = capture.get(cv2.CAP_PROP_FPS) or 0.0
        frame_count = capture.get(cv2.CAP_PROP_FRAME_COUNT) or 0.0
        duration = frame_count / fps if fps > 0 else 0.0
        seconds = parse_timestamp(timestamp, duration)

        capture.set(cv2.CAP_PROP_POS_MSEC, seconds * 1000)
        ok, frame = capture.read()
        if not ok and frame_count > 0:
            # Seeking to the very end yields nothing; fall back to the last frame
            capture.set(cv2.CAP_PROP_POS_FRAMES, max(frame_count - 1, 0))
            ok, frame = capture.read()
        if not ok or frame is None:
            raise ExternalServiceError("Failed to decode video frame")

        height, width = frame.shape[:2]
        new_width, new_height = _fit_within(width, height, max_dimension)
        if (new_width, new_height) != (width, height):
            frame = cv2.resize(frame, (new_width, new_height), interpolation=cv2.INTER_AREA)

        ok, encoded = cv2.imencode(".jpg", frame, [cv2.IMWRITE_JPEG_QUALITY, jpeg_quality])
        if not ok:
            raise ExternalServiceError("Failed to encode frame")
        return encoded.tobytes()
    finally:
        capture.release()


def _spill_data_url(video_url: str) -> str:
    """Write an inline video to a temporary file OpenCV can open."""
    mime_type, payload = parse_data_url(video_url)
    suffix = _VIDEO_SUFFIXES.get(mime_type, ".mp4")
    with tempfile.NamedTemporaryFile(suffix=suffix, delete=False) as handle:
        handle.write(payload)
        return handle.name


async def extract_frame(
    video_url: str,
    timestamp: Optional[str] = "0",
    settings: Optional[Settings] = None,
) -> str:
    """
    Extract one frame from a video.

    Args:
        video_url: Remote URL, local path or data URL of the video
        timestamp: Seconds or "N%" of the duration
        settings: Settings override

    Returns:
        JPEG data URL of the frame

    Raises:
        MediaTimeoutError: If load/seek does not finish within media_timeout_s
        ExternalServiceError: If the video cannot be opened or decoded
    """
    settings = settings or get_settings()
    timeout_s = settings.media_timeout_s
    temp_path = None
    source = video_url
    if is_data_url(video_url):
        temp_path = await asyncio.to_thread(_spill_data_url, video_url)
        source = temp_path

    try:
        jpeg = await asyncio.wait_for(
            asyncio.to_thread(
                extract_frame_sync,
                source,
                timestamp,
                settings.frame_max_dimension,
                settings.frame_jpeg_quality,
            ),
            timeout=timeout_s,
        )
    except asyncio.TimeoutError as e:
        raise MediaTimeoutError(f"Video load timeout after {timeout_s:g}s") from e
    finally:
        if temp_path is not None:
            try:
                os.unlink(temp_path)
            except OSError as e:
                logger.warning(f"Could not remove temporary video {temp_path}: {e}")

    return to_data_url(jpeg, "image/jpeg")
