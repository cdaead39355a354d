"""Media helpers: artifacts, cropping and frame extraction."""
from mediaflow.media.artifacts import (
    is_data_url,
    load_bytes,
    parse_data_url,
    split_base64_image,
    to_data_url,
)
from mediaflow.media.crop import CropBox, crop_image, crop_image_bytes
from mediaflow.media.frames import extract_frame, extract_frame_sync, parse_timestamp

__all__ = [
    "CropBox",
    "crop_image",
    "crop_image_bytes",
    "extract_frame",
    "extract_frame_sync",
    "is_data_url",
    "load_bytes",
    "parse_data_url",
    "parse_timestamp",
    "split_base64_image",
    "to_data_url",
]
