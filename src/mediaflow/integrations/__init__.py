"""External service integrations."""
from mediaflow.integrations.gemini import GeminiClient
from mediaflow.integrations.transloadit import UploadSignature, create_upload_signature

__all__ = ["GeminiClient", "UploadSignature", "create_upload_signature"]
