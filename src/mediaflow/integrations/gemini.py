"""Gemini generative-text client."""
import base64
from typing import Any, Optional, Sequence

import httpx

from mediaflow.config import Settings, get_settings
from mediaflow.errors import ExternalServiceError
from mediaflow.media.artifacts import is_remote_url, load_bytes, split_base64_image
from mediaflow.observability import get_logger

logger = get_logger(__name__)

SKIPPED_IMAGES_NOTE = "\n\n[Note: Image was too large to process. Please use a smaller image.]"


class GeminiClient:
    """
    Thin async client for ``models/{model}:generateContent``.

    This is the only place that talks to the Gemini API. The HTTP transport
    is injectable so tests can use ``httpx.MockTransport``.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings()
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        timeout = httpx.Timeout(
            connect=5.0,
            read=self.settings.llm_timeout_s,
            write=10.0,
            pool=5.0,
        )
        return httpx.AsyncClient(timeout=timeout, transport=self._transport)

    async def _image_part(
        self,
        image: str,
        client: httpx.AsyncClient,
    ) -> Optional[dict[str, Any]]:
        """Build an inline image part, or None when the image is too large."""
        if is_remote_url(image):
            payload, mime_type = await load_bytes(
                image, timeout_s=self.settings.media_timeout_s, client=client
            )
            data = base64.b64encode(payload).decode("ascii")
        else:
            mime_type, data = split_base64_image(image)

        if len(data) > self.settings.llm_max_image_chars:
            logger.warning(
                f"Image too large ({len(data) // 1024}KB), skipping",
                extra={"image_chars": len(data)},
            )
            return None
        return {"inlineData": {"mimeType": mime_type, "data": data}}

    async def generate_content(
        self,
        prompt: str,
        model: Optional[str] = None,
        system_instruction: Optional[str] = None,
        images: Sequence[str] = (),
    ) -> str:
        """
        Generate text from a prompt and optional images.

        Args:
            prompt: User prompt
            model: Model name (settings default when omitted)
            system_instruction: Optional system instruction
            images: Data URLs, bare base64 strings or http(s) image URLs

        Returns:
            Generated text

        Raises:
            ExternalServiceError: On missing key, HTTP or transport failure,
                or a response without text
        """
        if self.settings.gemini_api_key is None:
            raise ExternalServiceError("GEMINI_API_KEY is not configured")

        model = model or self.settings.gemini_default_model
        url = f"{self.settings.gemini_base_url}/models/{model}:generateContent"

        async with self._client() as client:
            image_parts = []
            for image in images:
                part = await self._image_part(image, client)
                if part is not None:
                    image_parts.append(part)

            text = prompt
            if images and not image_parts:
                text = prompt + SKIPPED_IMAGES_NOTE

            body: dict[str, Any] = {
                "contents": [{"role": "user", "parts": [{"text": text}, *image_parts]}],
            }
            if system_instruction:
                body["systemInstruction"] = {"parts": [{"text": system_instruction}]}

            logger.info(
                "llm_call_start",
                extra={"model": model, "image_count": len(image_parts)},
            )
            try:
                response = await client.post(
                    url,
                    json=body,
                    params={"key": self.settings.gemini_api_key.get_secret_value()},
                )
                response.raise_for_status()
            except httpx.TimeoutException as e:
                raise ExternalServiceError(
                    f"Gemini request timed out after {self.settings.llm_timeout_s:g}s"
                ) from e
            except httpx.HTTPStatusError as e:
                raise ExternalServiceError(
                    f"Gemini API error {e.response.status_code}: {e.response.text[:500]}"
                ) from e
            except httpx.RequestError as e:
                raise ExternalServiceError(f"Gemini request failed: {e}") from e

        result = self._parse_response(response.json())
        logger.info("llm_call_end", extra={"model": model, "chars": len(result)})
        return result

    @staticmethod
    def _parse_response(data: dict[str, Any]) -> str:
        candidates = data.get("candidates") or []
        if not candidates:
            raise ExternalServiceError("No candidates returned from Gemini API")

        parts = (candidates[0].get("content") or {}).get("parts") or []
        texts = [part["text"] for part in parts if isinstance(part.get("text"), str)]
        if not texts:
            raise ExternalServiceError("Gemini response contained no text")
        return "".join(texts)


__all__ = ["GeminiClient", "SKIPPED_IMAGES_NOTE"]
