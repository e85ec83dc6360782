# backend/vidscribe/recognition.py
"""
Deepgram pre-recorded transcription over plain HTTP.
"""
import logging
from typing import Any, Dict, Optional

import httpx

from .config import DEEPGRAM_API_KEY, DEEPGRAM_MODEL, DEEPGRAM_URL, RECOGNITION_TIMEOUT
from .exceptions import RecognitionServiceError

logger = logging.getLogger(__name__)


class RecognitionClient:
    def __init__(
        self,
        api_key: Optional[str] = DEEPGRAM_API_KEY,
        url: str = DEEPGRAM_URL,
        model: str = DEEPGRAM_MODEL,
        timeout: float = RECOGNITION_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.url = url
        self.model = model
        self.timeout = timeout
        self._transport = transport

    def build_params(self) -> Dict[str, str]:
        return {
            "model": self.model,
            "punctuate": "true",
            "smart_format": "true",
            "utterances": "true",
            "diarize": "true",
        }

    async def transcribe(self, audio: bytes, mimetype: str = "audio/wav") -> Dict[str, Any]:
        if not self.api_key:
            raise RecognitionServiceError("DEEPGRAM_API_KEY environment variable is not set")

        headers = {"Authorization": f"Token {self.api_key}", "Content-Type": mimetype}
        logger.info("Sending %d bytes of audio to %s", len(audio), self.url)
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(self.url, params=self.build_params(), content=audio, headers=headers)
        except httpx.HTTPError as e:
            raise RecognitionServiceError(f"Recognition request failed: {e}") from e

        if resp.status_code >= 400:
            raise RecognitionServiceError(
                f"Recognition service returned {resp.status_code}: {resp.text[:200]}",
                status_code=resp.status_code,
            )
        try:
            payload = resp.json()
        except ValueError as e:
            raise RecognitionServiceError("Recognition service returned invalid JSON") from e
        if not isinstance(payload, dict):
            raise RecognitionServiceError("Recognition service returned an unexpected payload")
        return payload


def primary_transcript(result: Any) -> str:
    """Transcript of the first alternative on the first channel, or ''."""
    try:
        transcript = result["results"]["channels"][0]["alternatives"][0].get("transcript")
    except (KeyError, IndexError, TypeError, AttributeError):
        return ""
    return transcript if isinstance(transcript, str) else ""
