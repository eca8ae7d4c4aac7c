#!/usr/bin/env python3
"""
Client for a Whisper-compatible speech-to-text API (Groq by default).
"""

import os
import logging
import time
from typing import Dict, Any

import requests

from utils.error.error_handler import APIError, retry

logger = logging.getLogger(__name__)


class TranscriptionClient:
    """
    Client for the /audio/transcriptions endpoint
    """

    def __init__(self, api_key: str = None, base_url: str = "https://api.groq.com/openai/v1",
                 model: str = "whisper-large-v3-turbo", timeout: int = 120):
        """
        Args:
            api_key: API key (falls back to GROQ_API_KEY)
            base_url: Base URL for the API
            model: Transcription model id
            timeout: Request timeout in seconds
        """
        self.api_key = api_key or os.environ.get("GROQ_API_KEY")
        if not self.api_key:
            logger.warning("Transcription API key not provided")
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.session = requests.Session()

    @property
    def available(self) -> bool:
        return bool(self.api_key)

    def get_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
        }

    @retry(max_attempts=3, delay=1, exceptions=(requests.exceptions.ConnectionError, requests.exceptions.Timeout))
    def _post(self, files: Dict[str, Any], data: Dict[str, Any]) -> requests.Response:
        return self.session.post(
            f"{self.base_url}/audio/transcriptions",
            headers=self.get_headers(),
            files=files,
            data=data,
            timeout=self.timeout,
        )

    def transcribe_audio(self, audio_data: bytes, filename: str = "audio.ogg",
                         language: str = "pt") -> Dict[str, Any]:
        """
        Transcribe audio to text

        Args:
            audio_data: Binary audio data
            filename: File name sent with the upload (the extension tells the format)
            language: ISO language code

        Returns:
            Dict with `text` and `duration_seconds`

        Raises:
            APIError: On missing key, HTTP errors, timeouts or an unexpected body
        """
        if not self.api_key:
            raise APIError("Transcription API key not configured")

        start_time = time.time()
        logger.info(f"Starting transcription of {filename} with model {self.model}")
        try:
            response = self._post(
                files={"file": (filename, audio_data)},
                data={"model": self.model, "language": language, "response_format": "json"},
            )
        except requests.exceptions.RequestException as e:
            raise APIError(f"Transcription request failed: {str(e)}") from e

        elapsed = time.time() - start_time
        if response.status_code != 200:
            message = f"Transcription failed: HTTP {response.status_code}"
            try:
                detail = response.json().get("error", {})
                if isinstance(detail, dict) and detail.get("message"):
                    message += f" - {detail['message']}"
            except ValueError:
                message += f" - {response.text[:100]}"
            raise APIError(message, status_code=response.status_code)

        try:
            text = (response.json().get("text") or "").strip()
        except ValueError as e:
            raise APIError("Transcription response is not JSON") from e

        logger.info(f"Transcription completed in {elapsed:.2f}s: {len(text)} characters")
        return {"text": text, "duration_seconds": round(elapsed, 2)}

    def close(self) -> None:
        self.session.close()
