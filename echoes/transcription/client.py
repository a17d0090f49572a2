"""Client for the local transcription server."""

import asyncio
import logging
from typing import Optional, Union

import aiohttp
from pydantic import ValidationError

from ..exceptions import TranscriptionError
from ..models.transcription import HealthStatus, TranscriptionResponse

logger = logging.getLogger(__name__)

DEFAULT_SERVER_URL = "http://127.0.0.1:8765"

MARKDOWN_FORMAT = "markdown"


class TranscriptionClient:
    """Talks to the transcription server over HTTP."""

    def __init__(self, server_url: str = DEFAULT_SERVER_URL, timeout: float = 600.0,
                 health_timeout: float = 5.0):
        """Initialize transcription client.

        Args:
            server_url: Base URL of the transcription server
            timeout: Total seconds allowed for a transcription request
            health_timeout: Total seconds allowed for a health check
        """
        self.server_url = server_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.health_timeout = aiohttp.ClientTimeout(total=health_timeout)

        logger.info(f"TranscriptionClient initialized for {self.server_url}")

    async def health(self) -> HealthStatus:
        """Query the health endpoint.

        Raises:
            TranscriptionError: Server unreachable or unhealthy response
        """
        try:
            async with aiohttp.ClientSession(timeout=self.health_timeout) as session:
                async with session.get(f"{self.server_url}/health") as response:
                    if response.status != 200:
                        raise TranscriptionError(f"Health check failed: HTTP {response.status}")
                    return HealthStatus.model_validate(await response.json())
        except (aiohttp.ClientError, asyncio.TimeoutError, ValidationError, ValueError) as e:
            raise TranscriptionError(f"Health check failed: {e}") from e

    async def is_available(self) -> bool:
        """True when the server is up and its model is loaded."""
        try:
            status = await self.health()
        except TranscriptionError as e:
            logger.debug(f"Transcription server unavailable: {e}")
            return False
        return status.available

    async def transcribe(self, audio: bytes, filename: str,
                         output_format: Optional[str] = None,
                         content_type: str = "audio/wav") -> Union[str, TranscriptionResponse]:
        """Send audio for transcription.

        Args:
            audio: Complete audio file contents
            filename: File name reported to the server
            output_format: "markdown" for preformatted text, None for JSON
            content_type: MIME type of the audio

        Returns:
            Markdown text, or the structured response

        Raises:
            TranscriptionError: Transport failure or non-success response
        """
        form = aiohttp.FormData()
        form.add_field("file", audio, filename=filename, content_type=content_type)
        params = {"format": output_format} if output_format else None

        logger.info(f"Sending {len(audio)} bytes for transcription ({output_format or 'json'})")
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.post(f"{self.server_url}/transcribe", data=form,
                                        params=params) as response:
                    if response.status != 200:
                        error_text = await response.text()
                        raise TranscriptionError(
                            f"Transcription failed: {response.status} {response.reason} - {error_text}"
                        )

                    if output_format == MARKDOWN_FORMAT:
                        return await response.text()
                    return TranscriptionResponse.model_validate(await response.json())
        except (aiohttp.ClientError, asyncio.TimeoutError, ValidationError, ValueError) as e:
            raise TranscriptionError(f"Transcription failed: {e}") from e
