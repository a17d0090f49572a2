"""Transcription service that sends stored recordings to the transcription server."""

import asyncio
import logging
from typing import Optional

from ..config import EchoesConfig
from ..exceptions import RecordingNotFoundError, TranscriptionError
from ..models.recording import Recording, TranscriptionStatus
from ..storage.recording_store import RecordingStore
from ..transcription.client import MARKDOWN_FORMAT, TranscriptionClient

logger = logging.getLogger(__name__)


class TranscriptionService:
    """Runs transcriptions for stored recordings and tracks their status."""
    
    def __init__(self, store: RecordingStore, client: TranscriptionClient,
                 output_format: Optional[str] = MARKDOWN_FORMAT):
        """Initialize transcription service.
        
        Args:
            store: Recording store holding the audio
            client: Client for the transcription server
            output_format: Format requested from the server
        """
        self.store = store
        self.client = client
        self.output_format = output_format

    @classmethod
    def from_config(cls, config: EchoesConfig, store: RecordingStore) -> "TranscriptionService":
        client = TranscriptionClient(
            server_url=config.get('transcription.server_url', 'http://127.0.0.1:8765'),
            timeout=config.get('transcription.timeout_seconds', 600),
        )
        return cls(store, client, config.get('transcription.output_format', MARKDOWN_FORMAT))

    async def check_available(self) -> bool:
        """True when the server is up and has its model loaded."""
        return await self.client.is_available()

    async def transcribe_recording(self, recording_id: str) -> Recording:
        """Transcribe a stored recording and save the text on it.
        
        Args:
            recording_id: Recording to transcribe
            
        Returns:
            The updated recording
            
        Raises:
            RecordingNotFoundError: Unknown recording id
            TranscriptionError: Server unavailable or transcription failed;
                the recording is marked as errored unless the server was
                unavailable to begin with
        """
        recording = self.store.get_recording(recording_id)
        if recording is None:
            raise RecordingNotFoundError(recording_id)

        if not await self.check_available():
            raise TranscriptionError("Transcription server is not available")

        await asyncio.to_thread(self.store.update_recording, recording_id,
                                transcription_status=TranscriptionStatus.PROCESSING)
        logger.info(f"Transcribing {recording_id} '{recording.name}'")

        try:
            audio = await asyncio.to_thread(self.store.read_audio, recording_id)
            extension = recording.audio_file.rsplit('.', 1)[-1]
            result = await self.client.transcribe(audio, f"{recording.name}.{extension}",
                                                  output_format=self.output_format,
                                                  content_type=recording.mime_type)
        except Exception as e:
            logger.error(f"Transcription of {recording_id} failed: {e}")
            await asyncio.to_thread(self.store.update_recording, recording_id,
                                    transcription_status=TranscriptionStatus.ERROR)
            if isinstance(e, TranscriptionError):
                raise
            raise TranscriptionError(str(e)) from e

        text = result if isinstance(result, str) else result.text
        updated = await asyncio.to_thread(self.store.update_recording, recording_id,
                                          transcription=text,
                                          transcription_status=TranscriptionStatus.COMPLETED)
        logger.info(f"Transcription of {recording_id} completed ({len(text)} chars)")
        return updated
