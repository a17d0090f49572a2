"""File-backed store for finished recordings and their transcriptions."""

import os
import json
import time
import wave
import random
import shutil
import string
import logging
import threading
from pathlib import Path
from datetime import datetime, timezone
from typing import Any, List, Optional

from ..exceptions import RecordingNotFoundError
from ..models.recording import Recording, TranscriptionStatus


logger = logging.getLogger(__name__)

RECORD_FILE = "recording.json"

# Extension -> MIME type accepted by import_audio_file
SUPPORTED_AUDIO_TYPES = {
    '.webm': 'audio/webm',
    '.mp3': 'audio/mpeg',
    '.wav': 'audio/wav',
    '.ogg': 'audio/ogg',
    '.flac': 'audio/flac',
    '.m4a': 'audio/x-m4a',
    '.mp4': 'audio/mp4',
}

_EXTENSIONS = {mime: ext for ext, mime in SUPPORTED_AUDIO_TYPES.items()}

_UPDATABLE_FIELDS = {'name', 'duration', 'transcription', 'transcription_status'}


def generate_recording_id() -> str:
    """Unique id of the form ``rec-<epoch ms>-<7 base36 chars>``."""
    suffix = ''.join(random.choices(string.ascii_lowercase + string.digits, k=7))
    return f"rec-{int(time.time() * 1000)}-{suffix}"


def default_recording_name(created: datetime) -> str:
    """Display name derived from the creation time, e.g. ``Recording 2024-05-01T09-30-00``."""
    stamp = created.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")
    return f"Recording {stamp.replace(':', '-')}"


def _export_stem(name: str) -> str:
    # Recording names are free text; keep them out of other directories
    return name.replace('/', '-').replace('\\', '-').strip() or "recording"


class RecordingStore:
    """Manages recordings on disk, one directory per recording."""

    def __init__(self, data_dir: str = "./data"):
        """Initialize recording store with data directory.

        Args:
            data_dir: Base directory for storing all data
        """
        self.data_dir = Path(data_dir)
        self.recordings_dir = self.data_dir / "recordings"
        self.logs_dir = self.data_dir / "logs"
        self.lock = threading.RLock()

        # Create directory structure
        self._ensure_directories()

        logger.info(f"RecordingStore initialized with data_dir: {self.data_dir}")

    def _ensure_directories(self) -> None:
        """Ensure all required directories exist."""
        for directory in [self.data_dir, self.recordings_dir, self.logs_dir]:
            directory.mkdir(parents=True, exist_ok=True)
            logger.debug(f"Ensured directory exists: {directory}")

    def get_recording_path(self, recording_id: str) -> Path:
        """Get full path to a recording directory."""
        return self.recordings_dir / recording_id

    def _write_record(self, recording: Recording) -> None:
        """Write the record file atomically."""
        record_path = self.get_recording_path(recording.id) / RECORD_FILE
        tmp_path = record_path.with_suffix(".json.tmp")
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(recording.to_dict(), f, indent=2, ensure_ascii=False)
        os.replace(tmp_path, record_path)

    def create_recording(self, audio: bytes, duration: int, name: Optional[str] = None,
                         mime_type: str = "audio/wav") -> Recording:
        """Store a new recording.

        Args:
            audio: Complete audio file contents
            duration: Duration in seconds
            name: Display name; derived from the creation time if omitted
            mime_type: MIME type of the audio

        Returns:
            The stored recording with transcription status pending
        """
        created = datetime.now(timezone.utc)
        recording = Recording(
            id=generate_recording_id(),
            name=name or default_recording_name(created),
            duration=int(duration),
            created_at=int(created.timestamp() * 1000),
            size=len(audio),
            audio_file=f"audio{_EXTENSIONS.get(mime_type, '.bin')}",
            mime_type=mime_type,
            transcription_status=TranscriptionStatus.PENDING,
        )

        recording_path = self.get_recording_path(recording.id)
        with self.lock:
            recording_path.mkdir(parents=True, exist_ok=False)
            try:
                with open(recording_path / recording.audio_file, 'wb') as f:
                    f.write(audio)
                self._write_record(recording)
            except Exception as e:
                logger.error(f"Error saving recording {recording.id}: {e}")
                shutil.rmtree(recording_path, ignore_errors=True)
                raise

        logger.info(f"Recording saved: {recording.id} '{recording.name}' ({recording.size} bytes)")
        return recording

    def get_recording(self, recording_id: str) -> Optional[Recording]:
        """Load a recording.

        Returns:
            Recording or None if not found
        """
        record_path = self.get_recording_path(recording_id) / RECORD_FILE

        if not record_path.exists():
            logger.debug(f"Recording not found: {recording_id}")
            return None

        try:
            with open(record_path, 'r', encoding='utf-8') as f:
                return Recording.from_dict(json.load(f))
        except Exception as e:
            logger.error(f"Error loading recording {recording_id}: {e}")
            return None

    def read_audio(self, recording_id: str) -> bytes:
        """Read the audio payload of a recording."""
        recording = self.get_recording(recording_id)
        if recording is None:
            raise RecordingNotFoundError(recording_id)
        with open(self.get_recording_path(recording_id) / recording.audio_file, 'rb') as f:
            return f.read()

    def list_recordings(self) -> List[Recording]:
        """List all recordings, newest first."""
        recordings = []
        for path in self.recordings_dir.iterdir():
            if path.is_dir() and (path / RECORD_FILE).exists():
                recording = self.get_recording(path.name)
                if recording is not None:
                    recordings.append(recording)

        recordings.sort(key=lambda r: r.created_at, reverse=True)
        logger.debug(f"Found {len(recordings)} recordings")
        return recordings

    def update_recording(self, recording_id: str, **changes: Any) -> Recording:
        """Apply a partial update.

        Raises:
            RecordingNotFoundError: No recording with that id
            ValueError: A field that cannot be updated was given
        """
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {sorted(unknown)}")

        with self.lock:
            recording = self.get_recording(recording_id)
            if recording is None:
                raise RecordingNotFoundError(recording_id)

            for key, value in changes.items():
                if key == 'transcription_status':
                    value = TranscriptionStatus(value)
                setattr(recording, key, value)
            self._write_record(recording)

        logger.debug(f"Recording {recording_id} updated: {sorted(changes)}")
        return recording

    def delete_recording(self, recording_id: str) -> None:
        """Delete a recording and its audio. Unknown ids are ignored."""
        recording_path = self.get_recording_path(recording_id)
        with self.lock:
            if recording_path.exists():
                shutil.rmtree(recording_path)
                logger.info(f"Deleted recording: {recording_id}")

    def import_audio_file(self, file_path: str) -> Recording:
        """Store an existing audio file as a recording.

        Args:
            file_path: Path to a webm, mp3, wav, ogg, flac, m4a or mp4 file

        Returns:
            The stored recording, named after the file
        """
        path = Path(file_path)
        mime_type = SUPPORTED_AUDIO_TYPES.get(path.suffix.lower())
        if mime_type is None:
            raise ValueError(f"Unsupported audio file: {path.name}")

        with open(path, 'rb') as f:
            audio = f.read()

        return self.create_recording(audio, self._probe_duration(path), name=path.stem,
                                     mime_type=mime_type)

    def export_audio(self, recording_id: str, destination: str) -> Path:
        """Copy a recording's audio to ``<destination>/<name><ext>``."""
        recording = self.get_recording(recording_id)
        if recording is None:
            raise RecordingNotFoundError(recording_id)

        suffix = Path(recording.audio_file).suffix
        target = Path(destination) / f"{_export_stem(recording.name)}{suffix}"
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(self.read_audio(recording_id))
        logger.info(f"Exported audio of {recording_id} to {target}")
        return target

    def export_transcript(self, recording_id: str, destination: str) -> Path:
        """Write a recording's transcript to ``<destination>/<name>-transcript.md``.

        Raises:
            RecordingNotFoundError: Unknown recording
            ValueError: The recording has no transcript yet
        """
        recording = self.get_recording(recording_id)
        if recording is None:
            raise RecordingNotFoundError(recording_id)
        if not recording.transcription:
            raise ValueError(f"Recording {recording_id} has no transcript")

        target = Path(destination) / f"{_export_stem(recording.name)}-transcript.md"
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(recording.transcription, encoding='utf-8')
        logger.info(f"Exported transcript of {recording_id} to {target}")
        return target

    @staticmethod
    def _probe_duration(path: Path) -> int:
        """Duration in whole seconds; 0 when it cannot be read."""
        if path.suffix.lower() != '.wav':
            return 0
        try:
            with wave.open(str(path), 'rb') as wf:
                return int(wf.getnframes() / float(wf.getframerate()))
        except (wave.Error, EOFError, ZeroDivisionError) as e:
            logger.warning(f"Could not read duration of {path.name}: {e}")
            return 0
