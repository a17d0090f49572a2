"""Main application entry point for Echoes."""

import sys
import signal
import asyncio
import argparse
import logging
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.live import Live

from .audio.pyaudio_platform import PyAudioPlatform
from .config import EchoesConfig
from .exceptions import RecordingNotFoundError, TranscriptionError
from .platforms import detect_meeting_platform
from .services.session_controller import SessionController
from .services.transcription_service import TranscriptionService
from .storage.recording_store import RecordingStore
from .ui.recorder_screen import render_recorder, render_recording_details, render_recordings_table

logger = logging.getLogger(__name__)

console = Console()

VIEW_REFRESH_SECONDS = 0.25


def setup_logging(config: EchoesConfig, level: str = "INFO") -> None:
    """Set up logging configuration from YAML config."""
    log_file_path = config.get('logging.file_path', 'data/logs/echoes.log')
    console_output = config.get('logging.console_output', True)

    # Create logs directory if it doesn't exist
    Path(log_file_path).parent.mkdir(parents=True, exist_ok=True)

    handlers = []

    # File handler - always write to file
    file_handler = logging.FileHandler(log_file_path)
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
    ))
    handlers.append(file_handler)

    # Console handler - only if enabled in config
    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.WARNING)
        console_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
        handlers.append(console_handler)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in handlers:
        root_logger.addHandler(handler)

    logger.info("=" * 50)
    logger.info("Echoes starting up")
    logger.info(f"Log file: {log_file_path}")
    logger.info(f"Log level set to: {level}")
    logger.info("=" * 50)


def create_platform(config: EchoesConfig) -> PyAudioPlatform:
    return PyAudioPlatform(
        sample_rate=config.get('audio.sample_rate', 16000),
        channels=config.get('audio.channels', 1),
        frames_per_buffer=config.get('audio.frames_per_buffer', 1024),
        tab_loopback_device=config.get('audio.tab_loopback_device'),
    )


async def record(config: EchoesConfig, store: RecordingStore, args: argparse.Namespace) -> int:
    """Run one recorder session until Ctrl+C, the duration elapses or a source ends."""
    platform = create_platform(config)
    controller = SessionController(platform, store, config)
    stop_requested = asyncio.Event()

    loop = asyncio.get_running_loop()
    loop.add_signal_handler(signal.SIGINT, stop_requested.set)

    raw = {'mode': args.mode, 'tabId': args.tab_id, 'deviceId': args.device}
    try:
        with Live(render_recorder(controller.view), console=console, refresh_per_second=8) as live:
            session = await controller.launch(raw)
            started = loop.time()
            while session is not None and not session.is_stopped:
                if stop_requested.is_set():
                    break
                if args.duration and loop.time() - started >= args.duration:
                    break
                live.update(render_recorder(controller.view))
                await asyncio.sleep(VIEW_REFRESH_SECONDS)

            await controller.stop()
            live.update(render_recorder(controller.view))
    finally:
        loop.remove_signal_handler(signal.SIGINT)
        platform.terminate()

    return 1 if controller.view.error else 0


def list_recordings(store: RecordingStore) -> int:
    recordings = store.list_recordings()
    if not recordings:
        console.print("No recordings yet")
        return 0
    console.print(render_recordings_table(recordings))
    return 0


def show_recording(store: RecordingStore, recording_id: str) -> int:
    recording = store.get_recording(recording_id)
    if recording is None:
        raise RecordingNotFoundError(recording_id)
    console.print(render_recording_details(recording))
    return 0


def export_recording(store: RecordingStore, args: argparse.Namespace) -> int:
    """Write the audio and, when asked, the transcript to the output directory."""
    if not args.transcript_only:
        path = store.export_audio(args.recording_id, args.output_dir)
        console.print(f"Audio saved to {path}")
    if args.transcript or args.transcript_only:
        path = store.export_transcript(args.recording_id, args.output_dir)
        console.print(f"Transcript saved to {path}")
    return 0


async def transcribe(config: EchoesConfig, store: RecordingStore, recording_id: str) -> int:
    service = TranscriptionService.from_config(config, store)
    with console.status(f"Transcribing {recording_id}..."):
        recording = await service.transcribe_recording(recording_id)
    console.print(recording.transcription or "")
    return 0


async def health(config: EchoesConfig, store: RecordingStore) -> int:
    service = TranscriptionService.from_config(config, store)
    if await service.check_available():
        console.print(f"[green]Transcription server ready at {service.client.server_url}[/green]")
        return 0
    console.print(f"[red]Transcription server not available at {service.client.server_url}[/red]")
    return 1


def list_devices(config: EchoesConfig) -> int:
    platform = create_platform(config)
    try:
        for device in platform.enumerate_devices():
            console.print(f"{device.device_id}\t{device.label}")
    finally:
        platform.terminate()
    return 0


def detect(url: str) -> int:
    platform = detect_meeting_platform(url)
    if platform is None:
        console.print("Not a supported meeting page")
        return 1
    console.print(f"{platform.name} ({platform.key})")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Echoes - Meeting audio recorder with local transcription"
    )

    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration YAML file (default: built-in settings)"
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging level (default: from config)"
    )

    parser.add_argument(
        "--version",
        action="version",
        version="Echoes v0.1.0"
    )

    commands = parser.add_subparsers(dest="command", required=True)

    record_parser = commands.add_parser("record", help="Record tab audio, microphone or both")
    record_parser.add_argument("--mode", choices=["tab", "mic", "both"], default="tab")
    record_parser.add_argument("--tab-id", type=int, default=1,
                               help="Identifier of the tab being recorded")
    record_parser.add_argument("--device", type=str,
                               help="Microphone device id (see 'echoes devices')")
    record_parser.add_argument("--duration", type=int,
                               help="Stop automatically after this many seconds")

    commands.add_parser("list", help="List stored recordings")

    transcribe_parser = commands.add_parser("transcribe", help="Transcribe a stored recording")
    transcribe_parser.add_argument("recording_id")

    show_parser = commands.add_parser("show", help="Show a recording and its transcript")
    show_parser.add_argument("recording_id")

    export_parser = commands.add_parser("export", help="Save a recording's audio or transcript")
    export_parser.add_argument("recording_id")
    export_parser.add_argument("--output-dir", default=".",
                               help="Directory to write into (default: current directory)")
    export_group = export_parser.add_mutually_exclusive_group()
    export_group.add_argument("--transcript", action="store_true",
                              help="Also save the transcript as <name>-transcript.md")
    export_group.add_argument("--transcript-only", action="store_true",
                              help="Save only the transcript")

    delete_parser = commands.add_parser("delete", help="Delete a stored recording")
    delete_parser.add_argument("recording_id")

    import_parser = commands.add_parser("import", help="Import an audio file as a recording")
    import_parser.add_argument("path")

    commands.add_parser("health", help="Check the transcription server")
    commands.add_parser("devices", help="List audio input devices")

    detect_parser = commands.add_parser("detect", help="Detect the meeting platform of a URL")
    detect_parser.add_argument("url")

    return parser


def run_command(args: argparse.Namespace, config: EchoesConfig) -> int:
    if args.command == "detect":
        return detect(args.url)
    if args.command == "devices":
        return list_devices(config)

    store = RecordingStore(config.get_data_directory())

    if args.command == "record":
        return asyncio.run(record(config, store, args))
    if args.command == "list":
        return list_recordings(store)
    if args.command == "transcribe":
        return asyncio.run(transcribe(config, store, args.recording_id))
    if args.command == "show":
        return show_recording(store, args.recording_id)
    if args.command == "export":
        return export_recording(store, args)
    if args.command == "delete":
        store.delete_recording(args.recording_id)
        console.print(f"Deleted {args.recording_id}")
        return 0
    if args.command == "import":
        recording = store.import_audio_file(args.path)
        console.print(f"Imported {recording.id} '{recording.name}'")
        return 0
    if args.command == "health":
        return asyncio.run(health(config, store))
    raise ValueError(f"Unknown command: {args.command}")


def main(argv: Optional[list] = None) -> None:
    """Main entry point for Echoes."""
    args = build_parser().parse_args(argv)

    try:
        config = EchoesConfig(args.config)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    setup_logging(config, args.log_level or config.get('logging.level', 'INFO'))

    try:
        exit_code = run_command(args, config)
    except (RecordingNotFoundError, TranscriptionError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        logger.error(f"Command {args.command} failed: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        console.print("\nGoodbye!")
        sys.exit(130)

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
