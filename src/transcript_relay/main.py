"""
Main entry point for the transcript relay.
"""

import argparse
import asyncio
import logging
import sys

from transcript_relay.audio.audio_io import AudioIOConfig, SoundDeviceMediaDevices, WavFileElement
from transcript_relay.audio.source_resolver import AudioSourceResolver
from transcript_relay.config import Settings, get_settings
from transcript_relay.conversation.bridge import ConversationBridge
from transcript_relay.conversation.llm_session import OllamaConversationSession
from transcript_relay.models.llm_client import LLMClient
from transcript_relay.pipeline import TranscriptionPipeline, build_provider
from transcript_relay.schemas import AudioSourceSelector, TranscriptEntry


def setup_logging() -> None:
    """Configure application logging."""
    settings = get_settings()
    level = logging.DEBUG if settings.debug else getattr(logging, settings.log_level)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def build_parser(settings: Settings | None = None) -> argparse.ArgumentParser:
    """CLI options; every default comes from settings (env / .env)."""
    settings = settings or get_settings()
    parser = argparse.ArgumentParser(prog="transcript-relay")
    parser.add_argument(
        "--provider",
        choices=["local", "remote"],
        default=settings.transcription_provider,
        help="Recognition provider: local whisper loop or remote streaming socket",
    )
    parser.add_argument(
        "--source",
        default=settings.audio_source,
        help="'system', 'default' (microphone), or a device index / name fragment",
    )
    parser.add_argument(
        "--language",
        default=settings.transcription_language,
        help="Recognition language tag, or 'auto'",
    )
    parser.add_argument(
        "--media-mode",
        choices=["youtube", "zoom", "audio"],
        default=settings.media_mode,
        help="Active media integration (selects the media element used for system audio)",
    )
    parser.add_argument(
        "--audio-file",
        default=settings.audio_file or None,
        help="WAV file played as the in-process media element for --media-mode audio",
    )
    parser.add_argument(
        "--list-devices",
        action="store_true",
        help="List audio input devices and exit",
    )
    parser.add_argument(
        "--no-ai",
        action="store_true",
        help="Transcribe only; do not forward utterances to the AI session",
    )
    return parser


def _print_entry(entry: TranscriptEntry) -> None:
    if not entry.is_final:
        return
    topic = f" ({entry.topic})" if entry.topic else ""
    print(f"[{entry.timestamp_display}] {entry.speaker}{topic}: {entry.text}")


def _print_agent(text: str, is_final: bool = False) -> None:
    if is_final and text.strip():
        print(f"\nAgent: {text.strip()}\n")


async def run(argv: list[str] | None = None) -> int:
    """
    Run the relay until interrupted or until the session ends.

    Returns:
        Process exit code.
    """
    settings = get_settings()
    logger = logging.getLogger(__name__)
    args = build_parser(settings).parse_args(argv)

    resolver = AudioSourceResolver(SoundDeviceMediaDevices(AudioIOConfig(sample_rate=settings.sample_rate)))

    if args.list_devices:
        for dev in await resolver.enumerate_audio_inputs():
            loopback = " [loopback]" if dev.is_loopback else ""
            print(f"{dev.device_id:>3}  {dev.label} ({dev.default_sample_rate} Hz){loopback}")
        return 0

    if args.audio_file:
        resolver.register_media_element("audio", WavFileElement(args.audio_file))

    session = None
    bridge = None
    if not args.no_ai:
        llm_client = LLMClient(
            model=settings.llm_model_name,
            max_retries=settings.llm_max_retries,
            timeout=settings.llm_timeout,
        )
        session = OllamaConversationSession(llm_client, system_prompt=settings.system_prompt)
        bridge = ConversationBridge(session)
        session.subscribe("turn_update", _print_agent)
        await session.connect()

    pipeline = TranscriptionPipeline(
        resolver,
        lambda kind: build_provider(kind, settings),
        bridge=bridge,
        sample_rate=settings.sample_rate,
    )
    pipeline.consolidator.subscribe("entry", _print_entry)

    selector = AudioSourceSelector.parse(args.source)
    logger.info(f"Starting relay: provider={args.provider} source={selector} language={args.language}")
    await pipeline.start(selector, args.provider, args.language, media_mode=args.media_mode)

    try:
        while pipeline.listening:
            await asyncio.sleep(0.25)
    finally:
        await pipeline.stop()
        if bridge is not None:
            bridge.close()
        if session is not None:
            session.disconnect()

    status = pipeline.status()
    if status.last_error:
        kind = status.error_kind.value if status.error_kind else "error"
        print(f"Stopped: {status.last_error} [{kind}]", file=sys.stderr)
        return 1
    return 0


def main() -> None:
    """Main entry point for the application."""
    setup_logging()

    try:
        sys.exit(asyncio.run(run(sys.argv[1:])))
    except KeyboardInterrupt:
        print("\nTranscription stopped by user.")
        sys.exit(0)
    except Exception as e:
        logging.error(f"Application error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
