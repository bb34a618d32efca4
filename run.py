"""
Run script for chatting with a realtime voice model from the terminal.

Type a message and press Enter to send it. With --mic the microphone is
captured as well and the voice activity detector decides when you are
speaking; in client_vad mode the end of your speech asks for a reply.

Commands:
    /cancel   stop the agent's current response
    /commit   end a voice turn by hand
    /quit     disconnect and exit

Usage:
    python run.py [--url URL] [--model MODEL] [--voice VOICE]
                  [--turn-detection {client_vad,server_vad}] [--mic]
                  [--log-level LEVEL] [--log-dir DIR] [--env-file PATH]
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional, TextIO

from voice_client.bot.events import RealtimeEventSink
from voice_client.bot.realtime_api import Connector
from voice_client.bot.voice_session import VoiceSession
from voice_client.config.constants import (
    LOGGER_NAME,
    TURN_DETECTION_CLIENT_VAD,
    TURN_DETECTION_SERVER_VAD,
)
from voice_client.config.logging_config import configure_logging
from voice_client.config.settings import load_settings
from voice_client.errors import RealtimeError
from voice_client.models.session import ConnectionState, ResponseStatus

logger = logging.getLogger(LOGGER_NAME)


class ConsoleEventSink(RealtimeEventSink):
    """Prints the conversation and status changes to a text stream."""

    def __init__(self, out: Optional[TextIO] = None):
        self.out = out or sys.stdout

    def write(self, line: str) -> None:
        print(line, file=self.out, flush=True)

    def on_message(self, role, text):
        self.write(f"[{role}] {text}")

    def on_status_change(self, status):
        if status != ResponseStatus.IDLE:
            self.write(f"* agent {status.value}")

    def on_connection_change(self, state, attempt):
        if state == ConnectionState.RECONNECTING:
            self.write(f"* reconnecting (attempt {attempt})")
        else:
            self.write(f"* {state.value}")

    def on_speech_activity(self, active):
        self.write("* listening" if active else "* processing")

    def on_error(self, error):
        self.write(f"! {error.code.value}: {error.message}")


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Chat with a realtime voice model from the terminal"
    )
    parser.add_argument("--url", help="Realtime endpoint (default: REALTIME_URL or the GLM endpoint)")
    parser.add_argument("--model", help="Model name (default: REALTIME_MODEL)")
    parser.add_argument("--voice", help="Voice name (default: REALTIME_VOICE)")
    parser.add_argument(
        "--turn-detection",
        choices=[TURN_DETECTION_CLIENT_VAD, TURN_DETECTION_SERVER_VAD],
        help="Who decides when a voice turn ends (default: REALTIME_TURN_DETECTION or client_vad)",
    )
    parser.add_argument("--mic", action="store_true", help="Capture microphone input (needs PyAudio)")
    parser.add_argument("--input-device", type=int, help="PyAudio input device index")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: INFO or LOG_LEVEL env var)",
    )
    parser.add_argument("--log-dir", default="logs", help="Directory for the rotating log file (default: logs)")
    parser.add_argument("--env-file", default=".env", help="dotenv file to load (default: .env)")
    return parser.parse_args(argv)


async def chat(args, stdin: Optional[TextIO] = None, out: Optional[TextIO] = None,
               connector: Optional[Connector] = None) -> int:
    """
    Run one interactive session until /quit or end of input.

    Returns:
        int: Process exit code
    """
    stdin = stdin or sys.stdin
    sink = ConsoleEventSink(out)

    settings = load_settings(
        args.env_file,
        url=args.url,
        model=args.model,
        voice=args.voice,
        turn_detection=args.turn_detection,
        log_level=args.log_level,
    )
    configure_logging(settings.log_level, args.log_dir)

    if not settings.api_key:
        logger.error("REALTIME_API_KEY environment variable not set")
        sink.write("Error: REALTIME_API_KEY is required (set it in the environment or .env)")
        return 1

    device = None
    if args.mic:
        from voice_client.audio.microphone import PyAudioMicrophone
        device = PyAudioMicrophone(input_device_index=args.input_device)

    session = VoiceSession(settings, sink, device=device, connector=connector)
    try:
        await session.connect()
    except RealtimeError as e:
        sink.on_error(e)
        return 1

    try:
        if device is not None:
            await session.start_voice_input()

        while True:
            line = await asyncio.to_thread(stdin.readline)
            if not line:
                break
            command = line.strip()
            if not command:
                continue
            if command == "/quit":
                break

            try:
                if command == "/cancel":
                    session.cancel_response()
                elif command == "/commit":
                    session.commit_audio()
                else:
                    session.send_text(command)
            except RealtimeError as e:
                sink.on_error(e)
    except RealtimeError as e:
        sink.on_error(e)
        return 1
    finally:
        await session.disconnect()

    return 0


def main(argv=None) -> int:
    """Main entry point for the terminal client."""
    args = parse_args(argv)
    try:
        return asyncio.run(chat(args))
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())
