"""
CLI for running a voice widget session from the terminal.
"""

import asyncio
import argparse
from pathlib import Path

from .config import WidgetConfig, print_config_summary
from .console import ConsolePresenter
from .factory import create_widget, create_storage
from .models.data_models import ConversationMode
from .orchestrator import ConversationOrchestrator
from .session.identity import SessionIdentityStore
from .utils.logging_config import setup_logging


REPL_HELP = """Commands:
  /voice   switch to voice input
  /text    switch to text input
  /mic     toggle the microphone
  /status  show session status
  /quit    leave
"""


def create_parser() -> argparse.ArgumentParser:
    """Create CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="voice-widget",
        description="Conversational voice widget session",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument('--env-file', type=Path, help='Path to a .env file')
    parser.add_argument('--business-id', help='Override WIDGET_BUSINESS_ID')
    parser.add_argument('--mock', action='store_true', help='Use the mock chat backend')
    parser.add_argument('--log-level', help='Override LOG_LEVEL')

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    subparsers.add_parser(
        'chat',
        help='Type messages to the assistant (replies are not spoken)'
    )

    voice = subparsers.add_parser(
        'voice',
        help='Talk to the assistant (listen -> reply -> speak, until Ctrl+C)'
    )
    voice.add_argument('--language', help='Voice language (e.g. en, es, French)')
    voice.add_argument('--gender', choices=['female', 'male'], help='Voice gender')
    voice.add_argument('--speed', type=float, help='Speaking speed multiplier')

    session = subparsers.add_parser(
        'session',
        help='Show the stored session id'
    )
    session.add_argument('--reset', action='store_true', help='Start a new session id')

    subparsers.add_parser(
        'config',
        help='Show configuration'
    )

    return parser


def build_config(args) -> WidgetConfig:
    config = WidgetConfig.from_env(args.env_file)
    overrides = config.model_dump()
    if args.business_id:
        overrides['business_id'] = args.business_id
    if args.mock:
        overrides['chat']['provider'] = 'mock'
    if args.log_level:
        overrides['log_level'] = args.log_level
    # Re-validate so command-line values get the same normalization as the environment
    return WidgetConfig.model_validate(overrides)


def print_banner(title: str):
    print("\n" + "=" * 60)
    print(title)
    print("=" * 60 + "\n")


async def cmd_chat(widget: ConversationOrchestrator):
    """Text REPL."""
    print_banner("Text Chat")
    print(REPL_HELP)

    await widget.open()
    loop = asyncio.get_running_loop()

    while True:
        try:
            line = await loop.run_in_executor(None, input, "")
        except EOFError:
            break

        command = line.strip().lower()
        if command in ('/quit', '/exit'):
            break
        elif command == '/voice':
            await widget.set_mode(ConversationMode.VOICE)
        elif command == '/text':
            await widget.set_mode(ConversationMode.TEXT)
        elif command == '/mic':
            listening = await widget.toggle_listening()
            print(f"   🎤 Microphone {'on' if listening else 'off'}")
        elif command == '/status':
            cmd_status(widget)
        elif command == '/help':
            print(REPL_HELP)
        else:
            await widget.submit(line)

    await widget.close()


async def cmd_voice(widget: ConversationOrchestrator, args):
    """Voice conversation until interrupted."""
    print_banner("Voice Conversation")

    if args.language or args.gender or args.speed:
        widget.update_voice_settings(
            language=args.language,
            gender=args.gender,
            speaking_speed=args.speed
        )

    if not widget.capture.is_available:
        print("⚠️  Voice input unavailable; falling back to text chat\n")
        await widget.set_mode(ConversationMode.TEXT)
        await cmd_chat(widget)
        return

    print("Speak after the prompt... (Press Ctrl+C to stop)\n")
    await widget.open()
    try:
        while True:
            await asyncio.sleep(1.0)
    finally:
        await widget.close()


def cmd_status(widget: ConversationOrchestrator):
    """Show session status."""
    status = widget.get_status()
    print(f"Session: {status['session_id']}")
    print(f"Mode: {status['mode']}  State: {status['state']['state']}")
    print(f"Buffer: {status['buffer_size']} turns  Transcript: {status['transcript_size']} turns")
    print(f"Capture: {status['capture']['state']} (available: {status['capture']['available']})")
    print(f"Playback: last source {status['playback']['last_source'] or '—'}")
    print(f"Errors: {status['errors']['total_errors']}")


def cmd_session(config: WidgetConfig, reset: bool):
    """Show or reset the stored session id."""
    identity = SessionIdentityStore(create_storage(config))
    if reset:
        print(f"🆕 New session: {identity.reset()}")
    else:
        print(f"Session: {identity.get_or_create_session_id()}")


async def async_main(args, config: WidgetConfig):
    """Async main function."""
    if args.command == 'chat':
        config.session.initial_mode = ConversationMode.TEXT
    elif args.command == 'voice':
        config.session.initial_mode = ConversationMode.VOICE

    print("🚀 Creating widget session...")
    widget = create_widget(config)
    ConsolePresenter(show_states=args.command == 'voice').attach(widget)

    if not await widget.initialize():
        print("❌ Chat service failed to initialize")
        await widget.shutdown()
        return

    try:
        if args.command == 'chat':
            await cmd_chat(widget)
        elif args.command == 'voice':
            await cmd_voice(widget, args)
    finally:
        await widget.shutdown()


def main():
    """Synchronous entry point."""
    parser = create_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return

    try:
        config = build_config(args)
    except ValueError as e:
        print(f"❌ Invalid configuration: {e}")
        return

    try:
        setup_logging(level=config.log_level)
    except Exception as e:
        print(f"⚠️  Failed to setup logging: {e}")

    # Commands that don't need a running session
    if args.command == 'config':
        print_config_summary(config)
        return
    if args.command == 'session':
        cmd_session(config, args.reset)
        return

    try:
        asyncio.run(async_main(args, config))
    except KeyboardInterrupt:
        print("\n⚠️  Interrupted by user")
    except Exception as e:
        print(f"\n❌ Fatal error: {e}")
        import traceback
        traceback.print_exc()


if __name__ == '__main__':
    main()
