"""Terminal front end: wires the conversation, voice and timers together."""

from __future__ import annotations

import asyncio
import time
from pathlib import Path
from typing import Optional

import typer

from .config.settings import Settings, get_settings
from .runtime.controller import VoiceController
from .runtime.conversation import ChatSession
from .services.api import SousChefAPI
from .services.timers import format_clock
from .state.app_state import ChatMessage

HELP_TEXT = (
    "Commands: /mic, /session N, /recipe N, /accept N, /dismiss N, "
    "/end, /keep, /timers, /sessions, /quit"
)


def build_voice_controller(session: ChatSession, settings: Settings) -> VoiceController:
    """Attach a microphone and speaker controller to ``session``."""
    from .audio.playback import PlaybackConfig, SpeechPlayback
    from .audio.tts import PiperSynthesizer
    from .services.recognition import StreamingRecognizer

    recognizer = StreamingRecognizer(
        settings.recognition_url,
        language=settings.recognition_language,
        sample_rate=settings.sample_rate,
        token=settings.api_token,
        input_device=settings.input_device,
    )
    synthesizer = PiperSynthesizer(
        Path(settings.tts_model_dir),
        default_voice=settings.tts_voice,
        playback=SpeechPlayback(PlaybackConfig(device_name=settings.output_device)),
    )
    controller = VoiceController(
        recognizer,
        synthesizer,
        on_command=session.handle_voice_command,
        wake_phrases=settings.wake_phrases,
        follow_up_seconds=settings.follow_up_seconds,
        voice=settings.tts_voice,
        rate=settings.speech_rate,
        on_state_change=lambda _old, new: typer.echo(f"[mic: {new.value}]"),
        on_error=session.state.system,
    )
    session.attach_voice(controller)
    return controller


def render_message(message: ChatMessage) -> str:
    if message.role == "user":
        return f"you> {message.content}"
    if message.role == "system":
        return f"* {message.content}"
    tag = f"[{message.recipe_name}] " if message.recipe_name else ""
    lines = [f"sous> {tag}{message.content}"]
    for index, session in enumerate(message.session_choices, start=1):
        lines.append(f"  /session {index}: {session.recipe} (step {session.current_step}/{session.total_steps})")
    for index, recipe in enumerate(message.recipe_choices, start=1):
        lines.append(f"  /recipe {index}: {recipe.title} ({recipe.steps} steps)")
    for index, timer in enumerate(message.timer_suggestions, start=1):
        lines.append(f"  /accept {index}: {timer.label} ({format_clock(timer.duration_seconds)})")
    if message.awaiting_end_confirmation:
        lines.append("  /end to finish the session, /keep to keep cooking")
    return "\n".join(lines)


class _Printer:
    """Echo messages appended since the previous flush."""

    def __init__(self, session: ChatSession) -> None:
        self._session = session
        self._shown = 0

    def flush(self) -> None:
        messages = self._session.messages
        for message in messages[self._shown :]:
            if message.role != "user" or message.source == "voice":
                typer.echo(render_message(message))
        self._shown = len(messages)


def _last_with(session: ChatSession, attribute: str) -> Optional[ChatMessage]:
    for message in reversed(session.messages):
        if getattr(message, attribute):
            return message
    return None


def _pick(items: list, raw: str):
    try:
        index = int(raw) - 1
    except ValueError:
        return None
    return items[index] if 0 <= index < len(items) else None


async def handle_line(session: ChatSession, line: str) -> bool:
    """Apply one line of input; returns False when the user wants to quit."""
    line = line.strip()
    if not line:
        return True
    if not line.startswith("/"):
        await session.send_message(line)
        return True

    command, _, argument = line.partition(" ")
    argument = argument.strip()
    if command in ("/quit", "/exit"):
        return False
    if command == "/mic":
        if session.voice is None:
            session.state.system("Voice is off; start with --voice.")
        else:
            session.voice.toggle()
    elif command == "/session":
        message = _last_with(session, "session_choices")
        choice = _pick(message.session_choices, argument) if message else None
        if message and choice:
            await session.choose_session(choice.session_id, message.original_text or "")
    elif command == "/recipe":
        message = _last_with(session, "recipe_choices")
        choice = _pick(message.recipe_choices, argument) if message else None
        if choice:
            await session.choose_recipe(choice.recipe_id)
    elif command in ("/accept", "/dismiss"):
        message = _last_with(session, "timer_suggestions")
        choice = _pick(message.timer_suggestions, argument) if message else None
        if message and choice:
            if command == "/accept":
                session.accept_timer(message.id, choice)
            else:
                session.dismiss_timer(message.id, choice.label)
    elif command in ("/end", "/keep"):
        message = _last_with(session, "awaiting_end_confirmation")
        if message and command == "/keep":
            session.dismiss_end_confirmation(message.id)
        elif message and message.session_id is not None:
            await session.confirm_end(message.id, message.session_id)
    elif command == "/timers":
        now = time.time()
        for timer in session.state.timers:
            typer.echo(f"  {timer.label} [{timer.recipe}] {format_clock(timer.remaining_seconds(now))}")
    elif command == "/sessions":
        await session.state.refresh_sessions(session.api)
        for ref in session.state.sessions:
            typer.echo(f"  #{ref.session_id} {ref.recipe} (step {ref.current_step}/{ref.total_steps})")
    else:
        session.state.system(HELP_TEXT)
    return True


async def _tick(session: ChatSession, printer: _Printer) -> None:
    while True:
        await asyncio.sleep(1.0)
        session.announce_finished_timers()
        printer.flush()


async def chat(settings: Settings, *, voice: bool = False) -> None:
    api = SousChefAPI(settings)
    session = ChatSession(api)
    controller = build_voice_controller(session, settings) if voice else None
    printer = _Printer(session)
    await session.state.refresh_sessions(api)
    if controller is not None:
        controller.enable()
    session.state.system(HELP_TEXT)
    printer.flush()
    ticker = asyncio.create_task(_tick(session, printer))
    loop = asyncio.get_running_loop()
    try:
        while True:
            try:
                line = await loop.run_in_executor(None, input, "")
            except EOFError:
                break
            if not await handle_line(session, line):
                break
            printer.flush()
    finally:
        ticker.cancel()
        if controller is not None:
            await controller.aclose()
        await session.drain()
        await api.close()


async def say_once(settings: Settings, text: str) -> list[str]:
    """Send one typed turn and return the rendered replies."""
    api = SousChefAPI(settings)
    try:
        session = ChatSession(api)
        start = len(session.messages)
        await session.send_message(text)
        await session.drain()
        return [render_message(m) for m in session.messages[start:] if m.role != "user"]
    finally:
        await api.close()


async def list_sessions(settings: Settings) -> list[dict]:
    api = SousChefAPI(settings)
    try:
        return await api.list_sessions()
    finally:
        await api.close()


def run(voice: bool = False, settings: Optional[Settings] = None) -> None:
    """Start the interactive client."""
    asyncio.run(chat(settings or get_settings(), voice=voice))
