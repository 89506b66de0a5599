"""
Wake-word voice loop.

Keeps a continuous speech-recognition session alive while listening for
"Laila", and hands the text after the wake word to the caller. The loop
never listens while Laila is speaking: starts are deferred while speech
synthesis is active and results heard during synthesis are discarded.

Only start()/stop() flip the master switch. pause()/resume() bracket the
assistant's own speech. After a wake the listener stops and stays stopped
until the caller resumes it.
"""
import asyncio
import logging
import random
import re
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Protocol

logger = logging.getLogger(__name__)

WAKE_PATTERN = re.compile(r"\b(laila|layla|leila|leyla|lila|lyla)\b", re.IGNORECASE)

GREETINGS = [
    "Yes? I'm listening.",
    "Hey! What can I do for you?",
    "I'm here. How can I help?",
    "Yes, I'm all ears.",
    "Hi there! What do you need?",
]

# Names speech recognition commonly gets wrong
SPEECH_CORRECTIONS = {
    "aahat": "Ahad",
    "ahat": "Ahad",
    "jahid": "Zahid",
    "javed": "Zahid",
    "sahib": "Saqib",
    "sakib": "Saqib",
    "lyla": "Laila",
    "lila": "Laila",
    "leela": "Laila",
}

# Recognition errors that just mean "nothing useful happened, go again"
TRANSIENT_ERRORS = ("no-speech", "aborted")
PERMISSION_ERRORS = ("not-allowed", "service-not-allowed")

@dataclass
class RecognitionAlternative:
    transcript: str
    confidence: float

@dataclass
class RecognitionResult:
    is_final: bool
    alternatives: List[RecognitionAlternative] = field(default_factory=list)

class SpeechInputError(Exception):
    """Recognition session could not be started"""

class SpeechInput(Protocol):
    supported: bool

    def start(
        self,
        on_result: Callable[[List[RecognitionResult]], None],
        on_end: Callable[[], None],
        on_error: Callable[[str], None],
    ) -> None:
        ...

    def stop(self) -> None:
        ...

class SpeechOutput(Protocol):
    def is_speaking(self) -> bool:
        ...

    async def speak(self, text: str) -> None:
        ...

    def stop(self) -> None:
        ...

def correct_transcript(text: str) -> str:
    """Fix commonly misheard names, word by word"""
    words = text.split()
    corrected = []
    for word in words:
        key = re.sub(r"[.,!?]", "", word.lower())
        corrected.append(SPEECH_CORRECTIONS.get(key, word))
    return " ".join(corrected)

def match_wake_word(transcript: str) -> Optional[str]:
    """Text following the wake word, or None when there is no wake word"""
    text = transcript.lower().strip()
    match = WAKE_PATTERN.search(text)
    if not match:
        return None
    return correct_transcript(text[match.end():].strip())

@dataclass
class WakeAction:
    kind: str  # "command" or "greeting"
    text: str

def route_wake(remaining: str, choose: Callable[[List[str]], str] = random.choice) -> WakeAction:
    """Command path for real trailing text, greeting path otherwise"""
    remaining = remaining.strip()
    if len(remaining) > 2:
        return WakeAction(kind="command", text=remaining)
    return WakeAction(kind="greeting", text=choose(GREETINGS))

class WakeWordListener:
    """Restartable wake-word recognition controller"""

    def __init__(
        self,
        speech_input: SpeechInput,
        speech_output: SpeechOutput,
        on_wake: Callable[[str], None],
        on_listening_change: Optional[Callable[[bool], None]] = None,
        min_confidence: float = 0.5,
        restart_delay: float = 0.3,
        error_restart_delay: float = 0.5,
        speaking_retry_delay: float = 1.0,
        resume_poll_delay: float = 0.6,
        start_failure_delay: float = 2.0,
    ):
        self.speech_input = speech_input
        self.speech_output = speech_output
        self.on_wake = on_wake
        self.on_listening_change = on_listening_change
        self.min_confidence = min_confidence
        self.restart_delay = restart_delay
        self.error_restart_delay = error_restart_delay
        self.speaking_retry_delay = speaking_retry_delay
        self.resume_poll_delay = resume_poll_delay
        self.start_failure_delay = start_failure_delay

        self.is_active = False
        self.is_paused = False
        self.is_running = False
        self._session = 0
        self._timers: List[asyncio.TimerHandle] = []

    @property
    def supported(self) -> bool:
        return bool(getattr(self.speech_input, "supported", False))

    def _notify(self, listening: bool):
        if self.on_listening_change:
            self.on_listening_change(listening)

    def _schedule(self, delay: float, callback: Callable[[], None]):
        loop = asyncio.get_running_loop()
        self._timers = [t for t in self._timers if not t.cancelled()]
        self._timers.append(loop.call_later(delay, callback))

    def _cancel_timers(self):
        for timer in self._timers:
            timer.cancel()
        self._timers = []

    def _should_listen(self) -> bool:
        return self.is_active and not self.is_paused

    def _retry(self):
        if self._should_listen():
            self._start_listening()

    def _end_session(self):
        """Detach the current recognition session so its late callbacks are ignored"""
        self._session += 1
        if self.is_running:
            self.is_running = False
            try:
                self.speech_input.stop()
            except Exception as e:
                logger.debug("Stopping recognition failed: %s", e)

    def _start_listening(self):
        if not self.supported or self.is_running or not self._should_listen():
            return

        if self.speech_output.is_speaking():
            self._schedule(self.speaking_retry_delay, self._retry)
            return

        self._session += 1
        session = self._session
        try:
            self.speech_input.start(
                on_result=lambda results: self._handle_result(session, results),
                on_end=lambda: self._handle_end(session),
                on_error=lambda error: self._handle_error(session, error),
            )
        except SpeechInputError as e:
            logger.warning("Could not start wake word recognition: %s", e)
            self._schedule(self.start_failure_delay, self._retry)
            return

        # The session may already have ended from inside start()
        if session != self._session:
            return
        self.is_running = True
        self._notify(True)

    def _handle_result(self, session: int, results: List[RecognitionResult]):
        if session != self._session:
            return
        if self.is_paused or self.speech_output.is_speaking():
            return

        for result in results:
            if not result.is_final:
                continue
            for alternative in result.alternatives:
                if alternative.confidence < self.min_confidence:
                    continue
                remaining = match_wake_word(alternative.transcript)
                if remaining is None:
                    continue
                logger.info("Wake word detected (confidence %.2f)", alternative.confidence)
                self._end_session()
                self._notify(False)
                self.on_wake(remaining)
                return

    def _handle_end(self, session: int):
        if session != self._session:
            return
        self.is_running = False
        self._session += 1
        self._notify(False)
        if self._should_listen():
            self._schedule(self.restart_delay, self._retry)

    def _handle_error(self, session: int, error: str):
        if session != self._session:
            return
        self.is_running = False
        self._session += 1

        if error in PERMISSION_ERRORS:
            logger.warning("Microphone permission denied for wake word listener")
            self.is_active = False
            self._cancel_timers()
            self._notify(False)
            return

        if error not in TRANSIENT_ERRORS:
            logger.warning("Wake word recognition error: %s", error)
        self._notify(False)
        if self._should_listen():
            delay = self.error_restart_delay if error in TRANSIENT_ERRORS else self.restart_delay
            self._schedule(delay, self._retry)

    def start(self):
        if not self.supported:
            logger.warning("Speech recognition is not supported on this system")
            self._notify(False)
            return
        self.is_active = True
        self.is_paused = False
        self._start_listening()

    def stop(self):
        self.is_active = False
        self.is_paused = False
        self._cancel_timers()
        self._end_session()
        self._notify(False)

    def pause(self):
        self.is_paused = True
        self._end_session()
        self._notify(False)

    def resume(self):
        if not self.is_active:
            return
        self.is_paused = False
        self._schedule(self.resume_poll_delay, self._poll_resume)

    def _poll_resume(self):
        if not self._should_listen():
            return
        if self.speech_output.is_speaking():
            self._schedule(self.resume_poll_delay, self._poll_resume)
        else:
            self._start_listening()

class SilentSpeechOutput:
    """Speech output for systems without synthesis: speaking finishes at once"""

    def is_speaking(self) -> bool:
        return False

    async def speak(self, text: str) -> None:
        return None

    def stop(self) -> None:
        return None

class VoiceSession:
    """Hands-free loop: wake word -> chat turn -> spoken reply -> listen again"""

    def __init__(
        self,
        speech_input: SpeechInput,
        speech_output: SpeechOutput,
        handle_command: Callable[[str], Awaitable[str]],
        on_listening_change: Optional[Callable[[bool], None]] = None,
        choose: Callable[[List[str]], str] = random.choice,
        **listener_options,
    ):
        self.speech_output = speech_output
        self.handle_command = handle_command
        self.choose = choose
        self.listener = WakeWordListener(
            speech_input, speech_output, self._on_wake, on_listening_change, **listener_options
        )
        self._tasks: List[asyncio.Task] = []

    def start(self):
        self.listener.start()

    def stop(self):
        self.listener.stop()
        self.speech_output.stop()

    def _on_wake(self, remaining: str):
        task = asyncio.get_running_loop().create_task(self._respond(remaining))
        self._tasks = [t for t in self._tasks if not t.done()]
        self._tasks.append(task)

    async def _respond(self, remaining: str):
        action = route_wake(remaining, self.choose)
        self.listener.pause()
        try:
            if action.kind == "greeting":
                reply = action.text
            else:
                reply = await self.handle_command(action.text)
            await self.speech_output.speak(reply)
        except Exception:
            logger.exception("Voice turn failed")
        finally:
            self.listener.resume()

    async def wait_idle(self):
        """Wait for in-flight voice turns to finish"""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
