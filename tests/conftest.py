"""Shared fixtures and fakes for the Laila test suite."""

from typing import List, Optional

import pytest

from laila.assistant import Assistant
from laila.dispatcher import CommandDispatcher
from laila.gate import PassphraseAuthenticator
from laila.models import ExecutionResult, ParsedCommand, YouTubeLookup
from laila.risk import classify_risk
from laila.storage import Storage
from laila.tools import BLOCKED_MESSAGE, check_command, default_output

PASSPHRASE = "open-sesame"


def make_command(command_type: str, command: str, description: str = "Do the thing") -> ParsedCommand:
    return ParsedCommand(
        type=command_type,
        command=command,
        description=description,
        risk=classify_risk(command_type, command),
    )


# ============================================================================
# FAKES
# ============================================================================

class FakeModel:
    """Model proxy returning canned replies in order."""

    def __init__(self, replies: Optional[list] = None, humanized: str = "It is fine."):
        self.replies = list(replies or [])
        self.humanized = humanized
        self.calls: List[list] = []
        self.humanize_calls: List[tuple] = []

    async def complete(self, messages):
        self.calls.append(list(messages))
        if not self.replies:
            return "OK"
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def humanize(self, description, output):
        self.humanize_calls.append((description, output))
        if isinstance(self.humanized, Exception):
            raise self.humanized
        return self.humanized


class FakeShell:
    """Shell executor that records command lines instead of running them."""

    def __init__(self, output: Optional[str] = None, success: bool = True):
        self.output = output
        self.success = success
        self.commands: List[tuple] = []

    async def run(self, command, command_type="terminal"):
        if check_command(command):
            return ExecutionResult(success=False, output=BLOCKED_MESSAGE, refused=True)
        self.commands.append((command, command_type))
        return ExecutionResult(
            success=self.success,
            output=self.output if self.output is not None else default_output(command_type),
        )


class FakeWhatsApp:
    def __init__(self, success: bool = True):
        self.success = success
        self.calls: List[tuple] = []

    async def run(self, contact, message=None):
        self.calls.append((contact, message))
        if not self.success:
            return ExecutionResult(success=False, output="Couldn't complete the WhatsApp action: boom")
        return ExecutionResult(success=True, output=f"Opened chat with {contact} on WhatsApp")


class FakeYouTube:
    def __init__(self, video_id: Optional[str] = "dQw4w9WgXcQ", error: Optional[Exception] = None):
        self.video_id = video_id
        self.error = error
        self.queries: List[str] = []

    async def lookup(self, query):
        self.queries.append(query)
        if self.error:
            raise self.error
        return YouTubeLookup(
            success=True,
            url=f"https://www.youtube.com/watch?v={self.video_id}",
            video_id=self.video_id,
        )


class FakeSpeechInput:
    """Recognition session driven by the test."""

    def __init__(self, supported: bool = True, fail_start: bool = False):
        self.supported = supported
        self.fail_start = fail_start
        self.starts = 0
        self.stops = 0
        self.callbacks = None

    def start(self, on_result, on_end, on_error):
        from laila.voice import SpeechInputError

        if self.fail_start:
            raise SpeechInputError("microphone busy")
        self.starts += 1
        self.callbacks = (on_result, on_end, on_error)

    def stop(self):
        self.stops += 1

    def hear(self, transcript: str, confidence: float = 0.9, is_final: bool = True):
        from laila.voice import RecognitionAlternative, RecognitionResult

        on_result, _, _ = self.callbacks
        on_result([RecognitionResult(
            is_final=is_final,
            alternatives=[RecognitionAlternative(transcript=transcript, confidence=confidence)],
        )])

    def end(self):
        self.callbacks[1]()

    def fail(self, error: str):
        self.callbacks[2](error)


class FakeSpeechOutput:
    def __init__(self):
        self.speaking = False
        self.spoken: List[str] = []
        self.stops = 0

    def is_speaking(self):
        return self.speaking

    async def speak(self, text):
        self.spoken.append(text)

    def stop(self):
        self.stops += 1
        self.speaking = False


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def storage():
    return Storage(mode="memory")


@pytest.fixture
def model():
    return FakeModel()


@pytest.fixture
def shell():
    return FakeShell()


@pytest.fixture
def whatsapp():
    return FakeWhatsApp()


@pytest.fixture
def youtube():
    return FakeYouTube()


@pytest.fixture
def dispatcher(model, shell, whatsapp, youtube):
    return CommandDispatcher(model, shell=shell, whatsapp=whatsapp, youtube=youtube, open_command="open")


@pytest.fixture
def assistant(storage, model, dispatcher):
    return Assistant(
        storage,
        model=model,
        dispatcher=dispatcher,
        authenticator=PassphraseAuthenticator(PASSPHRASE),
    )
