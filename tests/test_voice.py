"""Tests for the wake-word listener and the hands-free voice session."""

import asyncio

import pytest

from laila.voice import (
    GREETINGS, VoiceSession, WakeWordListener, correct_transcript, match_wake_word, route_wake
)

from conftest import FakeSpeechInput, FakeSpeechOutput

FAST = dict(
    restart_delay=0.01,
    error_restart_delay=0.01,
    speaking_retry_delay=0.01,
    resume_poll_delay=0.01,
    start_failure_delay=0.01,
)


def make_listener(speech_input=None, speech_output=None, **options):
    wakes, changes = [], []
    listener = WakeWordListener(
        speech_input or FakeSpeechInput(),
        speech_output or FakeSpeechOutput(),
        on_wake=wakes.append,
        on_listening_change=changes.append,
        **{**FAST, **options},
    )
    return listener, wakes, changes


# ============================================================================
# WAKE WORD MATCHING
# ============================================================================

class TestWakeWord:

    @pytest.mark.parametrize("transcript", ["Laila open Safari", "hey layla, open safari", "LEILA open safari"])
    def test_variants(self, transcript):
        assert match_wake_word(transcript).replace(",", "").strip() == "open safari"

    def test_command_after_wake_word(self):
        remaining = match_wake_word("hey laila what time is it")
        assert remaining == "what time is it"
        assert route_wake(remaining).kind == "command"

    def test_no_wake_word(self):
        assert match_wake_word("open safari") is None
        assert match_wake_word("lailas are nice") is None

    def test_corrects_names(self):
        assert match_wake_word("Laila message aahat hello") == "message Ahad hello"
        assert correct_transcript("call sakib, now") == "call Saqib now"

    def test_route(self):
        assert route_wake("what time is it").kind == "command"
        greeting = route_wake(" ok ", choose=lambda options: options[0])
        assert greeting.kind == "greeting"
        assert greeting.text == GREETINGS[0]


# ============================================================================
# LISTENER
# ============================================================================

class TestListener:

    def test_start_and_wake(self):
        async def flow():
            speech_input = FakeSpeechInput()
            listener, wakes, changes = make_listener(speech_input)
            listener.start()
            speech_input.hear("Laila open notes")
            await asyncio.sleep(0.05)
            return listener, speech_input, wakes, changes

        listener, speech_input, wakes, changes = asyncio.run(flow())
        assert wakes == ["open notes"]
        assert changes == [True, False]
        assert speech_input.stops == 1
        assert speech_input.starts == 1
        assert not listener.is_running

    def test_low_confidence_and_interim_ignored(self):
        async def flow():
            speech_input = FakeSpeechInput()
            listener, wakes, _ = make_listener(speech_input)
            listener.start()
            speech_input.hear("Laila open notes", confidence=0.3)
            speech_input.hear("Laila open notes", is_final=False)
            return listener, wakes

        listener, wakes = asyncio.run(flow())
        assert wakes == []
        assert listener.is_running

    def test_results_while_speaking_are_dropped(self):
        async def flow():
            speech_input, speech_output = FakeSpeechInput(), FakeSpeechOutput()
            listener, wakes, _ = make_listener(speech_input, speech_output)
            listener.start()
            speech_output.speaking = True
            speech_input.hear("Laila open notes")
            return wakes

        assert asyncio.run(flow()) == []

    def test_restarts_after_session_end(self):
        async def flow():
            speech_input = FakeSpeechInput()
            listener, _, _ = make_listener(speech_input)
            listener.start()
            speech_input.end()
            await asyncio.sleep(0.05)
            return listener, speech_input

        listener, speech_input = asyncio.run(flow())
        assert speech_input.starts == 2
        assert listener.is_running

    def test_transient_error_restarts(self):
        async def flow():
            speech_input = FakeSpeechInput()
            listener, _, _ = make_listener(speech_input)
            listener.start()
            speech_input.fail("no-speech")
            await asyncio.sleep(0.05)
            return speech_input

        assert asyncio.run(flow()).starts == 2

    def test_permission_error_deactivates(self):
        async def flow():
            speech_input = FakeSpeechInput()
            listener, _, changes = make_listener(speech_input)
            listener.start()
            speech_input.fail("not-allowed")
            await asyncio.sleep(0.05)
            return listener, speech_input, changes

        listener, speech_input, changes = asyncio.run(flow())
        assert not listener.is_active
        assert speech_input.starts == 1
        assert changes[-1] is False

    def test_start_deferred_while_speaking(self):
        async def flow():
            speech_input, speech_output = FakeSpeechInput(), FakeSpeechOutput()
            listener, _, _ = make_listener(speech_input, speech_output)
            speech_output.speaking = True
            listener.start()
            deferred = speech_input.starts
            speech_output.speaking = False
            await asyncio.sleep(0.05)
            return deferred, speech_input.starts

        deferred, starts = asyncio.run(flow())
        assert deferred == 0
        assert starts == 1

    def test_start_failure_retries(self):
        async def flow():
            speech_input = FakeSpeechInput(fail_start=True)
            listener, _, _ = make_listener(speech_input)
            listener.start()
            speech_input.fail_start = False
            await asyncio.sleep(0.05)
            return listener

        assert asyncio.run(flow()).is_running

    def test_stop_prevents_restart(self):
        async def flow():
            speech_input = FakeSpeechInput()
            listener, _, _ = make_listener(speech_input)
            listener.start()
            on_end = speech_input.callbacks[1]
            listener.stop()
            on_end()
            await asyncio.sleep(0.05)
            return listener, speech_input

        listener, speech_input = asyncio.run(flow())
        assert speech_input.starts == 1
        assert not listener.is_active

    def test_pause_and_resume(self):
        async def flow():
            speech_input = FakeSpeechInput()
            listener, _, _ = make_listener(speech_input)
            listener.start()
            listener.pause()
            paused_running = listener.is_running
            listener.resume()
            await asyncio.sleep(0.05)
            return paused_running, listener, speech_input

        paused_running, listener, speech_input = asyncio.run(flow())
        assert not paused_running
        assert speech_input.starts == 2
        assert listener.is_running

    def test_unsupported_input(self):
        async def flow():
            speech_input = FakeSpeechInput(supported=False)
            listener, _, changes = make_listener(speech_input)
            listener.start()
            return listener, speech_input, changes

        listener, speech_input, changes = asyncio.run(flow())
        assert speech_input.starts == 0
        assert not listener.is_active
        assert changes == [False]


# ============================================================================
# VOICE SESSION
# ============================================================================

class TestVoiceSession:

    def run_session(self, transcript, handle_command):
        async def flow():
            speech_input, speech_output = FakeSpeechInput(), FakeSpeechOutput()
            session = VoiceSession(
                speech_input, speech_output, handle_command,
                choose=lambda options: options[-1], **FAST
            )
            session.start()
            speech_input.hear(transcript)
            await session.wait_idle()
            await asyncio.sleep(0.05)
            return session, speech_input, speech_output

        return asyncio.run(flow())

    def test_command_is_answered_and_listening_resumes(self):
        commands = []

        async def handle(text):
            commands.append(text)
            return "It's noon."

        session, speech_input, speech_output = self.run_session("Laila what time is it", handle)
        assert commands == ["what time is it"]
        assert speech_output.spoken == ["It's noon."]
        assert speech_input.starts == 2
        assert session.listener.is_running

    def test_bare_wake_word_gets_a_greeting(self):
        async def handle(text):
            raise AssertionError("no command expected")

        _, _, speech_output = self.run_session("Laila", handle)
        assert speech_output.spoken == [GREETINGS[-1]]

    def test_failed_command_still_resumes(self):
        async def handle(text):
            raise RuntimeError("model down")

        session, speech_input, speech_output = self.run_session("Laila open mail", handle)
        assert speech_output.spoken == []
        assert speech_input.starts == 2
