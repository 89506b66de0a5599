"""Tests for routing authorized commands to executors."""

import asyncio

from laila.dispatcher import MISSING_CONTACT, YOUTUBE_FAILED, CommandDispatcher, speakable
from laila.llm import ModelProxyError
from laila.tools import YouTubeSearchError

from conftest import FakeModel, FakeShell, FakeWhatsApp, FakeYouTube, make_command


def build(model=None, shell=None, whatsapp=None, youtube=None):
    return CommandDispatcher(
        model or FakeModel(),
        shell=shell or FakeShell(),
        whatsapp=whatsapp or FakeWhatsApp(),
        youtube=youtube or FakeYouTube(),
        open_command="open",
    )


class TestYouTube:

    def test_opens_first_video(self, dispatcher, shell, youtube):
        outcome = asyncio.run(dispatcher.dispatch(make_command("play_youtube", "lofi beats", "Play lofi")))
        assert outcome.success
        assert outcome.message == 'Playing "lofi beats" on YouTube.'
        assert youtube.queries == ["lofi beats"]
        assert shell.commands == [('open "https://www.youtube.com/watch?v=dQw4w9WgXcQ"', "open_app")]

    def test_lookup_failure(self):
        shell = FakeShell()
        dispatcher = build(shell=shell, youtube=FakeYouTube(error=YouTubeSearchError("down")))
        outcome = asyncio.run(dispatcher.dispatch(make_command("play_youtube", "x")))
        assert not outcome.success
        assert outcome.message == YOUTUBE_FAILED
        assert shell.commands == []

    def test_open_failure(self):
        dispatcher = build(shell=FakeShell(output="no browser", success=False))
        outcome = asyncio.run(dispatcher.dispatch(make_command("play_youtube", "x")))
        assert outcome.message == YOUTUBE_FAILED


class TestWhatsApp:

    def test_splits_contact_and_message(self, dispatcher, whatsapp):
        outcome = asyncio.run(dispatcher.dispatch(make_command("send_whatsapp", "Ahad::see you::soon")))
        assert outcome.success
        assert whatsapp.calls == [("Ahad", "see you::soon")]

    def test_contact_only(self, dispatcher, whatsapp):
        asyncio.run(dispatcher.dispatch(make_command("send_whatsapp", "Zahid")))
        assert whatsapp.calls == [("Zahid", "")]

    def test_missing_contact(self, dispatcher, whatsapp):
        outcome = asyncio.run(dispatcher.dispatch(make_command("send_whatsapp", "  ::hi")))
        assert not outcome.success
        assert outcome.message == MISSING_CONTACT
        assert whatsapp.calls == []


class TestShellCommands:

    def test_default_output_is_not_shown(self, dispatcher, shell):
        outcome = asyncio.run(dispatcher.dispatch(make_command("open_app", "open -a Safari", "Open Safari.")))
        assert shell.commands == [("open -a Safari", "open_app")]
        assert outcome.message == "Done! Open Safari."
        assert outcome.spoken == "Done. Open Safari."

    def test_output_is_fenced(self):
        dispatcher = build(shell=FakeShell(output="a.txt\nb.txt"))
        outcome = asyncio.run(dispatcher.dispatch(make_command("terminal", "ls", "List files")))
        assert outcome.message == "Done! List files.\n```\na.txt\nb.txt\n```"
        assert outcome.spoken == "Done. a.txt b.txt"

    def test_failure_passes_output_through(self):
        dispatcher = build(shell=FakeShell(output="Command failed: nope", success=False))
        outcome = asyncio.run(dispatcher.dispatch(make_command("terminal", "ls /nope")))
        assert not outcome.success
        assert outcome.message == "Command failed: nope"

    def test_refused(self, dispatcher):
        outcome = asyncio.run(dispatcher.dispatch(make_command("terminal", "sudo rm -rf /")))
        assert not outcome.success
        assert "blocked" in outcome.message


class TestSystemInfo:

    def test_humanized(self):
        model = FakeModel(humanized="Your battery is at 80%. [COMMAND: terminal | pmset | x]")
        dispatcher = build(model=model, shell=FakeShell(output="80%; charging"))
        outcome = asyncio.run(dispatcher.dispatch(make_command("system_info", "pmset -g batt", "Battery")))
        assert outcome.message == "Your battery is at 80%."
        assert model.humanize_calls == [("Battery", "80%; charging")]

    def test_raw_fallback_when_model_fails(self):
        model = FakeModel(humanized=ModelProxyError("network"))
        dispatcher = build(model=model, shell=FakeShell(output="x" * 300))
        outcome = asyncio.run(dispatcher.dispatch(make_command("system_info", "uptime")))
        assert outcome.success
        assert outcome.message.startswith("Here's what I found:\n```\n")
        assert outcome.spoken == "x" * 200 + "..."


class TestSpeakable:

    def test_strips_code_and_markdown(self):
        assert speakable("**Done!** Here:\n```\nls\n```\n# ok") == "Done! Here: ok"

    def test_limit(self):
        assert speakable("abcdef", 3) == "abc..."
