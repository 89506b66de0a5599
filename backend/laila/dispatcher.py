"""Command dispatcher - routes authorized commands to their executor"""
import logging
import re
from typing import Optional
from laila.config import settings
from laila.llm import ModelProxy, ModelProxyError
from laila.models import DispatchOutcome, ParsedCommand
from laila.parser import strip_tags
from laila.tools import (
    ShellExecutor, WhatsAppAutomation, YouTubeSearch, YouTubeSearchError, default_output
)

logger = logging.getLogger(__name__)

SPOKEN_OUTPUT_LIMIT = 150
SPOKEN_RAW_LIMIT = 200
YOUTUBE_FAILED = "Sorry, I couldn't play that on YouTube. Please try again."
MISSING_CONTACT = "I need a contact name to use WhatsApp."

_FENCE = re.compile(r"```.*?```", re.DOTALL)
_MARKDOWN = re.compile(r"[*_`#>]+")

def speakable(text: str, limit: Optional[int] = None) -> str:
    """Text fit for speech synthesis: no code blocks or markdown, optionally capped"""
    spoken = _FENCE.sub(" ", text)
    spoken = _MARKDOWN.sub("", spoken)
    spoken = re.sub(r"\s+", " ", spoken).strip()
    if limit and len(spoken) > limit:
        spoken = spoken[:limit].rstrip() + "..."
    return spoken

class CommandDispatcher:
    """Execute a command and normalize the outcome for the user"""

    def __init__(
        self,
        model: ModelProxy,
        shell: Optional[ShellExecutor] = None,
        whatsapp: Optional[WhatsAppAutomation] = None,
        youtube: Optional[YouTubeSearch] = None,
        open_command: Optional[str] = None,
    ):
        self.model = model
        self.shell = shell or ShellExecutor()
        self.whatsapp = whatsapp or WhatsAppAutomation()
        self.youtube = youtube or YouTubeSearch()
        self.open_command = open_command or settings.open_command

    async def dispatch(self, command: ParsedCommand) -> DispatchOutcome:
        logger.info("Dispatching %s command: %s", command.type, command.description)
        if command.type == "play_youtube":
            return await self.play_youtube(command)
        elif command.type == "send_whatsapp":
            return await self.send_whatsapp(command)
        else:
            return await self.run_shell(command)

    async def play_youtube(self, command: ParsedCommand) -> DispatchOutcome:
        query = command.command
        try:
            lookup = await self.youtube.lookup(query)
            result = await self.shell.run(f'{self.open_command} "{lookup.url}"', "open_app")
        except YouTubeSearchError as e:
            logger.warning("YouTube lookup failed: %s", e)
            result = None

        if result is None or not result.success:
            return DispatchOutcome(success=False, message=YOUTUBE_FAILED, spoken=YOUTUBE_FAILED)

        return DispatchOutcome(
            success=True,
            message=f'Playing "{query}" on YouTube.',
            spoken=f"Playing {query} on YouTube.",
        )

    async def send_whatsapp(self, command: ParsedCommand) -> DispatchOutcome:
        contact, _, message = command.command.partition("::")
        if not contact.strip():
            return DispatchOutcome(success=False, message=MISSING_CONTACT, spoken=MISSING_CONTACT)

        result = await self.whatsapp.run(contact, message)
        return DispatchOutcome(
            success=result.success,
            message=result.output,
            spoken=speakable(result.output, SPOKEN_OUTPUT_LIMIT),
        )

    async def run_shell(self, command: ParsedCommand) -> DispatchOutcome:
        result = await self.shell.run(command.command, command.type)
        output = result.output
        done = command.description.rstrip(".")

        if not result.success:
            return DispatchOutcome(
                success=False, message=output, spoken=speakable(output, SPOKEN_OUTPUT_LIMIT)
            )

        if command.type == "system_info":
            try:
                answer = strip_tags(await self.model.humanize(command.description, output))
                return DispatchOutcome(success=True, message=answer, spoken=speakable(answer))
            except ModelProxyError as e:
                logger.warning("Could not humanize system info: %s", e.kind)
                return DispatchOutcome(
                    success=True,
                    message=f"Here's what I found:\n```\n{output}\n```",
                    spoken=speakable(output, SPOKEN_RAW_LIMIT),
                )

        if output == default_output(command.type):
            return DispatchOutcome(
                success=True, message=f"Done! {done}.", spoken=f"Done. {done}."
            )

        return DispatchOutcome(
            success=True,
            message=f"Done! {done}.\n```\n{output}\n```",
            spoken=f"Done. {speakable(output, SPOKEN_OUTPUT_LIMIT)}",
        )
