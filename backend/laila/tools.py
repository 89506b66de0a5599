"""Tool execution layer"""
import asyncio
import logging
import re
from typing import List, Optional, Tuple
from urllib.parse import quote
import httpx
from laila.config import settings
from laila.models import ExecutionResult, YouTubeLookup

logger = logging.getLogger(__name__)

# Commands that are never allowed, whatever their risk tier or standing permission
BLOCKED_PATTERNS = [
    re.compile(r"rm\s+-rf\s+/"),       # recursive delete from root
    re.compile(r"mkfs"),               # format disk
    re.compile(r"dd\s+if="),           # raw disk copy
    re.compile(r">\s*/dev/"),          # write to device
    re.compile(r"sudo\s+rm"),          # privileged delete
    re.compile(r"shutdown"),
    re.compile(r"reboot"),
    re.compile(r"launchctl\s+unload"), # unload system services
]

BLOCKED_MESSAGE = "This command has been blocked for safety. It could damage your system."
NOT_FOUND_MESSAGE = "Command or application not found."
OUTPUT_LIMIT_MESSAGE = "Command produced too much output."
ERROR_CHAR_LIMIT = 500
ACCESSIBILITY_MARKERS = ("not allowed assistive access", "System Events")
ACCESSIBILITY_MESSAGE = (
    "I need Accessibility permission to control WhatsApp. Please go to System Settings > "
    "Privacy & Security > Accessibility and add your terminal app."
)

CALL_MARKER = "__CALL__"
VIDEO_CALL_MARKER = "__VIDEO_CALL__"

def check_command(command: str) -> Optional[str]:
    """Return the denylist pattern a command matches, if any"""
    for pattern in BLOCKED_PATTERNS:
        if pattern.search(command):
            return pattern.pattern
    return None

def default_output(command_type: str) -> str:
    return f"Command executed successfully: {command_type}"

def _cap(text: str, limit: int = ERROR_CHAR_LIMIT) -> str:
    text = text.strip()
    return text if len(text) <= limit else text[:limit] + "..."

class OutputLimitExceeded(Exception):
    pass

class ShellExecutor:
    """Run command lines through a restricted shell"""

    def __init__(
        self,
        shell: Optional[str] = None,
        timeout: Optional[float] = None,
        max_buffer: Optional[int] = None,
        output_limit: Optional[int] = None,
    ):
        self.shell = shell or settings.shell_path
        self.timeout = timeout or settings.shell_timeout_seconds
        self.max_buffer = max_buffer or settings.shell_max_buffer_bytes
        self.output_limit = output_limit or settings.output_char_limit

    async def _read_capped(self, stream: asyncio.StreamReader) -> bytes:
        chunks: List[bytes] = []
        total = 0
        while True:
            chunk = await stream.read(65536)
            if not chunk:
                return b"".join(chunks)
            total += len(chunk)
            if total > self.max_buffer:
                raise OutputLimitExceeded()
            chunks.append(chunk)

    async def _collect(self, proc: asyncio.subprocess.Process) -> Tuple[bytes, bytes]:
        stdout, stderr = await asyncio.gather(
            self._read_capped(proc.stdout), self._read_capped(proc.stderr)
        )
        await proc.wait()
        return stdout, stderr

    async def _terminate(self, proc: asyncio.subprocess.Process):
        if proc.returncode is None:
            proc.kill()
            await proc.wait()

    async def run(self, command: str, command_type: str = "terminal") -> ExecutionResult:
        """Execute a command line and return a displayable result"""
        blocked = check_command(command)
        if blocked:
            logger.warning("Refused %s command matching %r", command_type, blocked)
            return ExecutionResult(success=False, output=BLOCKED_MESSAGE, refused=True)

        logger.info("Running %s command: %s", command_type, command)
        try:
            proc = await asyncio.create_subprocess_shell(
                command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                executable=self.shell,
            )
        except FileNotFoundError:
            return ExecutionResult(success=False, output=NOT_FOUND_MESSAGE)
        except OSError as e:
            return ExecutionResult(success=False, output=_cap(f"Command failed: {e}"))

        try:
            stdout, stderr = await asyncio.wait_for(self._collect(proc), timeout=self.timeout)
        except asyncio.TimeoutError:
            await self._terminate(proc)
            logger.warning("%s command timed out after %ss", command_type, self.timeout)
            return ExecutionResult(
                success=False,
                output=f"Command timed out (took longer than {self.timeout:g} seconds)."
            )
        except OutputLimitExceeded:
            await self._terminate(proc)
            return ExecutionResult(success=False, output=OUTPUT_LIMIT_MESSAGE)

        out = stdout.decode("utf-8", errors="replace").strip()
        err = stderr.decode("utf-8", errors="replace").strip()

        if proc.returncode == 127:
            return ExecutionResult(success=False, output=NOT_FOUND_MESSAGE)
        if proc.returncode != 0:
            return ExecutionResult(success=False, output=_cap(f"Command failed: {err or out or command}"))

        output = out or err or default_output(command_type)
        return ExecutionResult(success=True, output=output[:self.output_limit])

def escape_applescript(text: str) -> str:
    """Escape text for an AppleScript string literal"""
    return text.replace("\\", "\\\\").replace('"', '\\"')

def wrap_osascript(script: str) -> str:
    """Build the shell command line running script through osascript"""
    return "osascript -e '" + script.replace("'", "'\\''") + "'"

def _search_contact_script(safe_contact: str) -> str:
    return f'''
    tell application "WhatsApp" to activate
    delay 2

    tell application "System Events"
      tell process "WhatsApp"
        -- close any open panels
        key code 53
        delay 0.5

        set searchClicked to false

        -- search field by placeholder
        try
          repeat with aField in (every text field of window 1)
            set pVal to ""
            try
              set pVal to value of attribute "AXPlaceholderValue" of aField
            end try
            if pVal contains "Search" or pVal contains "search" then
              click aField
              set searchClicked to true
              exit repeat
            end if
          end repeat
        end try

        -- search field nested in groups
        if not searchClicked then
          try
            repeat with aGroup in (every group of window 1)
              try
                repeat with gField in (every text field of aGroup)
                  set pVal2 to ""
                  try
                    set pVal2 to value of attribute "AXPlaceholderValue" of gField
                  end try
                  if pVal2 contains "Search" or pVal2 contains "search" then
                    click gField
                    set searchClicked to true
                    exit repeat
                  end if
                end repeat
              end try
              if searchClicked then exit repeat
            end repeat
          end try
        end if

        -- keyboard shortcut fallback
        if not searchClicked then
          keystroke "f" using command down
          delay 0.5
        end if

        delay 1

        keystroke "a" using command down
        delay 0.2
        set the clipboard to "{safe_contact}"
        keystroke "v" using command down
        delay 3

        -- first result
        key code 36
        delay 1
        key code 125
        delay 0.3
        key code 36
        delay 2
'''

def _message_script(safe_message: str) -> str:
    if not safe_message:
        return '''
      end tell
    end tell
'''
    return f'''
        try
          set msgFields to every text field of window 1
          if (count of msgFields) > 1 then
            click item (count of msgFields) of msgFields
            delay 0.3
          end if
        end try

        set the clipboard to "{safe_message}"
        keystroke "v" using command down
        delay 0.5
        key code 36
        delay 0.5
      end tell
    end tell
'''

def _call_script(video: bool) -> str:
    lower, upper = ("video", "Video") if video else ("call", "Call")
    alt_lower, alt_upper = ("camera", "Camera") if video else ("phone", "Phone")
    offset = 55 if video else 90
    matches = (
        f'(combined contains "{lower}" or combined contains "{upper}" '
        f'or combined contains "{alt_lower}" or combined contains "{alt_upper}")'
    )
    return f'''
        set winPos to position of window 1
        set winSize to size of window 1
        set winX to item 1 of winPos
        set winY to item 2 of winPos
        set winW to item 1 of winSize

        set callClicked to false

        -- call button among window elements and their children
        try
          repeat with elem in (every UI element of window 1)
            if callClicked then exit repeat
            set candidates to {{elem}}
            try
              set candidates to candidates & (every UI element of elem)
            end try
            repeat with candidate in candidates
              try
                if role of candidate is "AXButton" then
                  set combined to ""
                  try
                    set combined to (description of candidate) & " "
                  end try
                  try
                    set combined to combined & (title of candidate)
                  end try
                  if {matches} then
                    click candidate
                    set callClicked to true
                    exit repeat
                  end if
                end if
              end try
            end repeat
          end repeat
        end try

        -- position fallback: call buttons sit at the top right of the chat header
        if not callClicked then
          click at {{winX + winW - {offset}, winY + 38}}
          delay 0.5
        end if

        delay 1
      end tell
    end tell
'''

def build_whatsapp_script(contact: str, message: Optional[str] = None) -> str:
    """AppleScript that opens a chat and optionally sends a message or starts a call"""
    safe_contact = escape_applescript(contact)
    if message in (CALL_MARKER, VIDEO_CALL_MARKER):
        return _search_contact_script(safe_contact) + _call_script(message == VIDEO_CALL_MARKER)
    safe_message = escape_applescript(message) if message else ""
    return _search_contact_script(safe_contact) + _message_script(safe_message)

class WhatsAppAutomation:
    """Drive the WhatsApp desktop app through System Events"""

    def __init__(self, shell: Optional[str] = None, timeout: Optional[float] = None):
        self.shell = shell or settings.shell_path
        self.timeout = timeout or settings.automation_timeout_seconds

    async def _run_script(self, script: str) -> Tuple[int, str]:
        proc = await asyncio.create_subprocess_shell(
            wrap_osascript(script),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            executable=self.shell,
        )
        try:
            _, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise
        return proc.returncode, stderr.decode("utf-8", errors="replace")

    async def run(self, contact: str, message: Optional[str] = None) -> ExecutionResult:
        contact = contact.strip()
        message = (message or "").strip() or None
        script = build_whatsapp_script(contact, message)

        logger.info("Running WhatsApp automation for %s", contact)
        try:
            returncode, error = await self._run_script(script)
        except asyncio.TimeoutError:
            error, returncode = f"timed out after {self.timeout:g} seconds", -1
        except OSError as e:
            error, returncode = str(e), -1

        if returncode != 0:
            if any(marker in error for marker in ACCESSIBILITY_MARKERS):
                return ExecutionResult(success=False, output=ACCESSIBILITY_MESSAGE)
            return ExecutionResult(
                success=False, output=_cap(f"Couldn't complete the WhatsApp action: {error}")
            )

        if message == CALL_MARKER:
            output = f"Calling {contact} on WhatsApp..."
        elif message == VIDEO_CALL_MARKER:
            output = f"Starting video call with {contact} on WhatsApp..."
        elif message:
            output = f'Sent "{message}" to {contact} on WhatsApp'
        else:
            output = f"Opened chat with {contact} on WhatsApp"
        return ExecutionResult(success=True, output=output)

class YouTubeSearchError(Exception):
    pass

VIDEO_ID_PATTERN = re.compile(r'"videoId":"([a-zA-Z0-9_-]{11})"')
USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

class YouTubeSearch:
    """Resolve a search query to the first video on the results page"""

    def __init__(self, timeout: Optional[float] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timeout = timeout or settings.youtube_timeout_seconds
        self.transport = transport

    async def lookup(self, query: str) -> YouTubeLookup:
        search_url = f"https://www.youtube.com/results?search_query={quote(query, safe='')}"
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                headers={"User-Agent": USER_AGENT},
                transport=self.transport,
            ) as client:
                response = await client.get(search_url)
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise YouTubeSearchError(f"Failed to search YouTube: {e}") from e

        match = VIDEO_ID_PATTERN.search(response.text)
        if not match:
            return YouTubeLookup(success=False, url=search_url)

        video_id = match.group(1)
        return YouTubeLookup(
            success=True,
            url=f"https://www.youtube.com/watch?v={video_id}",
            video_id=video_id,
        )
