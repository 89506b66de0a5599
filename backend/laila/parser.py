"""Response tag grammar - extracts command and task tags from model replies"""
import re
from typing import Optional
from laila.models import ParsedCommand, ParsedReply, TaskDirective
from laila.risk import classify_risk

# [COMMAND: <type> | <command> | <description>]
COMMAND_PATTERN = re.compile(
    r'\[COMMAND:\s*(open_app|file_op|terminal|system_info|play_youtube|send_whatsapp)'
    r'\s*\|\s*(.+?)\s*\|\s*(.+?)\s*\]'
)

# [TASK: <action> | <title>? | <priority>? | <due date>?]
TASK_PATTERN = re.compile(
    r'\[TASK:\s*(add|complete|delete|list)'
    r'\s*(?:\|\s*(.+?))?'
    r'\s*(?:\|\s*(low|medium|high))?'
    r'\s*(?:\|\s*(.+?))?\s*\]'
)

# Looser than the extraction patterns so that malformed or leaked
# fragments never reach the visible reply
STRIP_PATTERN = re.compile(r'\[(?:COMMAND|TASK):.*?\]')

def _optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None

def parse_command(text: str) -> Optional[ParsedCommand]:
    """Return the first command tag in text, or None"""
    match = COMMAND_PATTERN.search(text or "")
    if not match:
        return None

    command_type = match.group(1)
    command = match.group(2).strip()
    return ParsedCommand(
        type=command_type,
        command=command,
        description=match.group(3).strip(),
        risk=classify_risk(command_type, command),
    )

def parse_task(text: str) -> Optional[TaskDirective]:
    """Return the first task tag in text, or None"""
    match = TASK_PATTERN.search(text or "")
    if not match:
        return None

    return TaskDirective(
        action=match.group(1),
        title=_optional(match.group(2)),
        priority=match.group(3) or "medium",
        due_date=_optional(match.group(4)),
    )

def strip_tags(text: str) -> str:
    """Remove every command and task tag, then trim"""
    cleaned = text or ""
    # Removing a nested tag can splice its neighbours into a new one
    while True:
        stripped = STRIP_PATTERN.sub("", cleaned)
        if stripped == cleaned:
            return cleaned.strip()
        cleaned = stripped

def parse(reply: str) -> ParsedReply:
    """Main parser interface"""
    return ParsedReply(
        text=strip_tags(reply),
        command=parse_command(reply),
        task=parse_task(reply),
    )
