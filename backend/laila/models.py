"""Data models"""
from datetime import datetime, timezone
from typing import List, Literal, Optional
from pydantic import BaseModel, Field

CommandType = Literal["open_app", "file_op", "terminal", "system_info", "play_youtube", "send_whatsapp"]
Risk = Literal["low", "medium", "high"]
Priority = Literal["low", "medium", "high"]
TaskAction = Literal["add", "complete", "delete", "list"]
Role = Literal["user", "assistant"]

SHELL_COMMAND_TYPES = ("open_app", "file_op", "terminal", "system_info")

class ParsedCommand(BaseModel):
    """System command requested by the model"""
    type: CommandType
    command: str
    description: str
    risk: Risk

class TaskDirective(BaseModel):
    """Task mutation requested by the model"""
    action: TaskAction
    title: Optional[str] = None
    priority: Priority = "medium"
    due_date: Optional[str] = None

class ParsedReply(BaseModel):
    """Model reply with its inline tags extracted"""
    text: str
    command: Optional[ParsedCommand] = None
    task: Optional[TaskDirective] = None

class Task(BaseModel):
    """To-do item"""
    id: str
    title: str
    completed: bool = False
    priority: Priority = "medium"
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    due_date: Optional[str] = None

class ChatMessage(BaseModel):
    role: Role
    content: str

class ChatSession(BaseModel):
    """Chat transcript"""
    id: str
    title: str
    messages: List[ChatMessage] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

class SessionSummary(BaseModel):
    id: str
    title: str
    created_at: datetime
    updated_at: datetime

class ExecutionResult(BaseModel):
    """Outcome at a side-effect boundary"""
    success: bool
    output: str
    refused: bool = False

class YouTubeLookup(BaseModel):
    success: bool
    url: str
    video_id: Optional[str] = None

class DispatchOutcome(BaseModel):
    """User-facing result of running a command"""
    success: bool
    message: str
    spoken: str

class PendingPrompt(BaseModel):
    """Authorization prompt the UI must show"""
    command: ParsedCommand
    step: Literal["confirm", "reconfirm", "password"]
    options: List[str]
    message: str
    error: Optional[str] = None

class Notification(BaseModel):
    kind: Literal["info", "success", "warning", "error"] = "info"
    message: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

class AssistantTurn(BaseModel):
    """Everything the UI needs to render one assistant turn"""
    session_id: str
    reply: str
    spoken: str
    pending: Optional[PendingPrompt] = None
    show_tasks: bool = False
    notifications: List[Notification] = Field(default_factory=list)

class ChatRequest(BaseModel):
    session_id: Optional[str] = None
    message: str = ""

class AuthorizationRequest(BaseModel):
    session_id: str
    action: Literal["deny", "allow_once", "always_allow", "confirm", "cancel", "submit_password"]
    password: Optional[str] = None

class SystemCommandRequest(BaseModel):
    command: Optional[str] = None
    type: str = "terminal"

class WhatsAppRequest(BaseModel):
    contact: Optional[str] = None
    message: Optional[str] = None

class YouTubeRequest(BaseModel):
    query: Optional[str] = None

class TTSRequest(BaseModel):
    text: Optional[str] = None
    voice: Optional[str] = None

class SessionCreateRequest(BaseModel):
    id: Optional[str] = None
    title: Optional[str] = None

class MessagesUpdateRequest(BaseModel):
    messages: Optional[List[ChatMessage]] = None

class RenameRequest(BaseModel):
    title: Optional[str] = None

class TaskCreateRequest(BaseModel):
    title: Optional[str] = None
    priority: Priority = "medium"
    due_date: Optional[str] = None

class PreferencesRequest(BaseModel):
    theme: Optional[Literal["dark", "light"]] = None
    onboarding_seen: Optional[bool] = None
    active_session_id: Optional[str] = None
