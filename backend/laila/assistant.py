"""Assistant orchestration - one chat turn from user text to rendered reply"""
import asyncio
import logging
import uuid
from collections import defaultdict
from typing import Dict, List, Optional
from laila.config import settings
from laila.dispatcher import CommandDispatcher, speakable
from laila.gate import DENIED_MESSAGE, AuthorizationGate, Authenticator, GateError, PassphraseAuthenticator
from laila.llm import ModelProxy, ModelProxyError
from laila.models import AssistantTurn, ChatMessage, ChatSession, Notification, PendingPrompt
from laila.parser import parse
from laila.permissions import PermissionStore
from laila.persona import GREETING
from laila.storage import Storage, generate_session_title
from laila.tasks import TaskList

logger = logging.getLogger(__name__)

ACTIVE_SESSION_KEY = "active_session_id"
TASK_VERBS = {"add": "added", "complete": "updated", "delete": "deleted"}

class AssistantBusyError(Exception):
    """A request for this chat session is already in flight"""

class Notifier:
    """Per-session queue of toast notifications"""

    def __init__(self):
        self._queues: Dict[str, List[Notification]] = defaultdict(list)

    def notify(self, session_id: str, message: str, kind: str = "info"):
        self._queues[session_id].append(Notification(kind=kind, message=message))

    def drain(self, session_id: str) -> List[Notification]:
        return self._queues.pop(session_id, [])

class Assistant:
    """Application context shared by the HTTP layer and the voice loop"""

    def __init__(
        self,
        storage: Storage,
        model: Optional[ModelProxy] = None,
        dispatcher: Optional[CommandDispatcher] = None,
        authenticator: Optional[Authenticator] = None,
        notifier: Optional[Notifier] = None,
    ):
        self.storage = storage
        self.permissions = PermissionStore(storage)
        self.tasks = TaskList(storage)
        self.model = model or ModelProxy()
        self.dispatcher = dispatcher or CommandDispatcher(self.model)
        self.authenticator = authenticator or PassphraseAuthenticator(settings.step_up_passphrase)
        self.notifier = notifier or Notifier()
        self._gates: Dict[str, AuthorizationGate] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def gate(self, session_id: str) -> AuthorizationGate:
        if session_id not in self._gates:
            self._gates[session_id] = AuthorizationGate(self.permissions, self.authenticator)
        return self._gates[session_id]

    def pending(self, session_id: str) -> Optional[PendingPrompt]:
        gate = self._gates.get(session_id)
        return gate.prompt() if gate else None

    def _lock(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.setdefault(session_id, asyncio.Lock())
        if lock.locked():
            raise AssistantBusyError("Still working on the previous request")
        return lock

    def forget(self, session_id: str):
        """Drop the gate, lock and queued notifications kept for a session"""
        self._gates.pop(session_id, None)
        self._locks.pop(session_id, None)
        self.notifier.drain(session_id)

    async def delete_session(self, session_id: str):
        await self.storage.delete_session(session_id)
        self.forget(session_id)

    async def clear_sessions(self):
        await self.storage.clear_sessions()
        for session_id in set(self._gates) | set(self._locks):
            self.forget(session_id)

    async def _ensure_session(self, session_id: str, first_message: str) -> ChatSession:
        session = await self.storage.get_session(session_id)
        if session is None:
            session = await self.storage.create_session(session_id, generate_session_title(first_message))
            session.messages = [ChatMessage(role="assistant", content=GREETING)]
            await self.storage.save_setting(ACTIVE_SESSION_KEY, session_id)
        return session

    async def _append_reply(self, session_id: str, reply: str):
        session = await self.storage.get_session(session_id)
        if session is None or not reply:
            return
        messages = list(session.messages) + [ChatMessage(role="assistant", content=reply)]
        await self.storage.replace_messages(session_id, messages)

    def _turn(self, session_id: str, reply: str, spoken: str, **extra) -> AssistantTurn:
        return AssistantTurn(
            session_id=session_id, reply=reply, spoken=spoken,
            notifications=self.notifier.drain(session_id), **extra
        )

    async def handle_message(self, session_id: Optional[str], text: str) -> AssistantTurn:
        """Run one chat turn: model reply, task directive, command authorization"""
        text = (text or "").strip()
        if not text:
            raise ValueError("No message provided")

        session_id = session_id or uuid.uuid4().hex
        async with self._lock(session_id):
            session = await self._ensure_session(session_id, text)
            messages = list(session.messages) + [ChatMessage(role="user", content=text)]

            try:
                raw = await self.model.complete(messages)
            except ModelProxyError as e:
                reply = e.friendly_message
                messages.append(ChatMessage(role="assistant", content=reply))
                await self.storage.replace_messages(session_id, messages)
                self.notifier.notify(session_id, reply, "error")
                return self._turn(session_id, reply, speakable(reply))

            parsed = parse(raw)
            reply_parts = [parsed.text]
            spoken_parts = [speakable(parsed.text)]
            show_tasks = False
            pending = None

            # Tasks only touch local state, so they are never gated
            if parsed.task:
                result = await self.tasks.apply(parsed.task)
                show_tasks = result.show_panel
                if result.summary:
                    reply_parts.append(result.summary)
                    spoken_parts.append(result.summary.split("\n")[0])
                if result.changed:
                    self.notifier.notify(
                        session_id,
                        f"Task {TASK_VERBS[parsed.task.action]}: {parsed.task.title}",
                        "success",
                    )

            if parsed.command:
                outcome = await self.gate(session_id).submit(parsed.command)
                if outcome.status == "dispatch":
                    dispatched = await self.dispatcher.dispatch(outcome.command)
                    reply_parts.append(dispatched.message)
                    spoken_parts.append(dispatched.spoken)
                    if not dispatched.success:
                        self.notifier.notify(session_id, dispatched.spoken, "error")
                else:
                    pending = outcome.prompt

            reply = "\n\n".join(part for part in reply_parts if part)
            if not reply and pending:
                reply = pending.message
            messages.append(ChatMessage(role="assistant", content=reply))
            await self.storage.replace_messages(session_id, messages)

            return self._turn(
                session_id, reply, " ".join(part for part in spoken_parts if part),
                pending=pending, show_tasks=show_tasks,
            )

    async def respond(self, session_id: str, action: str, password: Optional[str] = None) -> AssistantTurn:
        """Apply the user's decision on the pending command"""
        gate = self._gates.get(session_id)
        if gate is None or not gate.is_pending:
            raise GateError("No command is awaiting authorization")

        async with self._lock(session_id):
            outcome = await gate.respond(action, password)

            if outcome.status == "prompt":
                return self._turn(session_id, "", "", pending=outcome.prompt)
            if outcome.status == "cancelled":
                return self._turn(session_id, "", "")

            if outcome.status == "denied":
                reply, spoken = DENIED_MESSAGE, DENIED_MESSAGE
            else:
                dispatched = await self.dispatcher.dispatch(outcome.command)
                reply, spoken = dispatched.message, dispatched.spoken
                self.notifier.notify(
                    session_id, dispatched.spoken, "success" if dispatched.success else "error"
                )

            await self._append_reply(session_id, reply)
            return self._turn(session_id, reply, spoken)

    async def voice_command(self, text: str) -> str:
        """Run a spoken command in the active session and return what to say"""
        session_id = await self.storage.get_setting(ACTIVE_SESSION_KEY)
        turn = await self.handle_message(session_id, text)
        if turn.pending:
            return " ".join(part for part in (turn.spoken, turn.pending.message) if part)
        return turn.spoken
