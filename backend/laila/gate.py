"""Command authorization gate.

Tiered consent for commands extracted from model replies:

* types with a standing permission run without a prompt, unless the
  command itself is high risk
* low/medium risk commands need one confirmation, with an optional
  "always allow" grant for the command type
* high risk commands need confirm, reconfirm and the step-up password,
  every time

Only one command is held at a time; submitting a new one replaces it.
"""
import hmac
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Literal, Optional, Protocol
from laila.models import ParsedCommand, PendingPrompt
from laila.permissions import PermissionStore

logger = logging.getLogger(__name__)

# Dedicated executors that never run model-supplied shell text
AUTO_APPROVED_TYPES = ("play_youtube", "send_whatsapp")

TYPE_LABELS = {
    "open_app": "opening apps",
    "file_op": "file operations",
    "terminal": "terminal commands",
    "system_info": "system info",
}

DENIED_MESSAGE = "No problem, I won't run that command. Let me know if you need anything else."
WRONG_PASSWORD_MESSAGE = "Incorrect password. Please try again."

class GateStep(str, Enum):
    IDLE = "idle"
    CONFIRM = "confirm"
    RECONFIRM = "reconfirm"
    PASSWORD = "password"

class GateError(Exception):
    """Action not valid for the current authorization step"""

class Authenticator(Protocol):
    def verify(self, credential: str) -> bool:
        ...

class PassphraseAuthenticator:
    """Verifies the step-up credential against a single shared passphrase"""

    def __init__(self, passphrase: str):
        self._passphrase = passphrase.encode("utf-8")

    def verify(self, credential: str) -> bool:
        return hmac.compare_digest((credential or "").encode("utf-8"), self._passphrase)

@dataclass
class GateOutcome:
    status: Literal["dispatch", "prompt", "denied", "cancelled"]
    command: Optional[ParsedCommand] = None
    prompt: Optional[PendingPrompt] = None

class AuthorizationGate:
    """Single-slot authorization state machine"""

    def __init__(self, permissions: PermissionStore, authenticator: Authenticator):
        self.permissions = permissions
        self.authenticator = authenticator
        self.step = GateStep.IDLE
        self.command: Optional[ParsedCommand] = None

    @property
    def is_pending(self) -> bool:
        return self.step != GateStep.IDLE

    def _reset(self):
        self.step = GateStep.IDLE
        self.command = None

    def _finish(self, status: str) -> GateOutcome:
        command = self.command
        self._reset()
        logger.info("Authorization %s for %s command", status, command.type if command else "?")
        return GateOutcome(status=status, command=command)

    def prompt(self, error: Optional[str] = None) -> Optional[PendingPrompt]:
        """Prompt describing the current step, if any"""
        command = self.command
        if command is None or self.step == GateStep.IDLE:
            return None

        if self.step == GateStep.CONFIRM and command.risk == "high":
            options = ["deny", "confirm"]
            message = (
                f"Laila wants to execute a command on your system: {command.description}. "
                "This command could modify your system."
            )
        elif self.step == GateStep.CONFIRM:
            options = ["deny", "allow_once", "always_allow"]
            label = TYPE_LABELS.get(command.type, command.type)
            message = (
                f"Laila wants to execute a command on your system: {command.description}. "
                f"You can allow it once or always allow {label}."
            )
        elif self.step == GateStep.RECONFIRM:
            options = ["cancel", "confirm"]
            message = "This action may be irreversible and cannot be undone. Are you absolutely sure?"
        else:
            options = ["cancel", "submit_password"]
            message = "Enter the confirmation password to run this command."

        return PendingPrompt(
            command=command, step=self.step.value, options=options,
            message=message, error=error
        )

    async def submit(self, command: ParsedCommand) -> GateOutcome:
        """Receive a freshly parsed command"""
        if self.is_pending:
            logger.info("Replacing pending %s command with %s", self.command.type, command.type)
        self._reset()

        if command.type in AUTO_APPROVED_TYPES:
            return GateOutcome(status="dispatch", command=command)

        # A standing grant never covers a high risk instance of the type
        if command.risk != "high" and await self.permissions.is_allowed(command.type):
            logger.info("Standing permission covers %s command", command.type)
            return GateOutcome(status="dispatch", command=command)

        self.command = command
        self.step = GateStep.CONFIRM
        return GateOutcome(status="prompt", command=command, prompt=self.prompt())

    async def respond(self, action: str, password: Optional[str] = None) -> GateOutcome:
        """Apply a user decision to the pending command"""
        if not self.is_pending:
            raise GateError("No command is awaiting authorization")

        if action == "cancel":
            return self._finish("cancelled")

        high = self.command.risk == "high"

        if self.step == GateStep.CONFIRM:
            if action == "deny":
                return self._finish("denied")
            if high and action == "confirm":
                self.step = GateStep.RECONFIRM
                return GateOutcome(status="prompt", command=self.command, prompt=self.prompt())
            if not high and action == "allow_once":
                return self._finish("dispatch")
            if not high and action == "always_allow":
                await self.permissions.grant(self.command.type)
                return self._finish("dispatch")

        elif self.step == GateStep.RECONFIRM:
            if action == "confirm":
                self.step = GateStep.PASSWORD
                return GateOutcome(status="prompt", command=self.command, prompt=self.prompt())

        elif self.step == GateStep.PASSWORD:
            if action == "submit_password":
                if self.authenticator.verify(password or ""):
                    return self._finish("dispatch")
                logger.warning("Incorrect step-up password for %s command", self.command.type)
                return GateOutcome(
                    status="prompt", command=self.command,
                    prompt=self.prompt(error=WRONG_PASSWORD_MESSAGE)
                )

        raise GateError(f"Action '{action}' is not available at the {self.step.value} step")
