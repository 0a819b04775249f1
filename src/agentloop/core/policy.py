"""
Policy Gate

Decides for each tool call whether it may run:
- the sandbox policy constrains WHERE a tool may act
- the approval policy constrains WHETHER external confirmation is needed

The sandbox check runs first; a call that the sandbox denies is never sent
for approval. Calls requiring approval are parked in the ApprovalBroker
until the controller approves or denies them.
"""

import asyncio
import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

import structlog

from agentloop.core.domain.config import ApprovalPolicy, SandboxPolicy, SideEffect
from agentloop.core.domain.messages import ToolCall
from agentloop.core.interfaces.tools import ToolProtocol

PATH_ARGUMENTS = ("path", "file_path", "cwd", "directory")
APPROVAL_FLAG = "request_approval"

_MUTATING = frozenset({SideEffect.WRITE, SideEffect.EXECUTE})
_TRUSTED = frozenset({SideEffect.NONE, SideEffect.READ})


class Verdict(str, Enum):
    ALLOW = "allow"
    DENY = "deny"
    REQUIRE_APPROVAL = "require_approval"


@dataclass(frozen=True)
class PolicyDecision:
    """Outcome of authorize(): Allow, Deny(reason) or RequireApproval(token)."""

    verdict: Verdict
    reason: str | None = None
    token: str | None = None

    @classmethod
    def allow(cls) -> "PolicyDecision":
        return cls(Verdict.ALLOW)

    @classmethod
    def deny(cls, reason: str) -> "PolicyDecision":
        return cls(Verdict.DENY, reason=reason)

    @classmethod
    def require_approval(cls) -> "PolicyDecision":
        return cls(Verdict.REQUIRE_APPROVAL, token=uuid.uuid4().hex)


@dataclass(frozen=True)
class ApprovalDecision:
    """Answer delivered for a pending approval token."""

    approved: bool
    reason: str | None = None


class PolicyGate:
    """Stateless authorization of tool calls against sandbox and approval policies."""

    def __init__(self, working_directory: Path):
        self.working_directory = Path(working_directory).resolve()
        self.logger = structlog.get_logger().bind(component="policy_gate")

    def authorize(
        self,
        call: ToolCall,
        tool: ToolProtocol,
        sandbox: SandboxPolicy,
        approval: ApprovalPolicy,
    ) -> PolicyDecision:
        """
        Authorize one tool call.

        Args:
            call: The call requested by the model
            tool: The resolved tool
            sandbox: Active sandbox policy
            approval: Active approval policy

        Returns:
            PolicyDecision with verdict ALLOW, DENY (with reason) or
            REQUIRE_APPROVAL (with a fresh token)
        """
        reason = self._check_sandbox(call, tool, sandbox)
        if reason:
            self.logger.info(
                "tool_call_denied", tool=call.name, call_id=call.id, sandbox=sandbox.value, reason=reason
            )
            return PolicyDecision.deny(reason)

        if self._needs_approval(call, tool, approval):
            decision = PolicyDecision.require_approval()
            self.logger.info(
                "tool_call_needs_approval",
                tool=call.name,
                call_id=call.id,
                policy=approval.value,
                token=decision.token,
            )
            return decision

        return PolicyDecision.allow()

    def _check_sandbox(
        self, call: ToolCall, tool: ToolProtocol, sandbox: SandboxPolicy
    ) -> str | None:
        if sandbox == SandboxPolicy.DANGER_FULL_ACCESS:
            return None
        if tool.side_effect not in _MUTATING:
            return None
        if sandbox == SandboxPolicy.READ_ONLY:
            return f"sandbox is read-only and '{tool.name}' has {tool.side_effect.value} side effects"

        for key in PATH_ARGUMENTS:
            value = call.arguments.get(key)
            if isinstance(value, str) and value and not self._inside_workspace(value):
                return f"'{key}' points outside the working directory: {value}"
        return None

    def _inside_workspace(self, raw_path: str) -> bool:
        path = Path(raw_path).expanduser()
        if not path.is_absolute():
            path = self.working_directory / path
        resolved = path.resolve()
        return resolved == self.working_directory or self.working_directory in resolved.parents

    def _needs_approval(
        self, call: ToolCall, tool: ToolProtocol, approval: ApprovalPolicy
    ) -> bool:
        if approval == ApprovalPolicy.NEVER:
            return False
        if approval == ApprovalPolicy.ALWAYS:
            return True
        if approval == ApprovalPolicy.UNLESS_TRUSTED:
            return tool.side_effect not in _TRUSTED
        # ON_REQUEST
        return bool(tool.requires_approval or call.arguments.get(APPROVAL_FLAG))


class ApprovalBroker:
    """
    Parks calls awaiting an external approval decision.

    The dispatcher awaits the future registered for a token; the controller
    resolves it through approve() / deny(). Every decision is recorded in an
    audit history.
    """

    def __init__(self) -> None:
        self._pending: dict[str, asyncio.Future[ApprovalDecision]] = {}
        self._calls: dict[str, ToolCall] = {}
        self.history: list[dict[str, Any]] = []
        self.logger = structlog.get_logger().bind(component="approval_broker")

    def register(self, token: str, call: ToolCall) -> "asyncio.Future[ApprovalDecision]":
        future: asyncio.Future[ApprovalDecision] = asyncio.get_running_loop().create_future()
        self._pending[token] = future
        self._calls[token] = call
        return future

    def pending_tokens(self) -> list[str]:
        return list(self._pending)

    def resolve(self, token: str, approved: bool, reason: str | None = None) -> bool:
        """
        Deliver a decision for a pending token.

        Returns:
            False if the token is unknown or already decided
        """
        future = self._pending.pop(token, None)
        call = self._calls.pop(token, None)
        if future is None or future.done():
            self.logger.warning("approval_token_unknown", token=token)
            return False
        future.set_result(ApprovalDecision(approved=approved, reason=reason))
        self._record(token, call, "approved" if approved else "denied", reason)
        return True

    def discard(self, token: str, outcome: str) -> None:
        """Forget a token that ended without a decision (timeout or stop)."""
        future = self._pending.pop(token, None)
        call = self._calls.pop(token, None)
        if future is not None and not future.done():
            future.cancel()
            self._record(token, call, outcome, None)

    def _record(self, token: str, call: ToolCall | None, decision: str, reason: str | None) -> None:
        record = {
            "timestamp": datetime.now().isoformat(),
            "token": token,
            "tool": call.name if call else None,
            "call_id": call.id if call else None,
            "decision": decision,
            "reason": reason,
        }
        self.history.append(record)
        self.logger.info("approval_decision", **record)
