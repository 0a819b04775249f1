"""Unit tests for the error hierarchy and output error mapping."""

import pytest

from agentloop.core.domain.errors import (
    AgentError,
    ConfigError,
    DuplicateToolName,
    ModelApiError,
    OutputError,
    OutputErrorKind,
    PolicyDenied,
    ToolExecutionError,
    ToolNotFound,
)


class TestOutputErrorMapping:
    """Exceptions are mapped onto the categories a consumer sees."""

    @pytest.mark.parametrize(
        "exc,kind",
        [
            (ModelApiError("denied", status_code=401), OutputErrorKind.AUTHENTICATION),
            (ModelApiError("offline", error_type="APIConnectionError"), OutputErrorKind.NETWORK),
            (ModelApiError("bad request", status_code=400), OutputErrorKind.MODEL),
            (DuplicateToolName("bash", "builtin", "custom"), OutputErrorKind.CONFIGURATION),
            (PolicyDenied("bash", "read-only"), OutputErrorKind.TOOL),
            (RuntimeError(), OutputErrorKind.UNKNOWN),
        ],
    )
    def test_from_exception(self, exc, kind):
        assert OutputError.from_exception(exc).kind == kind

    def test_display_text(self):
        assert str(OutputError.interrupted()) == "Agent was interrupted"
        assert str(OutputError(OutputErrorKind.TURN_LIMIT_EXCEEDED)) == "Turn limit exceeded"
        assert str(OutputError(OutputErrorKind.MODEL, "boom")) == "Model error: boom"
        assert OutputError.from_exception(RuntimeError()).message == "RuntimeError"


class TestHierarchy:
    def test_everything_is_an_agent_error(self):
        assert issubclass(DuplicateToolName, ConfigError)
        assert issubclass(PolicyDenied, ToolExecutionError)
        assert issubclass(ToolNotFound, AgentError)

    def test_tool_not_found_message(self):
        error = ToolNotFound("nope")
        assert str(error) == "Tool not found: nope"
        assert isinstance(error, KeyError)

    def test_policy_denied_keeps_reason(self):
        error = PolicyDenied("bash", "read-only")
        assert error.reason == "read-only"
        assert "denied by policy" in str(error)
