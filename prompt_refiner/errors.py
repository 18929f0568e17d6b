from __future__ import annotations


class RefinementValidationError(ValueError):
    """Raised when a refinement request is malformed. Never absorbed."""


class JSONExtractionError(ValueError):
    pass


class CLIInvocationError(RuntimeError):
    """Base for failures of the external AI command-line process."""

    kind = "invocation"


class SpawnError(CLIInvocationError):
    kind = "spawn"


class NonZeroExitError(CLIInvocationError):
    kind = "exit"

    def __init__(self, command: str, code: int, stderr: str) -> None:
        super().__init__(f"{command} CLI exited with code {code}: {stderr.strip()}")
        self.code = code
        self.stderr = stderr


class InvocationTimeoutError(CLIInvocationError):
    kind = "timeout"

    def __init__(self, command: str, timeout_ms: int) -> None:
        super().__init__(f"{command} CLI timed out after {timeout_ms}ms")
        self.timeout_ms = timeout_ms
