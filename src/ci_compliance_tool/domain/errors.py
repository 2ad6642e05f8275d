"""Exception types raised across the compliance tool."""


class PolicyParseError(ValueError):
    """Policy text could not be parsed; the policy was not registered."""

    def __init__(self, policy_id: str, reason: str, *, position: int | None = None) -> None:
        location = f" at offset {position}" if position is not None else ""
        super().__init__(f"parsing policy {policy_id}{location}: {reason}")
        self.policy_id = policy_id
        self.reason = reason
        self.position = position


class ProfileNotFoundError(KeyError):
    def __init__(self, name: str) -> None:
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"profile not found: {self.name}"


class WorkflowParseError(ValueError):
    """Workflow YAML content could not be interpreted."""


class CollectorError(RuntimeError):
    """A source collector request failed."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class ScanError(RuntimeError):
    """A failure that prevents the scan as a whole from running."""
