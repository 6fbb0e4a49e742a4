"""Error taxonomy for trajectory execution."""
from __future__ import annotations


class AmwError(Exception):
    """Base class for every error raised by AMW components."""


class ValidationError(AmwError):
    """Malformed input detected before dispatch. Always step-fatal."""


class AutomationSurfaceError(AmwError):
    """The underlying browser action failed."""


class GuardFailure(AmwError):
    """A step post-condition did not hold."""

    def __init__(self, step_id: str, guard: dict | None = None) -> None:
        self.step_id = step_id
        self.guard = guard or {}
        super().__init__(f"Guard failed for step {step_id}")


class ContentAssertionError(AmwError):
    """A file or markdown assertion action found unexpected content."""


class TemplateResolutionError(AmwError):
    """A ``{{token}}`` placeholder resolved to nothing."""

    def __init__(self, token: str) -> None:
        self.token = token
        super().__init__(f"Template variable not found: {token}")


class UnsupportedActionError(AmwError):
    """No handler is registered for the step action. Always step-fatal."""

    def __init__(self, action: str) -> None:
        self.action = action
        super().__init__(f"Unsupported action '{action}'. Register it in the action registry.")


STEP_FATAL_ERRORS = (ValidationError, UnsupportedActionError)
