"""Browser automation surface package."""

from .playwright_surface import PlaywrightSurface, normalize_profile_name
from .surface import LOAD_STATES, AutomationSurface, ExtendedAutomationSurface, require_operation

__all__ = [
    "AutomationSurface",
    "ExtendedAutomationSurface",
    "LOAD_STATES",
    "PlaywrightSurface",
    "normalize_profile_name",
    "require_operation",
]
