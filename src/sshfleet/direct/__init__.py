"""Direct account management without the interactive menu."""

from .commands import DirectCommandProvisioner, format_expiry, validate_username

__all__ = [
    "DirectCommandProvisioner",
    "format_expiry",
    "validate_username",
]
