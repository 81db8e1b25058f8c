"""Authenticated SSH channels: one-shot commands and interactive shells."""

from .connector import SSHConnector, classify_connection_error, load_private_key
from .models import CommandResult, ConnectionCheck, RemoteTarget

__all__ = [
    "classify_connection_error",
    "CommandResult",
    "ConnectionCheck",
    "load_private_key",
    "RemoteTarget",
    "SSHConnector",
]
