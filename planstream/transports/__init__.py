"""Transport implementations for planstream."""

from pathlib import Path

from planstream.transports.base import ProposalRequest, RequestMetadata, Transport
from planstream.transports.command import CommandTransport
from planstream.transports.logging import LoggingTransport

__all__ = [
    "CommandTransport",
    "LoggingTransport",
    "ProposalRequest",
    "RequestMetadata",
    "Transport",
    "get_transport",
]


def get_transport(
    server_cmd: str,
    cwd: Path | None = None,
    log_path: Path | None = None,
) -> Transport:
    """Get the transport for the configured server command."""
    transport: Transport = CommandTransport(server_cmd, cwd=cwd)
    if log_path is not None:
        transport = LoggingTransport(transport, log_path)
    return transport
