"""Exceptions raised by the host."""


class HostError(Exception):
    """Base class for host errors."""


class StartupError(HostError):
    """The plugin did not complete the startup handshake."""


class PluginExited(HostError):
    """The plugin process exited while it was still needed."""

    def __init__(self, returncode: int) -> None:
        super().__init__(f"plugin exited with code {returncode}")
        self.returncode = returncode


class TransportError(HostError):
    """An RPC call failed, timed out or returned an error."""


class CheckFailed(HostError):
    """A required conformance check did not hold."""
