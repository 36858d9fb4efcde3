"""
Exceptions raised by wgdisco.

Everything derives from WgDiscoError so the CLI can turn any fatal
condition into a single readable message.
"""

from typing import Optional


class WgDiscoError(Exception):
    """Base exception for wgdisco errors."""

    def __init__(self, message: str, code: str = "ERROR"):
        super().__init__(message)
        self.code = code


class ParseError(WgDiscoError):
    """Raised when a WireGuard config (or one of its values) can't be parsed."""

    def __init__(self, message: str, code: str = "UNEXPECTED_TOKEN", line: Optional[int] = None):
        if line is not None:
            message = f"line {line}: {message}"
        super().__init__(message, code=code)
        self.line = line


class WgCommandError(WgDiscoError):
    """Raised when the control backend fails to run a command."""

    def __init__(self, args, returncode: Optional[int], stderr: str = ""):
        detail = stderr.strip() or "no output"
        super().__init__(
            f"wg command failed ({returncode}): {' '.join(args)}: {detail}",
            code="WG_COMMAND",
        )
        self.returncode = returncode
        self.stderr = stderr


class DiscoveryError(WgDiscoError):
    """Raised when the external endpoint can't be discovered."""

    def __init__(self, message: str):
        super().__init__(message, code="DISCOVERY")


class SignalingError(WgDiscoError):
    """Raised (or yielded as a stream item) on rendezvous transport failures."""

    def __init__(self, message: str):
        super().__init__(message, code="SIGNALING")


class DecodeError(WgDiscoError):
    """Raised when a wire payload is rejected."""

    def __init__(self, message: str):
        super().__init__(message, code="DECODE")
