class BitcoinTuiError(Exception):
    """Base class for every error raised by bitcoin-tui."""


class ConfigError(BitcoinTuiError):
    pass


class RpcError(BitcoinTuiError):
    """Any failure of a single RPC round trip."""


class TransportError(RpcError):
    """Connection, timeout or unexpected HTTP status."""


class AuthError(RpcError):
    pass


class ProtocolError(RpcError):
    """Malformed JSON-RPC envelope or an RPC-level error member."""

    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


class ParseError(RpcError):
    pass


class LookupNotFound(BitcoinTuiError):
    """Every lookup strategy failed; the message is the last failure's."""
