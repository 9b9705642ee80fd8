"""
Error taxonomy for the AutoFi agent.

Only ConfigurationError is fatal (raised at startup, before any conversation).
Everything else is converted to a structured result dict by the caller.
"""


class AutoFiError(Exception):
    """Base class for all agent errors."""
    code = "AUTOFI_ERROR"


class InvalidAddress(AutoFiError):
    """Target address is not 0x followed by 64 hex characters."""
    code = "INVALID_ADDRESS"

    def __init__(self, address: str):
        self.address = address
        super().__init__(
            f"Invalid address format: {address}. Must be 0x followed by 64 hex characters."
        )


class InsufficientBalance(AutoFiError):
    """Sender cannot cover fee cap + buffer."""
    code = "INSUFFICIENT_BALANCE"

    def __init__(self, required_micro: int, available_micro: int):
        self.required_micro = required_micro
        self.available_micro = available_micro
        super().__init__(
            f"Insufficient balance. Required: {required_micro / 1_000_000} SUPRA, "
            f"Available: {available_micro / 1_000_000} SUPRA"
        )


class NetworkError(AutoFiError):
    """Could not reach the Supra RPC node."""
    code = "NETWORK_ERROR"


class RpcError(NetworkError):
    """RPC node answered, but with an error or an unusable payload."""
    code = "RPC_ERROR"

    def __init__(self, message: str, status: int = 0):
        self.status = status
        super().__init__(message)


class UnknownOperation(AutoFiError):
    """The language model named a tool outside the fixed set, or sent bad arguments."""
    code = "UNKNOWN_OPERATION"

    def __init__(self, name: str, detail: str = ""):
        self.name = name
        msg = f"Unknown function: {name}"
        if detail:
            msg = f"{msg} ({detail})"
        super().__init__(msg)


class IntentRouterError(AutoFiError):
    """The language model service could not produce a reply."""
    code = "OPENAI_ERROR"


class ConfigurationError(AutoFiError):
    """Missing or malformed operator configuration. Fatal at startup."""
    code = "CONFIGURATION_ERROR"

    def __init__(self, message: str, missing: tuple = ()):
        self.missing = tuple(missing)
        super().__init__(message)
