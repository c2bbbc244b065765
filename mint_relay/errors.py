# mint_relay/errors.py


class MintRelayError(Exception):
    """Base class for failures talking to an external service."""


class PinningError(MintRelayError):
    """Pinata rejected or failed an upload."""

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class PaymentGatewayError(MintRelayError):
    """Xsolla did not return a payment token."""


class MintError(MintRelayError):
    """The safeMint transaction could not be sent or was reverted."""
