"""Error taxonomy for voxrelay."""

from __future__ import annotations


class VoxRelayError(Exception):
    """Base class for all voxrelay errors."""


class UpstreamProvisionError(VoxRelayError):
    """The assistant control API failed or returned an unusable response.

    Fatal to session creation: the telephony socket is closed and the
    provisioning call is not retried.
    """

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class MalformedFrame(VoxRelayError):
    """A single inbound frame could not be parsed.

    Never fatal: the session logs it, counts it and carries on.
    """


class TransportError(VoxRelayError):
    """A socket errored or was closed by the peer."""


class SignatureMismatch(VoxRelayError):
    """A webhook body did not match its HMAC signature."""
