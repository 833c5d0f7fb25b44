"""Error taxonomy for the faucet.

Lower layers raise these; the faucet service converts them into
``DripResult`` values at its boundary.
"""


class SpigotError(Exception):
    """Base class for all faucet errors."""


class ValidationError(SpigotError):
    """Malformed claim (bad address, unknown denomination, bad payload)."""


class VerificationError(SpigotError):
    """Human verification rejected the claim."""


class StorageError(SpigotError):
    """The drip ledger could not be read or durably written."""


class SigningError(SpigotError):
    """Local signing failed (bad key material or malformed document)."""


class RemoteError(SpigotError):
    """Base class for failures talking to the remote ledger service.

    Parameters
    ----------
    message : str
        Human readable description.
    status : int | None
        HTTP status returned by the remote, if any.
    body : str | None
        Raw response body returned by the remote, if any.
    """

    def __init__(self, message: str, status: int | None = None, body: str | None = None):
        super().__init__(message)
        self.status = status
        self.body = body


class RemoteQueryError(RemoteError):
    """Account query was rejected by the remote ledger."""


class BuildTxError(RemoteError):
    """The remote ledger refused to build the unsigned transfer."""


class BroadcastError(RemoteError):
    """The remote ledger rejected the signed transaction."""


class TransientError(RemoteError):
    """Network failure or timeout while talking to the remote ledger."""


class ParseError(RemoteError):
    """A remote response was missing fields or was not valid JSON."""
