"""Exception taxonomy for the treasury dashboard.

Absence (unknown account, no lockup, no staking pools) is never an
exception: it is modelled as ``None`` or an empty value.
"""


class TreasuryError(Exception):
    """Base application error."""

    http_status = 500

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class TransientFetchError(TreasuryError):
    """An external service could not be reached or answered garbage."""

    http_status = 502

    def __init__(self, service: str, message: str) -> None:
        self.service = service
        super().__init__(f"{service}: {message}")


class ValidationError(TreasuryError):
    """Malformed user input: account ids, DAO ids, target-chain addresses."""

    http_status = 400
