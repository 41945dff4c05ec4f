from __future__ import annotations

from typing import Optional


class StatementError(Exception):
    """Base class for statement pipeline failures."""


class InvalidParty(StatementError):
    def __init__(self, party_type: str, party_id: Optional[str]):
        self.party_type = party_type
        self.party_id = party_id
        super().__init__(f"{party_type} not found: {party_id!r}")


class AnchorUnavailable(StatementError):
    """The party's current balance could not be computed; the session cannot open."""


class SourceFetchFailed(StatementError):
    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"{source} fetch failed: {reason}")


class StaleSessionDiscarded(StatementError):
    """A fetch finished after its session was refreshed or closed."""


class StatementIntegrityError(ValueError):
    pass
