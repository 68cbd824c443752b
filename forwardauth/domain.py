"""Core concepts for the forward-auth gateway."""

import math
from typing import NamedTuple, Optional
from datetime import datetime

from pytz import UTC


class Token(NamedTuple):
    """An issued token, as seen by the issuer."""

    value: str
    """The signed token string handed to the client."""

    token_id: str
    """Random identifier embedded in the token (the ``jti`` claim)."""

    issued_at: datetime
    """When the token was minted."""

    expires_at: Optional[datetime] = None
    """When the token stops being valid, if ever."""

    @property
    def expired(self) -> bool:
        """Expired if the current time is later than :attr:`.expires_at`."""
        return bool(self.expires_at is not None
                    and datetime.now(tz=UTC) >= self.expires_at)

    @property
    def expires(self) -> Optional[int]:
        """
        Number of whole seconds until the token expires, rounded up.

        If the token is already expired, returns 0.
        """
        if self.expires_at is None:
            return None
        duration = (self.expires_at - datetime.now(tz=UTC)).total_seconds()
        return max(math.ceil(duration), 0)


class Credentials(NamedTuple):
    """A username/password pair submitted at login."""

    username: str
    password: str
