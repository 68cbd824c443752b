"""
Placeholder credential check.

The gateway accepts exactly one configured account. Real deployments
would delegate this to an identity provider.
"""

import hmac

from ..domain import Credentials


def check_credentials(submitted: Credentials, accepted: Credentials) -> bool:
    """
    Compare submitted credentials against the accepted ones.

    Both fields are always compared, so the outcome (and timing) does not
    reveal which of them was wrong.
    """
    username_ok = hmac.compare_digest(submitted.username.encode('utf-8'),
                                      accepted.username.encode('utf-8'))
    password_ok = hmac.compare_digest(submitted.password.encode('utf-8'),
                                      accepted.password.encode('utf-8'))
    return username_ok and password_ok
