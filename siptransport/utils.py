"""Small helpers shared by the SIP state machines."""

import secrets
import string

_ALPHANUMERIC = string.ascii_letters + string.digits


def generate_random_string(length: int) -> str:
    """Return a random alphanumeric string of the given length."""
    return "".join(secrets.choice(_ALPHANUMERIC) for _ in range(length))