"""Route registrations for the passkey signing server."""

# Import submodules to register routes via decorators.
from . import authentication  # noqa: F401
from . import general  # noqa: F401
from . import registration  # noqa: F401
from . import signing  # noqa: F401

__all__ = ["authentication", "general", "registration", "signing"]
