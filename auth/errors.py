"""
auth/errors.py -- Exception types for failures that are not login outcomes.

ConfigurationError is raised while building the core (bad rule pattern,
cyclic role hierarchy, out-of-range limits) and must stop startup.

StoreUnavailableError is raised by credential stores when the backing
database cannot be reached. AuthenticationService turns it into a
SERVICE_UNAVAILABLE result; retrying is the caller's decision.
"""


class ConfigurationError(ValueError):
    """Invalid authentication configuration detected at startup."""


class StoreUnavailableError(RuntimeError):
    """The credential store could not complete a lookup or insert."""


class DuplicateUsernameError(ValueError):
    """create_user() was called for a username that already exists."""
