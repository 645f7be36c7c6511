"""
Exceptions that stop a sync run.

Per-message problems never raise; they become FailureEntry records. Only the
errors below reach the process boundary.
"""


class SetupError(Exception):
    """Raised when the run cannot start (configuration, connect, authenticate)."""
    pass


class ConfigurationError(SetupError):
    """Raised when required configuration is missing or invalid."""
    pass


class MailboxConnectionError(SetupError):
    """Raised when the mailbox cannot be reached, logged into or searched."""
    pass


class StoreConnectionError(SetupError):
    """Raised when the tracking store cannot be reached with the given credentials."""
    pass


class MailboxFetchError(Exception):
    """Raised after a run whose mailbox fetch broke off part way through."""
    pass
