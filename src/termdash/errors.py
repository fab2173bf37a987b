"""Exceptions raised by termdash."""


class TermDashError(Exception):
    """Base class for termdash errors."""


class CapabilityError(TermDashError):
    """The host capability layer could not be initialized."""


class FetchError(TermDashError):
    """A fetch routine got an unusable response (bad status or payload)."""
