"""Exceptions raised by binsampling."""

__all__ = ["ConfigurationError"]


class ConfigurationError(ValueError):
    """Raised when objects are wired together in an unusable way.

    The typical case is wrapping a density that does not depend on the
    observable it is supposed to be integrated over.
    """
