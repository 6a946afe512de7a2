"""Exceptions for repodiff."""


class RepodiffError(Exception):
    """Base class for all repodiff errors."""


class TransportError(RepodiffError):
    """The remote store could not answer a request.

    Fatal while resolving the branch, commit or tree of a comparison run.
    For a single blob fetch the file is conservatively reported as
    modified and the run continues.
    """


class DecodeError(RepodiffError, ValueError):
    """A remote payload is not valid base64 or not valid UTF-8."""


class EncodingError(RepodiffError, ValueError):
    """Text cannot be encoded as UTF-8 (e.g. unpaired surrogates)."""


class IgnoreFilterError(RepodiffError):
    """The ignore-pattern matcher failed; nothing is treated as ignored."""
