"""
Error taxonomy shared by the directory, the gateways and the HTTP layer.
"""


class SlipDeskError(Exception):
    """Base class for all service errors."""


class NotFoundError(SlipDeskError):
    """Unknown employee id or missing salary slip."""


class InvalidInputError(SlipDeskError):
    """Empty employee id or malformed mobile number."""


class StorageError(SlipDeskError):
    """A file could not be read or written."""


class TransportError(SlipDeskError):
    """The messaging transport is not connected or a send failed."""
