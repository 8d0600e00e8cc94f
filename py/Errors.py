######################################################
#   Copyright (C) Microsoft. All rights reserved.    #
######################################################

"""
Error taxonomy for the P4Runtime client.

Fatal errors abort the session's startup sequence. Entry write errors
are per-entry and are returned in batch results, never raised by the
installer. Construction errors are raised while building entries,
before anything is sent to the device.
"""


class P4RTClientError(Exception):
    """Base error for the P4Runtime client."""


#
# fatal errors
#

class FatalError(P4RTClientError):
    """The session cannot continue."""


class DeviceConnectionError(FatalError):
    """Transport to the device is unavailable."""


class ArbitrationTimeout(FatalError):
    """No primary notification arrived within the startup bound."""


class NotPrimary(FatalError):
    """A device-mutating call was attempted while not primary."""


class PipelinePushError(FatalError):
    """The forwarding pipeline could not be installed."""


class WriteBatchError(FatalError):
    """A write RPC failed as a whole; no per-entry results are available."""


class ReadError(FatalError):
    """A read RPC failed."""


#
# per-entry write errors
#

class EntryWriteError(P4RTClientError):

    def __init__(self, message, code=None):
        super(EntryWriteError, self).__init__(message)
        self.message = message
        # canonical gRPC code reported by the device for this update
        self.code = code

    def __str__(self):
        return "{} (code {})".format(self.message, self.code)


class AlreadyExists(EntryWriteError):
    """Insert of an entry whose key is already installed."""


class NotFound(EntryWriteError):
    """Modify or delete of an entry that is not installed."""


class SchemaViolation(EntryWriteError):
    """Device rejected the entry as malformed for its table."""


class DeviceRejected(EntryWriteError):
    """Device rejected the entry for any other reason."""


#
# entry construction errors
#

class EntryConstructionError(P4RTClientError):
    """Entry could not be built from the schema; nothing was sent."""


class SchemaMismatch(EntryConstructionError):
    pass


class InvalidPrefixLength(EntryConstructionError):
    pass


class UnknownTable(EntryConstructionError):
    pass
