"""Exception types raised at Hoard's network, decode and storage boundaries.

Each one maps to a recovery policy owned by the component that catches it;
none of them is meant to terminate the process.
"""


class HoardError(Exception):
    """Base class for recoverable runtime errors."""


class GatewayConnectionError(HoardError):
    """Connecting to or reading from the gateway socket failed."""


class DecodeError(HoardError):
    """An inbound frame did not match any known event shape."""


class DownloadError(HoardError):
    """Fetching media bytes failed at the transport level."""


class SniffError(HoardError):
    """Downloaded bytes did not match any known file signature."""


class StorageError(HoardError):
    """Creating the target directory or writing the file failed."""


class DuplicateHandshakeError(HoardError):
    """The session token was already set for this connection."""


class OutboundCallError(HoardError):
    """A REST call to the gateway (file lookup, message send) failed."""
