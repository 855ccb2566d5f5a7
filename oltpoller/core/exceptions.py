"""Exception types shared across the polling server."""


class OltPollerError(Exception):
    """Base class for all polling server errors."""


class ProcessSpecError(OltPollerError):
    """The process-supervisor declaration is missing or invalid."""


class TransportError(OltPollerError):
    """Talking to a device failed."""


class ConnectionFailedError(TransportError):
    """The device refused the connection or rejected the credentials."""


class PollTimeoutError(TransportError):
    """The device did not answer within the poll timeout."""


class UnsupportedProtocolError(TransportError):
    """No transport exists for the device's protocol."""


class PollInProgressError(OltPollerError):
    """A poll of the same device (or a poll-all) is already running."""


class UnknownDeviceError(OltPollerError):
    """The device id is not in the registry."""
