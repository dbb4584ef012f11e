"""Errors raised by the BLE provisioning transport. None of them are retried."""


class ProvisioningError(Exception):
    """Base class; ``str(exc)`` is a human readable description."""


class Unavailable(ProvisioningError):
    """No usable Bluetooth adapter on this machine."""


class UserCancelled(ProvisioningError):
    """The operator did not pick a peripheral."""


class ConnectionFailed(ProvisioningError):
    pass


class AlreadyConnected(ProvisioningError):
    """A transport drives one GATT session at a time."""


class NotConnected(ProvisioningError):
    pass


class WriteFailed(ProvisioningError):
    pass


class ReadFailed(ProvisioningError):
    pass


class DecodeError(ProvisioningError):
    """A characteristic returned bytes that are not the expected UTF-8 / JSON."""


class OperationTimeout(ProvisioningError):
    pass
