from __future__ import annotations


class RelayError(Exception):
    pass


class ConfigurationError(RelayError):
    pass


class ValidationError(RelayError):
    pass


class StorageError(RelayError):
    pass


class ProviderError(RelayError):
    pass


class DeliveryError(RelayError):
    pass
