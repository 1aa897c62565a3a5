# Copyright (c) 2025 Preston Elder
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Exception hierarchy for the automatic door kernel.

Callers at the network edge map these onto their own status codes:
ValidationError and NotFoundError are client errors, TransientStoreError
is a server-side failure that left in-memory state intact.
"""


class AutoDoorError(Exception):
    """Base class for all kernel errors."""


class ValidationError(AutoDoorError):
    """A request carried a bad action, setting key or setting value."""


class NotFoundError(AutoDoorError):
    """A referenced alert or setting does not exist."""


class StoreError(AutoDoorError):
    """The durable store rejected or failed an operation."""


class TransientStoreError(StoreError):
    """A durable write failed even after a local retry."""


class InvariantViolation(AutoDoorError):
    """Internal state contradicted a guaranteed invariant."""


class ConfigError(AutoDoorError):
    """The configuration file or overrides are invalid."""
