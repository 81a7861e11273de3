"""
Exception hierarchy for multibox-tracker.

Recoverable conditions (low correlation, lost tracks, stale updates,
missing motion tracking support) are handled inside the engine and never
raised. The exceptions below signal lifecycle-ownership violations and
are not meant to be caught and ignored.
"""


class TrackingError(Exception):
    """Base class for all tracking errors."""


class SessionMismatchError(TrackingError):
    """A handle was used with a session that did not create it, or with a closed session."""


class HandleReleasedError(TrackingError):
    """A handle was released more than once."""


class SessionActiveError(TrackingError):
    """A motion session was requested while another one is still open."""


class RegistryError(TrackingError):
    """The track registry would be left with aliased or unknown entries."""
