from __future__ import annotations


class OverlayError(Exception):
    """Base class for errors raised by yolo_overlay."""


class InvalidConfiguration(OverlayError, ValueError):
    """A configuration value is out of range or of the wrong type."""


class ShapeMismatch(OverlayError, ValueError):
    """An output tensor does not match the configured layout and size."""


class EngineFault(OverlayError, RuntimeError):
    """The inference engine failed while scheduling or stepping a session."""


class SchedulerStateError(OverlayError, RuntimeError):
    """A scheduler operation was called from a state that does not allow it."""


class SubmissionRejected(SchedulerStateError):
    """A new input arrived while a session is in flight under the reject policy."""
