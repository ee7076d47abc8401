# Module: errors
# License: MIT (TRIALROOM project)
# Description: Exception hierarchy shared by the compositor, loops and server.
# Platform: Both
# Dependencies: none

"""
Errors
======
Fatal errors (device/model initialization, bad configuration) are raised.
Steady-state failures inside the loops are logged and counted instead.
"""


class TrialroomError(Exception):
    """Base class for all compositor errors."""


class ConfigError(TrialroomError):
    """Configuration file missing or holding an invalid value."""


class CaptureError(TrialroomError):
    """The capture device could not be opened."""


class EstimatorInitError(TrialroomError):
    """The landmark estimator could not be constructed."""


class EstimationError(TrialroomError):
    """A single estimation call failed. Non-fatal."""


class UnknownGarmentError(TrialroomError, KeyError):
    """Garment name or slot not present in the catalog."""

    def __str__(self) -> str:
        return Exception.__str__(self)
