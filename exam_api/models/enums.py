"""Enumerations shared by the API models and the session services."""
import enum


class TimeMode(str, enum.Enum):
    """How the session is timed."""

    STANDARD = "standard"
    UNLIMITED = "unlimited"


class ResumeDecision(str, enum.Enum):
    """Choice made in the resume dialog."""

    RESUME = "resume"
    START_NEW = "start_new"
    DISMISS = "dismiss"


class ExitDecision(str, enum.Enum):
    """Choice made in the exit confirmation dialog."""

    CONFIRM = "confirm"
    CANCEL = "cancel"
