class MotionCoreError(Exception):
    """Base class for errors raised by motion_core."""


class ConfigurationError(MotionCoreError, KeyError):
    """A threshold table, profile or benchmark is missing or malformed.

    Raised for static data/config mismatches only. Sensor artifacts such as
    dropped or low-confidence landmarks never raise.
    """

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the message readable.
        return str(self.args[0]) if self.args else ""
