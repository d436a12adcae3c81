"""Engine exceptions"""


class CashlensError(Exception):
    """Base exception for the analytics engine"""

    pass


class InvalidConfigurationError(CashlensError, ValueError):
    """A configuration value or call argument is outside its valid range"""

    pass


class InputLimitExceededError(CashlensError, ValueError):
    """Input is larger than the configured limit allows"""

    pass
