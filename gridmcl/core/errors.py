"""
Exception types raised by the localization core
"""


class MCLError(Exception):
    """Base class for every error raised by gridmcl"""


class ConfigurationError(MCLError, ValueError):
    """Invalid or unreadable configuration, fatal at load time"""

    def __init__(self, message, parameter=None, source=None):
        self.parameter = parameter
        self.source = source
        context = []
        if parameter is not None:
            context.append(f"parameter '{parameter}'")
        if source is not None:
            context.append(f"source '{source}'")
        if context:
            message = f"{message} ({', '.join(context)})"
        super().__init__(message)


class UnimplementedStrategyError(MCLError, NotImplementedError):
    """Unknown strategy selector (initialization or motion model)"""


class SamplingError(MCLError):
    """Random free-cell sampling exhausted its retry budget"""


class FilterStateError(MCLError, RuntimeError):
    """Filter operation called in the wrong lifecycle state"""
