"""
Exception hierarchy for engine sessions.

Every failure raised to callers derives from EngineError, so callers that
do not care about the cause can catch just that.
"""


class EngineError(Exception):
    """Custom exception for engine-related errors."""
    pass


class EngineSpawnError(EngineError):
    """The engine executable could not be started."""
    pass


class EngineStdioError(EngineError):
    """The engine process came up without the expected pipes."""
    pass


class EngineWriteError(EngineError):
    """A command could not be written to the engine."""
    pass


class EngineTerminatedError(EngineError):
    """Engine output ended before a search result arrived."""
    pass


class EngineClosedError(EngineError):
    """The session was closed."""
    pass


class EngineTimeoutError(EngineError):
    """No search result arrived within the allowed time."""
    pass
