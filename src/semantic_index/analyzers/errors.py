# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Errors raised by the Python bridge."""

PYTHON_NOT_FOUND_MESSAGE = "Python 3 not found. Please install Python 3 to analyze Python code."


class AnalysisError(Exception):
    """Raised when an analysis query fails (parse error, unreadable output)."""

    pass


class PythonNotFoundError(AnalysisError):
    """Raised when no Python 3 interpreter can be found on the host."""

    def __init__(self, message: str = PYTHON_NOT_FOUND_MESSAGE):
        super().__init__(message)


class AnalysisTimeoutError(AnalysisError):
    """Raised when the analysis subprocess exceeds its timeout and is killed."""

    def __init__(self, message: str = "Python execution timed out"):
        super().__init__(message)


class AnalysisCancelledError(AnalysisError):
    """Raised when the caller's cancellation token is set."""

    def __init__(self, message: str = "Python analysis was cancelled"):
        super().__init__(message)
