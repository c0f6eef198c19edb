"""
Exception hierarchy for permctl.

This module defines structured exceptions with error codes, context information,
and recovery suggestions for consistent error handling across the token store,
the configuration layer and the command line.

Errors raised by the storage backends themselves (see permctl.auth.keyrings)
are intentionally not part of this hierarchy.
"""

from datetime import datetime
from typing import Optional, Dict, Any, List
from enum import Enum


class ErrorCode(Enum):
    """Standardized error codes for permctl."""

    # Token Errors (1000-1099)
    TOKEN_NOT_FOUND = "TOKEN_1001"
    TOKEN_MULTIPLE = "TOKEN_1002"

    # Configuration Errors (8000-8099)
    CONFIG_CONTEXT_NOT_FOUND = "CONFIG_8001"
    CONFIG_CONTEXT_NOT_CONFIGURED = "CONFIG_8002"
    CONFIG_INVALID_VALUE = "CONFIG_8003"
    CONFIG_WRITE_FAILED = "CONFIG_8004"

    # Internal Errors (9000-9099)
    INTERNAL_UNEXPECTED_ERROR = "INTERNAL_9001"
    INTERNAL_PERMISSION_DENIED = "INTERNAL_9002"


class ErrorSeverity(Enum):
    """Error severity levels for logging and handling."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RecoveryAction(Enum):
    """Suggested recovery actions for errors."""
    SAVE_TOKEN = "save_token"
    SELECT_CONTEXT = "select_context"
    USER_INTERVENTION = "user_intervention"
    IGNORE = "ignore"


class PermctlError(Exception):
    """
    Base exception class for all permctl domain errors.

    Provides structured error information including error codes, context,
    and recovery suggestions.
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        context: Optional[Dict[str, Any]] = None,
        recovery_actions: Optional[List[RecoveryAction]] = None,
        cause: Optional[Exception] = None,
        user_message: Optional[str] = None
    ):
        super().__init__(message)

        self.message = message
        self.error_code = error_code
        self.severity = severity
        self.context = context or {}
        self.recovery_actions = recovery_actions or []
        self.cause = cause
        self.user_message = user_message or message
        self.timestamp = datetime.now()

        if cause:
            self.context['cause_type'] = type(cause).__name__
            self.context['cause_message'] = str(cause)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary format for serialization."""
        return {
            'error': {
                'code': self.error_code.value,
                'message': self.message,
                'user_message': self.user_message,
                'severity': self.severity.value,
                'timestamp': self.timestamp.isoformat(),
                'context': self.context,
                'recovery_actions': [action.value for action in self.recovery_actions],
                'cause': {
                    'type': self.context.get('cause_type'),
                    'message': self.context.get('cause_message')
                } if self.cause else None
            }
        }


class TokenNotFoundError(PermctlError):
    """No stored token exists for the requested permissions system."""

    def __init__(self, system: str, **kwargs):
        context = kwargs.pop('context', {})
        context['system'] = system

        super().__init__(
            message=f"token does not exist: {system}",
            error_code=ErrorCode.TOKEN_NOT_FOUND,
            severity=ErrorSeverity.LOW,
            recovery_actions=[RecoveryAction.SAVE_TOKEN],
            context=context,
            **kwargs
        )
        self.system = system


class MultipleTokensError(PermctlError):
    """More than one token is stored under the same name."""

    def __init__(self, system: str, **kwargs):
        context = kwargs.pop('context', {})
        context['system'] = system

        super().__init__(
            message=f"multiple tokens with the same name: {system}",
            error_code=ErrorCode.TOKEN_MULTIPLE,
            severity=ErrorSeverity.MEDIUM,
            recovery_actions=[RecoveryAction.USER_INTERVENTION],
            context=context,
            **kwargs
        )
        self.system = system


class ConfigNotFoundError(PermctlError):
    """No current context has been persisted."""

    def __init__(self, message: str = "no current context is configured", **kwargs):
        super().__init__(
            message=message,
            error_code=ErrorCode.CONFIG_CONTEXT_NOT_FOUND,
            severity=ErrorSeverity.LOW,
            recovery_actions=[RecoveryAction.SELECT_CONTEXT],
            **kwargs
        )


class ContextNotConfiguredError(PermctlError):
    """The caller must save a token before relying on the current context."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message=message,
            error_code=ErrorCode.CONFIG_CONTEXT_NOT_CONFIGURED,
            severity=ErrorSeverity.LOW,
            recovery_actions=[RecoveryAction.SAVE_TOKEN],
            **kwargs
        )


class ConfigurationError(PermctlError):
    """Configuration related errors."""

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.CONFIG_INVALID_VALUE,
                 config_key: Optional[str] = None, **kwargs):
        context = kwargs.pop('context', {})
        if config_key:
            context['config_key'] = config_key

        super().__init__(
            message=message,
            error_code=error_code,
            severity=ErrorSeverity.HIGH,
            recovery_actions=[RecoveryAction.USER_INTERVENTION],
            context=context,
            **kwargs
        )


def handle_exception(
    exception: Exception,
    context: Optional[Dict[str, Any]] = None,
    default_error_code: ErrorCode = ErrorCode.INTERNAL_UNEXPECTED_ERROR
) -> PermctlError:
    """
    Convert a generic exception to a structured PermctlError.

    Only used for reporting; callers never see the converted error in place
    of the original.

    Args:
        exception: The original exception
        context: Additional context information
        default_error_code: Default error code if specific mapping not found

    Returns:
        Structured PermctlError
    """
    if isinstance(exception, PermctlError):
        return exception

    exception_mapping = {
        PermissionError: ErrorCode.INTERNAL_PERMISSION_DENIED,
    }
    error_code = exception_mapping.get(type(exception), default_error_code)

    message = str(exception) or type(exception).__name__
    return PermctlError(
        message=message,
        error_code=error_code,
        context=context,
        cause=exception
    )
