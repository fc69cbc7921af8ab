"""
Exception classes for the custom fields pipeline.

Each layer below the form orchestrator raises one of these and the
orchestrator turns it into either a skipped element or a user-visible
notification. Only ConfigError is fatal for a whole page.
"""

import logging
from typing import Optional, Dict, Any, List

logger = logging.getLogger(__name__)


class CustomFieldsError(Exception):
    """
    Base exception for custom fields errors.

    Attributes:
        message: Error message
        context: Additional context information
        recovery_suggestions: List of suggested recovery actions
    """

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None,
                 recovery_suggestions: Optional[List[str]] = None):
        self.message = message
        self.context = context or {}
        self.recovery_suggestions = recovery_suggestions or []
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message

    def get_full_details(self) -> Dict[str, Any]:
        """Get complete error details including context and suggestions."""
        return {
            'error_type': self.__class__.__name__,
            'message': self.message,
            'context': self.context,
            'recovery_suggestions': self.recovery_suggestions
        }


class ConfigError(CustomFieldsError):
    """
    Raised when the module schema or the field schema is missing or malformed.

    This is the only non-recoverable condition: the orchestrator stays
    uninitialized and every render shows the fatal message.
    """

    def __init__(self, source: Any, reason: str, message: Optional[str] = None):
        self.source = source
        self.reason = reason

        if message is None:
            message = f"Invalid initialization: could not load schema from {source}: {reason}"

        context = {
            'source': str(source),
            'reason': reason
        }

        recovery_suggestions = [
            "Make sure a valid module schema and field schema are provided at initialization",
            "Verify the schema documents are well formed YAML, JSON or XML",
            "Check the schema paths configured in config.yaml"
        ]

        super().__init__(message, context, recovery_suggestions)


class SchemaError(CustomFieldsError):
    """Raised when a schema fragment is malformed, e.g. a field without a name."""

    def __init__(self, fragment_name: Optional[str], issue: str, message: Optional[str] = None):
        self.fragment_name = fragment_name
        self.issue = issue

        if message is None:
            message = f"Malformed schema fragment '{fragment_name or 'unnamed'}': {issue}"

        super().__init__(message, {'fragment': fragment_name, 'issue': issue}, [
            "Every field needs a 'name' and a 'type' attribute"
        ])


class ScopeError(CustomFieldsError):
    """Raised when more than one schema fragment matches the same scope."""

    def __init__(self, selector: Optional[str], candidates: int, message: Optional[str] = None):
        self.selector = selector
        self.candidates = candidates

        if message is None:
            label = selector if selector is not None else "<all>"
            message = f"Ambiguous schema: {candidates} fragments match scope '{label}'"

        super().__init__(message, {'selector': selector, 'candidates': candidates}, [
            "Remove the duplicate fragment or give it a distinct name"
        ])


class FieldTypeError(CustomFieldsError):
    """Raised by the field registry for an unknown field type tag."""

    def __init__(self, field_type: Any, field_name: Optional[str] = None):
        self.field_type = field_type
        self.field_name = field_name
        message = f"Unsupported field type '{field_type}'"
        if field_name:
            message += f" for field '{field_name}'"
        super().__init__(message, {'field_type': field_type, 'field_name': field_name})


class DecodeError(CustomFieldsError):
    """Raised when a stored structured value cannot be parsed."""

    def __init__(self, field_type: str, raw_value: Any, reason: str):
        self.field_type = field_type
        self.raw_value = raw_value
        super().__init__(
            f"Could not decode stored {field_type} value: {reason}",
            {'field_type': field_type, 'raw_value': repr(raw_value)[:200]}
        )


class PersistenceError(CustomFieldsError):
    """Raised when a storage backend fails to write."""

    def __init__(self, scope: str, operation: str, original_error: Exception,
                 message: Optional[str] = None):
        self.scope = scope
        self.operation = operation
        self.original_error = original_error

        if message is None:
            message = f"Failed to {operation} {scope} data: {original_error}"

        context = {
            'scope': scope,
            'operation': operation,
            'original_error_type': type(original_error).__name__,
            'original_error_message': str(original_error)
        }

        recovery_suggestions = [
            "Check that the storage location is writable",
            "Try saving again; the form still shows the last stored values"
        ]

        super().__init__(message, context, recovery_suggestions)


def log_error_with_context(error: CustomFieldsError, operation: str) -> None:
    """
    Log error with full context information.

    Args:
        error: CustomFieldsError instance
        operation: Description of the operation that failed
    """
    logger.error(f"Error during {operation}: {error.message}")
    logger.debug(f"Error type: {type(error).__name__}")

    if error.context:
        for key, value in error.context.items():
            logger.debug(f"  {key}: {value}")

    for i, suggestion in enumerate(error.recovery_suggestions, 1):
        logger.info(f"  {i}. {suggestion}")
