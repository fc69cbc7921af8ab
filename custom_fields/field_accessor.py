"""
Read-only accessor for stored custom field values.

Used by code outside the admin form (templates, reports) to look up a
value by field name:

    accessor.get('footer_text', 'opt')
    accessor.get('subtitle', 'cpt', record_id)
    accessor.has('banner', 'tax', category_id)
"""

import logging
from typing import Any, Dict, Optional, Union

from .field_registry import strip_slashes
from .notifier import NotificationChannel
from .persistence import PersistenceAdapter
from .scope_resolver import ScopeContext, ScopeKind

logger = logging.getLogger(__name__)

ACCESSOR_SCOPES = {
    'opt': ScopeKind.GLOBAL,
    'cpt': ScopeKind.RECORD,
    'tax': ScopeKind.CATEGORY,
}

INVALID_TYPE_MESSAGE = (
    "Invalid field type provided for method [{method}] of FieldAccessor. "
    "Supported field types are: 'opt', 'cpt' and 'tax'."
)


def sanitize_value(value: Any) -> Any:
    if isinstance(value, str):
        return strip_slashes(value)
    return value


def is_present(value: Any) -> bool:
    """A value counts as present unless it is empty, zero or '0'."""
    return value not in (None, '', '0', 0, False) and value != [] and value != {}


class FieldAccessor:
    """
    Public getter API over the persistence adapter.

    Args:
        persistence: Persistence adapter shared with the form orchestrator
        channel: Notification channel used to report an invalid field type
    """

    def __init__(self, persistence: PersistenceAdapter, channel: Optional[NotificationChannel] = None):
        self.persistence = persistence
        self.channel = channel

    def _context(self, method: str, field_type: str,
                 object_id: Union[int, str, None]) -> Optional[ScopeContext]:
        kind = ACCESSOR_SCOPES.get(field_type)
        if kind is None:
            message = INVALID_TYPE_MESSAGE.format(method=method)
            logger.warning(message)
            if self.channel is not None:
                self.channel.failure(message)
            return None
        if kind == ScopeKind.GLOBAL:
            return ScopeContext.global_()
        return ScopeContext(kind=kind, object_id=object_id)

    def get(self, field_name: str, field_type: str, object_id: Union[int, str, None] = None) -> Any:
        """
        Get a stored value with slashes stripped.

        Returns:
            The value, or None when it is absent or the field type is invalid
        """
        context = self._context('get', field_type, object_id)
        if context is None:
            return None
        return sanitize_value(self.persistence.read(context, field_name))

    def has(self, field_name: str, field_type: str, object_id: Union[int, str, None] = None) -> bool:
        if self._context('has', field_type, object_id) is None:
            return False
        return is_present(self.get(field_name, field_type, object_id))

    def get_all_opt_fields(self) -> Dict[str, Any]:
        """Every global value, sanitized."""
        stored = self.persistence.read_all(ScopeContext.global_())
        return {key: sanitize_value(value) for key, value in stored.items()}
