"""
Session state management for the custom fields Streamlit app.
Keeps the selected scope, the current settings page and the per-session
services across reruns.
"""

import streamlit as st
from typing import Any, Optional, Union
import logging

from .scope_resolver import ScopeContext, ScopeKind

logger = logging.getLogger(__name__)

DEFAULT_SCOPE = ScopeKind.GLOBAL.value


class SessionManager:
    """Manages Streamlit session state for the custom fields app."""

    @staticmethod
    def initialize():
        """Initialize all session state variables with default values."""
        defaults = {
            'scope_kind': DEFAULT_SCOPE,
            'scope_type': None,
            'scope_object_id': None,
            'page_index': 0,
            'orchestrator': None,
        }

        for key, default_value in defaults.items():
            if key not in st.session_state:
                st.session_state[key] = default_value

    @staticmethod
    def get_scope() -> ScopeContext:
        """Build the scope context from the current selection."""
        kind = st.session_state.get('scope_kind', DEFAULT_SCOPE)
        if kind == ScopeKind.RECORD.value:
            return ScopeContext.record(st.session_state.get('scope_type'), st.session_state.get('scope_object_id'))
        if kind == ScopeKind.CATEGORY.value:
            return ScopeContext.category(st.session_state.get('scope_type'), st.session_state.get('scope_object_id'))
        return ScopeContext.global_()

    @staticmethod
    def set_scope(kind: str, type_name: Optional[str] = None,
                  object_id: Union[int, str, None] = None):
        """Set the scope selection; changing scope resets the page index."""
        old = (st.session_state.get('scope_kind'), st.session_state.get('scope_type'),
               st.session_state.get('scope_object_id'))
        new = (kind, type_name, object_id)
        if old != new:
            logger.info(f"Scope changed: {old} -> {new}")
            st.session_state.scope_kind = kind
            st.session_state.scope_type = type_name
            st.session_state.scope_object_id = object_id
            st.session_state.page_index = 0

    @staticmethod
    def get_page_index() -> int:
        return st.session_state.get('page_index', 0)

    @staticmethod
    def set_page_index(index: int):
        if index != st.session_state.get('page_index'):
            logger.info(f"Page transition: {st.session_state.get('page_index')} -> {index}")
            st.session_state.page_index = index

    @staticmethod
    def get_orchestrator() -> Any:
        return st.session_state.get('orchestrator')

    @staticmethod
    def set_orchestrator(orchestrator: Any):
        st.session_state.orchestrator = orchestrator
