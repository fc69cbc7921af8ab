"""
Unit tests for session state management.
"""

from unittest.mock import patch

from custom_fields.scope_resolver import ScopeContext, ScopeKind
from custom_fields.session_manager import SessionManager


class SessionState(dict):
    """Dictionary with attribute access, like st.session_state."""

    def __getattr__(self, name):
        try:
            return self[name]
        except KeyError as e:
            raise AttributeError(name) from e

    def __setattr__(self, name, value):
        self[name] = value


class TestSessionManager:

    def setup_method(self):
        self.state = SessionState()
        self.patcher = patch('streamlit.session_state', new=self.state)
        self.patcher.start()
        SessionManager.initialize()

    def teardown_method(self):
        self.patcher.stop()

    def test_initialize_sets_only_used_keys(self):
        assert set(self.state) == {'scope_kind', 'scope_type', 'scope_object_id', 'page_index', 'orchestrator'}
        assert SessionManager.get_scope() == ScopeContext.global_()

    def test_initialize_keeps_existing_values(self):
        self.state['page_index'] = 2
        SessionManager.initialize()
        assert SessionManager.get_page_index() == 2

    def test_scope_change_resets_page(self):
        SessionManager.set_page_index(1)

        SessionManager.set_scope(ScopeKind.RECORD.value, 'post', 7)

        assert SessionManager.get_scope() == ScopeContext.record('post', 7)
        assert SessionManager.get_page_index() == 0

    def test_same_scope_keeps_page(self):
        SessionManager.set_scope(ScopeKind.CATEGORY.value, 'category', 3)
        SessionManager.set_page_index(1)

        SessionManager.set_scope(ScopeKind.CATEGORY.value, 'category', 3)

        assert SessionManager.get_page_index() == 1

    def test_orchestrator_round_trip(self):
        marker = object()
        SessionManager.set_orchestrator(marker)
        assert SessionManager.get_orchestrator() is marker
