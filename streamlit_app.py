"""
Main Streamlit application for the custom fields admin.
Schema-driven data entry for global settings, per-record fields and
per-category fields.
"""

import streamlit as st
import logging

from custom_fields.catalog import InMemoryCatalog
from custom_fields.config_loader import AppSettings, get_logging_level, load_config, validate_config
from custom_fields.field_registry import FieldRegistry
from custom_fields.form_orchestrator import FormOrchestrator, FormRequest
from custom_fields.notifier import NotificationChannel
from custom_fields.persistence import JsonFileOptionStore, JsonFileRecordMetaStore
from custom_fields.scope_resolver import ScopeKind
from custom_fields.session_manager import SessionManager
from custom_fields.streamlit_view import CustomFieldsView, toast_sink
from custom_fields.widgets import InMemorySiteStats

# Load configuration early
config = load_config()
settings = AppSettings.from_config(config)

# Configure logging dynamically from config
logging.basicConfig(level=get_logging_level(settings.log_level))
logger = logging.getLogger(__name__)
logger.info(f"Logging configured to level: {settings.log_level}")

if not validate_config(config):
    logger.warning("Configuration issues detected, using defaults where necessary")

# Page configuration
st.set_page_config(
    page_title=settings.page_title,
    page_icon="🗂️",
    layout="wide",
    initial_sidebar_state="expanded"
)


def build_orchestrator() -> FormOrchestrator:
    """Create the per-session orchestrator and load the schema documents."""
    catalog = InMemoryCatalog.from_config(config)
    orchestrator = FormOrchestrator(
        registry=FieldRegistry.default(),
        option_store=JsonFileOptionStore(settings.data_dir),
        meta_store=JsonFileRecordMetaStore(settings.data_dir),
        catalog=catalog,
        channel=NotificationChannel(settings.notification_delay, settings.notification_hide_after),
        stats=InMemorySiteStats.from_config(config)
    )
    orchestrator.initialize(settings.module_schema_path, settings.field_schema_path)
    return orchestrator


def render_sidebar(orchestrator: FormOrchestrator):
    """Scope picker: global settings, a record or a category."""
    st.sidebar.title(settings.app_name)

    labels = {
        ScopeKind.GLOBAL.value: "Settings",
        ScopeKind.RECORD.value: "Records",
        ScopeKind.CATEGORY.value: "Categories",
    }
    kind = st.sidebar.radio(
        "Edit", options=list(labels), format_func=lambda k: labels[k], key="scope_kind_picker"
    )

    if kind == ScopeKind.GLOBAL.value or not orchestrator.is_initialized:
        SessionManager.set_scope(ScopeKind.GLOBAL.value)
        return

    catalog = orchestrator.catalog
    if kind == ScopeKind.RECORD.value:
        types = catalog.record_types()
        type_name = st.sidebar.selectbox("Record type", options=types, key="record_type_picker")
        items = catalog.records(type_name) if type_name else []
    else:
        types = catalog.category_types()
        type_name = st.sidebar.selectbox("Category type", options=types, key="category_type_picker")
        items = catalog.categories(type_name) if type_name else []

    if not items:
        st.sidebar.info("Nothing to edit for this type.")
        SessionManager.set_scope(kind, type_name, None)
        return

    titles = {str(item.id): item.title for item in items}
    object_id = st.sidebar.selectbox(
        "Item", options=list(titles), format_func=lambda i: titles[i], key=f"{kind}_item_picker"
    )
    SessionManager.set_scope(kind, type_name, object_id)


def render_main_content(orchestrator: FormOrchestrator):
    context = SessionManager.get_scope()
    form = orchestrator.render(context, SessionManager.get_page_index())

    chosen = CustomFieldsView.render_navigation(form)
    if chosen is not None and chosen != SessionManager.get_page_index():
        SessionManager.set_page_index(chosen)
        st.rerun()

    values = CustomFieldsView.render_form(form)
    if values is not None:
        module = orchestrator.bundle.module
        request = FormRequest(
            action=module.update_param,
            page=module.dir,
            page_index=SessionManager.get_page_index(),
            form=values
        )
        orchestrator.handle(request, context)
        st.rerun()


def main():
    """Main application entry point."""
    SessionManager.initialize()

    orchestrator = SessionManager.get_orchestrator()
    if orchestrator is None:
        orchestrator = build_orchestrator()
        SessionManager.set_orchestrator(orchestrator)

    orchestrator.channel.flush(toast_sink)

    render_sidebar(orchestrator)
    render_main_content(orchestrator)


if __name__ == "__main__":
    main()
