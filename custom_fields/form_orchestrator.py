"""
Form orchestrator for the custom fields app.

Composes scope resolution, the field registry and the persistence adapter
into a page -> section -> widget/field render tree and drives the save
lifecycle:

    Uninitialized -> SchemaLoaded -> Rendering -> AwaitingSubmit -> Saving -> Rendering

Loading the schema is the only fatal step. Everything after it is recovered
locally and reported through the notification channel.
"""

import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from .catalog import Catalog
from .exceptions import (
    ConfigError, FieldTypeError, PersistenceError, SchemaError, ScopeError,
    log_error_with_context
)
from .field_registry import FieldRegistry
from .notifier import NotificationChannel
from .persistence import PersistenceAdapter, OptionStore, RecordMetaStore
from .render_tree import (
    NavItem, RenderedField, RenderedForm, RenderedPage, RenderedSection, RenderedWidget
)
from .schema_loader import NodeKind, SchemaBundle, SchemaNode, SchemaSource, load_schema_bundle
from .scope_resolver import ScopeContext, ScopeKind, resolve
from .widgets import SiteStats, WidgetRegistry

logger = logging.getLogger(__name__)

FULL_WIDTH_CLASS = "col-xs-12"

SECTION_WIDTH_CLASSES = {
    '1/6': 'col-xs-12 col-sm-6 col-lg-2',
    '2/6': 'col-xs-12 col-sm-6 col-lg-4',
    '3/6': 'col-xs-12 col-sm-6',
    '4/6': 'col-xs-12 col-sm-6 col-lg-8',
    '5/6': 'col-xs-12 col-sm-6 col-lg-10',
    '1': FULL_WIDTH_CLASS,
}

SAVED_TITLE = "Data saved"
NOT_SAVED_TITLE = "Data not saved"

PermissionCheck = Callable[[ScopeContext], bool]


class OrchestratorState(str, Enum):
    UNINITIALIZED = "uninitialized"
    SCHEMA_LOADED = "schema_loaded"
    RENDERING = "rendering"
    AWAITING_SUBMIT = "awaiting_submit"
    SAVING = "saving"


class FormRequest(BaseModel):
    """
    One incoming render or submit request.

    Attributes:
        action: Action marker; equals the module's update param on a save
        page: Page marker; equals the module dir on a save
        page_index: Index of the global settings page to show
        form: Submitted raw values keyed by field name
    """
    model_config = ConfigDict(frozen=True)

    action: Optional[str] = None
    page: Optional[str] = None
    page_index: Any = 0
    form: Dict[str, Any] = Field(default_factory=dict)


def section_width_class(width: Any) -> str:
    if width is None:
        return FULL_WIDTH_CLASS
    return SECTION_WIDTH_CLASSES.get(str(width).strip(), FULL_WIDTH_CLASS)


def _is_true(value: Any) -> bool:
    return str(value).strip().lower() == 'true'


def _ucfirst(text: Optional[str]) -> Optional[str]:
    if not text:
        return text
    return text[0].upper() + text[1:]


class FormOrchestrator:
    """
    Builds the render tree for a scope context and saves submitted values.

    Args:
        registry: Field type registry
        option_store: Settings store (global mapping and category blobs)
        meta_store: Per-record attribute store
        catalog: Record and category catalogs used by choice fields
        channel: Notification channel for user-facing messages
        widgets: Widget registry, the built-in widgets by default
        stats: Site statistics used by the widgets
        permission_check: Called with the scope context before saving
    """

    def __init__(
        self,
        registry: FieldRegistry,
        option_store: OptionStore,
        meta_store: RecordMetaStore,
        catalog: Optional[Catalog] = None,
        channel: Optional[NotificationChannel] = None,
        widgets: Optional[WidgetRegistry] = None,
        stats: Optional[SiteStats] = None,
        permission_check: Optional[PermissionCheck] = None
    ):
        self.registry = registry
        self.option_store = option_store
        self.meta_store = meta_store
        self.catalog = catalog
        self.channel = channel or NotificationChannel()
        self.widgets = widgets or WidgetRegistry.default()
        self.stats = stats
        self.permission_check = permission_check

        self.state = OrchestratorState.UNINITIALIZED
        self.bundle: Optional[SchemaBundle] = None
        self.persistence: Optional[PersistenceAdapter] = None
        self.fatal_error: Optional[str] = None

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    def initialize(self, module_source: SchemaSource, fields_source: SchemaSource) -> bool:
        """
        Load the module schema and the field schema.

        Returns:
            True when both documents loaded; False leaves the orchestrator
            uninitialized and every later render returns the fatal message
        """
        try:
            bundle = load_schema_bundle(module_source, fields_source)
        except ConfigError as e:
            log_error_with_context(e, "schema initialization")
            self.fatal_error = e.message
            self.channel.failure("Invalid initialization", e.message)
            return False
        self.initialize_bundle(bundle)
        return True

    def initialize_bundle(self, bundle: SchemaBundle) -> None:
        """Initialize from an already loaded schema bundle."""
        self.bundle = bundle
        self.persistence = PersistenceAdapter(self.option_store, self.meta_store, bundle.module.option_name)
        self.fatal_error = None
        self.state = OrchestratorState.SCHEMA_LOADED
        logger.info(f"Schema loaded for module '{bundle.module.name}'")

    @property
    def is_initialized(self) -> bool:
        return self.bundle is not None

    # ------------------------------------------------------------------
    # Request handling
    # ------------------------------------------------------------------

    def is_submit(self, request: FormRequest) -> bool:
        """A request saves only when both markers match this module."""
        if not self.is_initialized:
            return False
        module = self.bundle.module
        return request.action == module.update_param and request.page == module.dir

    def handle(self, request: FormRequest, context: ScopeContext) -> RenderedForm:
        """Save when the request is a submit for this module, then render."""
        if not self.is_initialized:
            return self._fatal_form(context)

        saved = False
        if self.is_submit(request):
            saved = self.save(request, context)
        else:
            logger.debug(f"Plain render for {context}")
        return self.render(context, request.page_index, saved=saved)

    def fragment_for(self, context: ScopeContext) -> Optional[SchemaNode]:
        """
        Resolve the fragment that applies to a context.

        Raises:
            ScopeError: If several fragments match the context
            SchemaError: If the selected fragment is malformed
        """
        fields = self.bundle.fields
        if context.kind == ScopeKind.GLOBAL:
            candidates: Any = fields.options
        elif context.kind == ScopeKind.RECORD:
            candidates = list(fields.record_fragments)
        else:
            candidates = list(fields.category_fragments)
        return resolve(candidates, context)

    def _safe_fragment(self, context: ScopeContext) -> Optional[SchemaNode]:
        try:
            return self.fragment_for(context)
        except (ScopeError, SchemaError) as e:
            log_error_with_context(e, f"scope resolution for {context}")
            self.channel.failure("Schema error", e.message)
            return None

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def render(self, context: ScopeContext, page_index: Any = 0, saved: bool = False) -> RenderedForm:
        """Build the render tree for a context."""
        if not self.is_initialized:
            return self._fatal_form(context)

        self.state = OrchestratorState.RENDERING
        fragment = self._safe_fragment(context)

        if fragment is None:
            form = RenderedForm(scope=str(context), saved=saved)
        elif context.kind == ScopeKind.GLOBAL:
            form = self._render_global(fragment, context, page_index, saved)
        else:
            form = self._render_scoped(fragment, context, saved)

        self.state = OrchestratorState.AWAITING_SUBMIT
        return form

    def _fatal_form(self, context: ScopeContext) -> RenderedForm:
        message = self.fatal_error or "Invalid initialization: no schema loaded"
        return RenderedForm(scope=str(context), fatal_error=message)

    def _stored_values(self, context: ScopeContext) -> Dict[str, Any]:
        try:
            return self.persistence.read_all(context)
        except PersistenceError as e:
            log_error_with_context(e, f"reading values for {context}")
            self.channel.failure("Data not loaded", e.message)
            return {}

    def _pages(self, fragment: SchemaNode) -> Tuple[SchemaNode, ...]:
        return fragment.children_of(NodeKind.PAGE)

    def page_position(self, fragment: SchemaNode, page_index: Any) -> int:
        """Valid page index; anything unparsable or out of range selects the first page."""
        pages = self._pages(fragment)
        try:
            index = int(page_index)
        except (TypeError, ValueError):
            return 0
        return index if 0 <= index < len(pages) else 0

    def _render_global(self, fragment: SchemaNode, context: ScopeContext,
                       page_index: Any, saved: bool) -> RenderedForm:
        pages = self._pages(fragment)
        stored = self._stored_values(context)
        index = self.page_position(fragment, page_index)

        navigation = tuple(
            NavItem(index=i, name=page.name or f"Page {i + 1}", active=(i == index))
            for i, page in enumerate(pages)
        )

        page = None
        if pages:
            node = pages[index]
            page = RenderedPage(
                name=node.name,
                index=index,
                show_save=str(node.attr('showSave', 'true')).strip().lower() != 'false',
                masonry=_is_true(node.attr('masonry', 'false')),
                sections=tuple(
                    self._render_section(section, context, stored)
                    for section in node.children_of(NodeKind.SECTION)
                )
            )

        return RenderedForm(
            title=self.bundle.fields.settings_name,
            scope=str(context),
            navigation=navigation,
            page=page,
            data_fields=self._data_fields(stored),
            saved=saved
        )

    def _render_scoped(self, fragment: SchemaNode, context: ScopeContext, saved: bool) -> RenderedForm:
        stored = self._stored_values(context)
        title = _ucfirst(fragment.name) or context.type_name
        fields = tuple(self._render_fields(fragment.iter_fields(), context, stored))
        page = RenderedPage(
            name=fragment.name,
            sections=(RenderedSection(title=title, fields=fields),)
        )
        return RenderedForm(title=title, scope=str(context), page=page, saved=saved)

    def _render_section(self, section: SchemaNode, context: ScopeContext,
                        stored: Dict[str, Any]) -> RenderedSection:
        widgets: List[RenderedWidget] = []
        for node in section.children_of(NodeKind.WIDGET):
            widget = self.widgets.build(node.name, self.stats)
            if widget is not None:
                widgets.append(widget)

        return RenderedSection(
            title=section.name,
            subtitle=section.attr('subtitle'),
            width_class=section_width_class(section.attr('width')),
            widgets=tuple(widgets),
            fields=tuple(self._render_fields(section.children_of(NodeKind.FIELD), context, stored))
        )

    def input_name(self, context: ScopeContext, name: Optional[str]) -> Optional[str]:
        if name is None:
            return None
        if context.kind == ScopeKind.GLOBAL:
            return f"{self.bundle.module.option_name}[{name}]"
        if context.kind == ScopeKind.CATEGORY:
            return f"{context.type_name}[{name}]"
        return name

    def _render_fields(self, nodes, context: ScopeContext, stored: Dict[str, Any]) -> List[RenderedField]:
        rendered = []
        for node in nodes:
            try:
                descriptor = self.registry.describe_field(
                    node,
                    stored_value=stored.get(node.name) if node.name else None,
                    input_name=self.input_name(context, node.name),
                    storage_key=self.persistence.storage_key(context, node.name) if node.name else None,
                    catalog=self.catalog
                )
            except FieldTypeError as e:
                logger.warning(f"Skipping field: {e.message}")
                continue
            rendered.append(self.registry.render(descriptor))
        return rendered

    def _data_fields(self, stored: Dict[str, Any]) -> Tuple[RenderedField, ...]:
        """One hidden field per stored key so keys of other pages travel with the form."""
        return tuple(
            RenderedField(
                name=key,
                type='hidden',
                control='hidden',
                input_name=self.input_name(ScopeContext.global_(), key),
                value=value,
                hidden=True
            )
            for key, value in stored.items()
        )

    # ------------------------------------------------------------------
    # Saving
    # ------------------------------------------------------------------

    def _submitted_fields(self, fragment: SchemaNode, context: ScopeContext, page_index: Any) -> List[SchemaNode]:
        if context.kind == ScopeKind.GLOBAL:
            pages = self._pages(fragment)
            if not pages:
                return []
            return pages[self.page_position(fragment, page_index)].iter_fields()
        return fragment.iter_fields()

    def collect_submission(self, request: FormRequest, context: ScopeContext,
                           fragment: SchemaNode) -> Dict[str, Any]:
        """
        Encode the submitted values of every stored field.

        Fields missing from the form encode as their empty value, which is
        how an unchecked checkbox or an emptied multi-select arrives. In
        global scope, data fields of other pages pass through unchanged.
        """
        submitted: Dict[str, Any] = {}
        for node in self._submitted_fields(fragment, context, request.page_index):
            if node.name is None:
                continue
            try:
                field_type = self.registry.get(node.attr('type'), node.name)
            except FieldTypeError as e:
                logger.warning(f"Skipping field: {e.message}")
                continue
            if not field_type.stores_value:
                continue
            submitted[node.name] = self.registry.encode_field(node, request.form.get(node.name))

        if context.kind == ScopeKind.GLOBAL:
            stored_keys = self.persistence.read_all(context).keys()
            for key in stored_keys:
                if key not in submitted and key in request.form:
                    submitted[key] = request.form[key]
        return submitted

    def save(self, request: FormRequest, context: ScopeContext) -> bool:
        """
        Diff the submitted values against storage and write the changes.

        Returns:
            True when the save completed (including an empty diff set)
        """
        self.state = OrchestratorState.SAVING
        try:
            return self._save(request, context)
        finally:
            self.state = OrchestratorState.RENDERING

    def _save(self, request: FormRequest, context: ScopeContext) -> bool:
        if self.permission_check is not None and not self.permission_check(context):
            logger.warning(f"Save rejected, no permission for {context}")
            self.channel.failure(NOT_SAVED_TITLE, "You do not have permission to edit this data.")
            return False

        fragment = self._safe_fragment(context)
        if fragment is None:
            logger.debug(f"Nothing to save for {context}")
            return False

        try:
            submitted = self.collect_submission(request, context, fragment)
            diff_set = self.persistence.diff(context, submitted)
            written = self.persistence.write_all(context, diff_set)
        except PersistenceError as e:
            log_error_with_context(e, f"saving {context}")
            self.channel.failure(NOT_SAVED_TITLE, e.message)
            return False

        summary = diff_set.summary()
        logger.info(f"Saved {context}: {summary} (written={written})")
        self.channel.success(SAVED_TITLE, f"{self.bundle.fields.settings_name} data saved successfully.")
        return True
