"""
Framework-neutral render tree produced by the form orchestrator.

The Streamlit view walks this tree; tests assert against it directly.
"""

from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class Option(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    selected: bool = False


class RenderedField(BaseModel):
    """
    One labeled, typed input control.

    Attributes:
        name: Field name from the schema
        type: Field type tag
        control: Control kind the view draws (text, number, select, ...)
        input_name: Name the submitted value is posted under
        value: Display value, already decoded
        options: Choice options with their selection state
        attributes: Type specific attributes (min, max, rows, format, ...)
    """
    model_config = ConfigDict(frozen=True)

    name: Optional[str]
    type: str
    control: str
    input_name: Optional[str] = None
    label: Optional[str] = None
    description: Optional[str] = None
    size: str = "auto"
    required: bool = False
    selector: str = ""
    value: Any = None
    options: Tuple[Option, ...] = ()
    attributes: Dict[str, Any] = Field(default_factory=dict)
    hidden: bool = False

    @property
    def selected_ids(self) -> List[str]:
        return [option.id for option in self.options if option.selected]


class RenderedWidget(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    title: str
    blocks: Tuple[Dict[str, Any], ...] = ()


class RenderedSection(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: Optional[str] = None
    subtitle: Optional[str] = None
    width_class: str = "col-xs-12"
    widgets: Tuple[RenderedWidget, ...] = ()
    fields: Tuple[RenderedField, ...] = ()


class NavItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    index: int
    name: str
    active: bool = False


class RenderedPage(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: Optional[str] = None
    index: int = 0
    show_save: bool = True
    masonry: bool = False
    sections: Tuple[RenderedSection, ...] = ()

    def iter_fields(self) -> List[RenderedField]:
        return [field for section in self.sections for field in section.fields]


class RenderedForm(BaseModel):
    """
    The whole rendered surface for one request.

    Attributes:
        title: Heading (settings name or record group name)
        scope: String form of the scope context
        navigation: Page navigation entries (global scope only)
        page: Current page, None when nothing applies to the context
        data_fields: Hidden fields carrying every stored key
        fatal_error: Message shown instead of the form when initialization failed
        saved: Whether this request stored a change set
    """
    model_config = ConfigDict(frozen=True)

    title: Optional[str] = None
    scope: str = "global"
    navigation: Tuple[NavItem, ...] = ()
    page: Optional[RenderedPage] = None
    data_fields: Tuple[RenderedField, ...] = ()
    fatal_error: Optional[str] = None
    saved: bool = False

    @property
    def is_empty(self) -> bool:
        return self.page is None or not any(s.fields or s.widgets for s in self.page.sections)

    def iter_fields(self) -> List[RenderedField]:
        return self.page.iter_fields() if self.page else []

    def field(self, name: str) -> Optional[RenderedField]:
        for rendered in self.iter_fields():
            if rendered.name == name:
                return rendered
        return None
