"""
Streamlit rendering of the custom fields render tree.

Draws a RenderedForm (navigation, sections, widgets, fields) and collects
the submitted raw values keyed by field name. Also provides the toast sink
the notification channel is flushed into.
"""

import streamlit as st
import pandas as pd
from datetime import date, datetime
from typing import Dict, Any, List, Optional
import logging

from dateutil import parser

from .field_registry import NO_SELECTION, Attachment, GeoPoint
from .notifier import Notification, NotificationType
from .render_tree import RenderedField, RenderedForm, RenderedSection, RenderedWidget

logger = logging.getLogger(__name__)

NOTIFICATION_ICONS = {
    NotificationType.SUCCESS: '✅',
    NotificationType.INFO: 'ℹ️',
    NotificationType.WARNING: '⚠️',
    NotificationType.FAILURE: '❌',
}

PLACEHOLDER_LABEL = "Select one of the options"


def toast_sink(notification: Notification) -> None:
    """Show a notification as a Streamlit toast."""
    icon = NOTIFICATION_ICONS.get(notification.type, 'ℹ️')
    st.toast(notification.message, icon=icon)


def show_fatal_error(message: str) -> None:
    st.error(f"❌ {message}")


def _numeric_kwargs(field: RenderedField) -> Dict[str, Any]:
    """Number input kwargs with one consistent numeric type."""
    attrs = field.attributes
    values = [field.value, attrs.get('min'), attrs.get('max'), attrs.get('step')]
    use_float = any(isinstance(v, float) and not float(v).is_integer() for v in values if v is not None)
    cast = float if use_float else int
    return {
        'value': cast(field.value) if field.value is not None else None,
        'min_value': cast(attrs['min']) if attrs.get('min') is not None else None,
        'max_value': cast(attrs['max']) if attrs.get('max') is not None else None,
        'step': cast(attrs['step']) if attrs.get('step') is not None else None,
    }


def _parse_display_date(value: Any, fmt: str) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value:
        return None
    try:
        return parser.parse(str(value), dayfirst=fmt.lower().startswith('d')).date()
    except (ValueError, OverflowError) as e:
        logger.warning(f"Failed to parse date string '{value}': {e}")
        return None


class CustomFieldsView:
    """Streamlit widgets for the render tree."""

    @staticmethod
    def render_navigation(form: RenderedForm) -> Optional[int]:
        """Page selector for global settings; returns the chosen page index."""
        if len(form.navigation) < 2:
            return None
        names = [item.name for item in form.navigation]
        active = next((item.index for item in form.navigation if item.active), 0)
        choice = st.radio(
            "Pages", options=list(range(len(names))), index=active,
            format_func=lambda i: names[i], horizontal=True, key=f"nav_{form.scope}"
        )
        return int(choice)

    @staticmethod
    def render_form(form: RenderedForm) -> Optional[Dict[str, Any]]:
        """
        Draw the form.

        Returns:
            Submitted raw values keyed by field name, or None when the form
            was not submitted
        """
        if form.fatal_error:
            show_fatal_error(form.fatal_error)
            return None

        if form.title:
            st.subheader(form.title)

        if form.is_empty:
            st.info("No custom fields apply to this selection.")
            return None

        page = form.page
        with st.form(f"custom_fields_{form.scope}_{page.index}", clear_on_submit=False):
            values: Dict[str, Any] = {field.name: field.value for field in form.data_fields}

            sections = list(page.sections)
            if page.masonry and len(sections) > 1:
                columns = st.columns(2)
                for i, section in enumerate(sections):
                    with columns[i % 2]:
                        values.update(CustomFieldsView.render_section(section, form.scope))
            else:
                for section in sections:
                    values.update(CustomFieldsView.render_section(section, form.scope))

            submitted = False
            if page.show_save:
                submitted = st.form_submit_button("Save", type="primary")
            else:
                st.form_submit_button("Save", disabled=True)

        return values if submitted else None

    @staticmethod
    def render_section(section: RenderedSection, scope: str) -> Dict[str, Any]:
        if section.title:
            st.markdown(f"#### {section.title}")
        if section.subtitle:
            st.caption(section.subtitle)

        for widget in section.widgets:
            CustomFieldsView.render_widget(widget)

        values: Dict[str, Any] = {}
        for field in section.fields:
            value = CustomFieldsView.render_field(field, f"cf_{scope}_{field.name}")
            if field.name is not None:
                values[field.name] = value
        return values

    @staticmethod
    def render_widget(widget: RenderedWidget) -> None:
        with st.container(border=True):
            st.markdown(f"**{widget.title}**")
            for block in widget.blocks:
                if block.get('heading'):
                    st.caption(block['heading'])
                counts = block.get('counts') or []
                if counts:
                    st.dataframe(pd.DataFrame(counts), hide_index=True, use_container_width=True)
                if block.get('chart'):
                    chart = pd.DataFrame({'count': list(block['chart'].values())}, index=list(block['chart'].keys()))
                    st.bar_chart(chart)
                for item in block.get('items') or []:
                    marker = '🟢' if item.get('active') else '⚪'
                    st.write(f"{marker} {item.get('name')}")

    @staticmethod
    def render_field(field: RenderedField, key: str) -> Any:
        """Draw one control and return its raw value."""
        label = field.label or field.name or ''
        if field.required:
            label = f"{label} *"
        help_text = field.description
        control = field.control

        if field.hidden:
            return field.value

        if control == 'plain_text':
            CustomFieldsView._render_plain_text(field)
            return None

        if control in ('text', 'email'):
            value = st.text_input(label, value=field.value or '', help=help_text, key=key)
            if control == 'email' and value and '@' not in value:
                st.warning(f"'{value}' does not look like an email address")
            return value

        if control in ('textarea', 'editor'):
            rows = field.attributes.get('rows', 4)
            return st.text_area(label, value=field.value or '', help=help_text, key=key,
                                height=max(68, int(rows) * 28))

        if control == 'number':
            return st.number_input(label, help=help_text, key=key, **_numeric_kwargs(field))

        if control == 'checkbox':
            return st.checkbox(label, value=bool(field.value), help=help_text, key=key)

        if control == 'date':
            fmt = field.attributes.get('format', 'dd/mm/yy')
            return st.date_input(label, value=_parse_display_date(field.value, fmt), help=help_text, key=key)

        if control in ('file', 'image'):
            return CustomFieldsView._render_attachment(field, label, key)

        if control == 'gallery':
            return CustomFieldsView._render_gallery(field, label, key)

        if control == 'map':
            return CustomFieldsView._render_map(field, label, key)

        if control == 'select':
            labels = {option.id: option.label for option in field.options}
            options = [NO_SELECTION] + list(labels)
            selected = field.selected_ids
            index = options.index(selected[0]) if selected else 0
            return st.selectbox(
                label, options=options, index=index, help=help_text, key=key,
                format_func=lambda option_id: PLACEHOLDER_LABEL if option_id == NO_SELECTION else labels[option_id]
            )

        if control == 'multiselect':
            labels = {option.id: option.label for option in field.options}
            return st.multiselect(
                label, options=list(labels), default=field.selected_ids, help=help_text, key=key,
                format_func=lambda option_id: labels[option_id]
            )

        logger.warning(f"No Streamlit control for '{control}', using text input")
        return st.text_input(label, value=str(field.value or ''), help=help_text, key=key)

    @staticmethod
    def _render_plain_text(field: RenderedField) -> None:
        for block in field.attributes.get('blocks', []):
            if block.get('heading'):
                st.markdown(f"**{block['heading']}**")
            for paragraph in block.get('paragraphs', []):
                st.write(paragraph)
            for ribbon in block.get('ribbons', []):
                st.info(ribbon)
            if block.get('link'):
                st.markdown(f"[{block['link_text']}]({block['link']})")

    @staticmethod
    def _render_attachment(field: RenderedField, label: str, key: str) -> Optional[Dict[str, Any]]:
        current: Optional[Attachment] = field.value
        url = st.text_input(label, value=current.url if current else '', help=field.description, key=key)
        if current and current.url and field.control == 'image':
            st.image(current.url, width=160)
        if not url:
            return None
        attachment_id = current.id if current and current.url == url else None
        return {'id': attachment_id, 'url': url}

    @staticmethod
    def _render_gallery(field: RenderedField, label: str, key: str) -> List[Dict[str, Any]]:
        current: List[Attachment] = field.value or []
        ids = {item.url: item.id for item in current}
        text = st.text_area(
            label, value='\n'.join(item.url for item in current),
            help=field.description or "One image URL per line", key=key
        )
        urls = [line.strip() for line in text.splitlines() if line.strip()]
        return [{'id': ids.get(url), 'url': url} for url in urls]

    @staticmethod
    def _render_map(field: RenderedField, label: str, key: str) -> Dict[str, Any]:
        point: GeoPoint = field.value or GeoPoint()
        st.markdown(label)
        col_lat, col_lng, col_zoom = st.columns(3)
        with col_lat:
            lat = st.number_input("Latitude", value=float(point.lat), min_value=-90.0, max_value=90.0,
                                  step=0.0001, format="%.6f", key=f"{key}_lat")
        with col_lng:
            lng = st.number_input("Longitude", value=float(point.lng), min_value=-180.0, max_value=180.0,
                                  step=0.0001, format="%.6f", key=f"{key}_lng")
        with col_zoom:
            zoom = st.number_input("Zoom", value=int(point.zoom), min_value=0, max_value=21, step=1,
                                   key=f"{key}_zoom")
        st.map(pd.DataFrame({'lat': [lat], 'lon': [lng]}), zoom=int(zoom),
               height=CustomFieldsView._pixels(field.attributes.get('height')))
        return {'lat': lat, 'lng': lng, 'zoom': zoom}

    @staticmethod
    def _pixels(height: Any) -> Optional[int]:
        if not height:
            return None
        digits = ''.join(ch for ch in str(height) if ch.isdigit())
        return int(digits) if digits else None
