"""
Unit tests for the Streamlit view with Streamlit calls mocked out.
"""

from datetime import date
from unittest.mock import MagicMock, patch

from custom_fields.field_registry import Attachment, GeoPoint
from custom_fields.notifier import Notification, NotificationType
from custom_fields.render_tree import (
    Option, RenderedField, RenderedForm, RenderedPage, RenderedSection
)
from custom_fields.streamlit_view import CustomFieldsView, toast_sink


def rendered(control, value=None, **kwargs):
    return RenderedField(name='f', type=control, control=control, label='Field', value=value, **kwargs)


class TestRenderField:

    @patch('streamlit.text_input')
    def test_text_input(self, mock_text_input):
        mock_text_input.return_value = 'typed'

        assert CustomFieldsView.render_field(rendered('text', 'current'), 'k') == 'typed'
        mock_text_input.assert_called_once_with('Field', value='current', help=None, key='k')

    @patch('streamlit.number_input')
    def test_number_input_uses_consistent_types(self, mock_number_input):
        field = rendered('number', 5, attributes={'min': 0, 'max': 10, 'step': 0.5})

        CustomFieldsView.render_field(field, 'k')

        kwargs = mock_number_input.call_args.kwargs
        assert isinstance(kwargs['value'], float)
        assert isinstance(kwargs['min_value'], float)
        assert kwargs['step'] == 0.5

    @patch('streamlit.checkbox')
    def test_checkbox(self, mock_checkbox):
        mock_checkbox.return_value = True
        assert CustomFieldsView.render_field(rendered('checkbox', False), 'k') is True
        assert mock_checkbox.call_args.kwargs['value'] is False

    @patch('streamlit.date_input')
    def test_date_parses_day_first(self, mock_date_input):
        CustomFieldsView.render_field(rendered('date', '09/03/2024', attributes={'format': 'dd/mm/yy'}), 'k')
        assert mock_date_input.call_args.kwargs['value'] == date(2024, 3, 9)

    @patch('streamlit.selectbox')
    def test_single_select_preselects(self, mock_selectbox):
        field = rendered('select', 'b', options=(Option(id='a', label='A'), Option(id='b', label='B', selected=True)))

        CustomFieldsView.render_field(field, 'k')

        args, kwargs = mock_selectbox.call_args
        assert kwargs['options'] == ['-1', 'a', 'b']
        assert kwargs['index'] == 2
        assert kwargs['format_func']('-1') == 'Select one of the options'

    @patch('streamlit.multiselect')
    def test_multi_select_defaults(self, mock_multiselect):
        field = rendered('multiselect', ['3'], options=(Option(id='3', label='Three', selected=True),
                                                         Option(id='5', label='Five')))
        CustomFieldsView.render_field(field, 'k')
        assert mock_multiselect.call_args.kwargs['default'] == ['3']

    @patch('streamlit.image')
    @patch('streamlit.text_input')
    def test_attachment_keeps_id_for_same_url(self, mock_text_input, mock_image):
        mock_text_input.return_value = 'a.png'
        field = rendered('image', Attachment(id=4, url='a.png'))

        assert CustomFieldsView.render_field(field, 'k') == {'id': 4, 'url': 'a.png'}

    @patch('streamlit.text_area')
    def test_gallery_lines(self, mock_text_area):
        mock_text_area.return_value = 'a.png\n\nb.png'
        field = rendered('gallery', [Attachment(id=1, url='a.png')])

        assert CustomFieldsView.render_field(field, 'k') == [{'id': 1, 'url': 'a.png'}, {'id': None, 'url': 'b.png'}]

    @patch('streamlit.map')
    @patch('streamlit.number_input')
    @patch('streamlit.columns')
    @patch('streamlit.markdown')
    def test_map_returns_components(self, mock_markdown, mock_columns, mock_number_input, mock_map):
        mock_columns.return_value = [MagicMock(), MagicMock(), MagicMock()]
        mock_number_input.side_effect = [1.5, 2.5, 7]

        value = CustomFieldsView.render_field(rendered('map', GeoPoint(), attributes={'height': '300px'}), 'k')

        assert value == {'lat': 1.5, 'lng': 2.5, 'zoom': 7}
        assert mock_map.call_args.kwargs['height'] == 300

    def test_hidden_field_returns_current_value(self):
        assert CustomFieldsView.render_field(rendered('hidden', 'secret', hidden=True), 'k') == 'secret'


class TestRenderForm:

    @patch('streamlit.error')
    def test_fatal_error(self, mock_error):
        assert CustomFieldsView.render_form(RenderedForm(fatal_error='Invalid initialization')) is None
        mock_error.assert_called_once()

    @patch('streamlit.info')
    @patch('streamlit.subheader')
    def test_empty_form(self, mock_subheader, mock_info):
        assert CustomFieldsView.render_form(RenderedForm(title='Nothing')) is None
        mock_info.assert_called_once()

    @patch('streamlit.form_submit_button')
    @patch('streamlit.text_input')
    @patch('streamlit.markdown')
    @patch('streamlit.form')
    @patch('streamlit.subheader')
    def test_submitted_values_include_data_fields(self, mock_subheader, mock_form, mock_markdown,
                                                  mock_text_input, mock_submit):
        mock_text_input.return_value = 'new'
        mock_submit.return_value = True
        form = RenderedForm(
            title='Options',
            page=RenderedPage(sections=(RenderedSection(title='S', fields=(
                RenderedField(name='tagline', type='text', control='text', value='old'),
            )),)),
            data_fields=(
                RenderedField(name='tagline', type='hidden', control='hidden', value='old', hidden=True),
                RenderedField(name='other', type='hidden', control='hidden', value='keep', hidden=True),
            )
        )

        values = CustomFieldsView.render_form(form)

        assert values == {'tagline': 'new', 'other': 'keep'}

    @patch('streamlit.form_submit_button')
    @patch('streamlit.text_input')
    @patch('streamlit.markdown')
    @patch('streamlit.form')
    @patch('streamlit.subheader')
    def test_hidden_save_button(self, mock_subheader, mock_form, mock_markdown, mock_text_input, mock_submit):
        mock_submit.return_value = True
        form = RenderedForm(page=RenderedPage(show_save=False, sections=(RenderedSection(fields=(
            RenderedField(name='x', type='text', control='text'),
        )),)))

        assert CustomFieldsView.render_form(form) is None
        assert mock_submit.call_args.kwargs['disabled'] is True


@patch('streamlit.toast')
def test_toast_sink(mock_toast):
    toast_sink(Notification(type=NotificationType.SUCCESS, title='Data saved', subtitle='Options data saved successfully.'))
    mock_toast.assert_called_once_with('Data saved: Options data saved successfully.', icon='✅')
