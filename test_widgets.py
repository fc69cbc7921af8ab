"""
Unit tests for dashboard widgets.
"""

from custom_fields.widgets import InMemorySiteStats, PluginInfo, WidgetRegistry


class TestWidgets:

    def setup_method(self):
        self.stats = InMemorySiteStats(
            records={'post': {'publish': 5, 'draft': 2, 'trash': 1}, 'page': {'publish': 3}},
            users={'administrator': 1, 'subscriber': 12, 'shop_manager': 2},
            comments=40,
            plugins=[{'name': 'SEO', 'active': True}, 'Cache', PluginInfo(name='Forms', active=True)]
        )
        self.registry = WidgetRegistry.default()

    def test_activity_counts(self):
        widget = self.registry.build('activity', self.stats)

        pages, posts = widget.blocks
        assert pages['heading'] == 'Pages'
        assert [c['count'] for c in pages['counts']] == [3, 0, 0]
        assert [c['count'] for c in posts['counts']] == [5, 2, 1]
        assert posts['chart'] == {'publish': 5, 'draft': 2, 'trash': 1}

    def test_statistics_lists_known_roles(self):
        users, comments = self.registry.build('statistics', self.stats).blocks

        assert [c['label'] for c in users['counts']] == ['Administrators:', 'Subscribers:']
        assert comments['counts'][0]['count'] == 40

    def test_plugins_counts(self):
        general, installed = self.registry.build('plugins', self.stats).blocks

        assert [c['count'] for c in general['counts']] == [3, 2, 1]
        assert [i['name'] for i in installed['items']] == ['SEO', 'Cache', 'Forms']

    def test_no_plugins_has_no_general_counts(self):
        general, _ = self.registry.build('plugins', InMemorySiteStats()).blocks
        assert general['counts'] == []

    def test_unknown_widget_is_skipped(self):
        assert self.registry.build('weather', self.stats) is None

    def test_missing_stats_skips_widget(self):
        assert self.registry.build('activity', None) is None

    def test_register_custom_widget(self):
        from custom_fields.render_tree import RenderedWidget

        self.registry.register('hello', lambda stats: RenderedWidget(name='hello', title='Hello'))
        assert self.registry.build('hello', self.stats).title == 'Hello'
        assert 'hello' in self.registry.names()

    def test_stats_from_config(self):
        stats = InMemorySiteStats.from_config({'stats': {'comments': '9', 'users': {'editor': 2}}})
        assert stats.count_comments() == 9
        assert stats.count_users() == {'editor': 2}
