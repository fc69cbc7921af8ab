"""
Dashboard widgets for the custom fields app.

A widget is a named, read-only summary block placed inside a section.
Widgets are looked up by name in a registry; unknown names render nothing.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict

from .render_tree import RenderedWidget

logger = logging.getLogger(__name__)

USER_ROLES = (
    ('administrator', 'Administrators'),
    ('subscriber', 'Subscribers'),
    ('contributor', 'Contributors'),
    ('author', 'Authors'),
    ('editor', 'Editors'),
)


class PluginInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    active: bool = False


class SiteStats(ABC):
    """Site statistics provided by the host."""

    @abstractmethod
    def count_records(self, record_type: str) -> Dict[str, int]:
        """Counts by status: publish, draft, trash."""

    @abstractmethod
    def count_users(self) -> Dict[str, int]:
        """Counts by role."""

    @abstractmethod
    def count_comments(self) -> int:
        ...

    @abstractmethod
    def plugins(self) -> List[PluginInfo]:
        ...


class InMemorySiteStats(SiteStats):
    """Statistics seeded from plain dictionaries (config.yaml 'stats')."""

    def __init__(self, records: Optional[Dict[str, Dict[str, int]]] = None,
                 users: Optional[Dict[str, int]] = None,
                 comments: int = 0,
                 plugins: Optional[List[Any]] = None):
        self._records = records or {}
        self._users = users or {}
        self._comments = comments
        self._plugins = [
            p if isinstance(p, PluginInfo) else PluginInfo(**p) if isinstance(p, dict) else PluginInfo(name=str(p))
            for p in plugins or []
        ]

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'InMemorySiteStats':
        stats = config.get('stats') or {}
        return cls(
            records=stats.get('records'),
            users=stats.get('users'),
            comments=int(stats.get('comments') or 0),
            plugins=stats.get('plugins')
        )

    def count_records(self, record_type: str) -> Dict[str, int]:
        counts = self._records.get(record_type, {})
        return {status: int(counts.get(status, 0)) for status in ('publish', 'draft', 'trash')}

    def count_users(self) -> Dict[str, int]:
        return dict(self._users)

    def count_comments(self) -> int:
        return self._comments

    def plugins(self) -> List[PluginInfo]:
        return list(self._plugins)


def _status_block(heading: str, noun: str, counts: Dict[str, int]) -> Dict[str, Any]:
    return {
        'heading': heading,
        'counts': [
            {'label': f"Published {noun}:", 'count': counts['publish']},
            {'label': f"Draft {noun}:", 'count': counts['draft']},
            {'label': f"Trashed {noun}:", 'count': counts['trash']},
        ],
        'chart': dict(counts),
        'items': []
    }


def activity_widget(stats: SiteStats) -> RenderedWidget:
    """Published / draft / trashed counts for pages and posts."""
    return RenderedWidget(
        name='activity',
        title='Activity',
        blocks=(
            _status_block('Pages', 'pages', stats.count_records('page')),
            _status_block('Posts', 'posts', stats.count_records('post')),
        )
    )


def statistics_widget(stats: SiteStats) -> RenderedWidget:
    """User counts by role and the total number of comments."""
    users = stats.count_users()
    return RenderedWidget(
        name='statistics',
        title='Statistics',
        blocks=(
            {
                'heading': 'Users',
                'counts': [
                    {'label': f"{label}:", 'count': users[role]}
                    for role, label in USER_ROLES if role in users
                ],
                'chart': None,
                'items': []
            },
            {
                'heading': 'Comments',
                'counts': [{'label': 'Total number:', 'count': stats.count_comments()}],
                'chart': None,
                'items': []
            },
        )
    )


def plugins_widget(stats: SiteStats) -> RenderedWidget:
    """Installed, active and disabled plugin counts plus the plugin list."""
    plugins = stats.plugins()
    active = sum(1 for plugin in plugins if plugin.active)
    general = []
    if plugins:
        general = [
            {'label': 'Installed plugins:', 'count': len(plugins)},
            {'label': 'Active plugins:', 'count': active},
            {'label': 'Disabled plugins:', 'count': len(plugins) - active},
        ]
    return RenderedWidget(
        name='plugins',
        title='Plugins',
        blocks=(
            {'heading': 'General:', 'counts': general, 'chart': None, 'items': []},
            {
                'heading': 'Installed plugins:',
                'counts': [],
                'chart': None,
                'items': [{'name': plugin.name, 'active': plugin.active} for plugin in plugins]
            },
        )
    )


WidgetBuilder = Callable[[SiteStats], RenderedWidget]


class WidgetRegistry:
    """Maps widget names to builder functions."""

    def __init__(self, builders: Optional[Dict[str, WidgetBuilder]] = None):
        self._builders: Dict[str, WidgetBuilder] = dict(builders or {})

    @classmethod
    def default(cls) -> 'WidgetRegistry':
        return cls({
            'activity': activity_widget,
            'statistics': statistics_widget,
            'plugins': plugins_widget,
        })

    def register(self, name: str, builder: WidgetBuilder) -> None:
        self._builders[name] = builder

    def names(self) -> List[str]:
        return list(self._builders)

    def build(self, name: str, stats: Optional[SiteStats]) -> Optional[RenderedWidget]:
        """Build a widget; None for unknown names or when no statistics are available."""
        builder = self._builders.get(name)
        if builder is None:
            logger.warning(f"Unknown widget '{name}' skipped")
            return None
        if stats is None:
            logger.debug(f"No site statistics available, widget '{name}' skipped")
            return None
        return builder(stats)
