"""
Record and category catalogs used as option sources by choice fields.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)


class CatalogItem(BaseModel):
    """One selectable entry: a record or a category term."""
    model_config = ConfigDict(frozen=True)

    id: Union[int, str]
    title: str


class Catalog(ABC):
    """Live listing of records and category terms provided by the host."""

    @abstractmethod
    def record_type_exists(self, record_type: str) -> bool:
        ...

    @abstractmethod
    def records(self, record_type: str) -> List[CatalogItem]:
        """Records of the type, ordered by title."""

    @abstractmethod
    def category_type_exists(self, category_type: str) -> bool:
        ...

    @abstractmethod
    def categories(self, category_type: str) -> List[CatalogItem]:
        """Terms of the category type, ordered by name."""


class InMemoryCatalog(Catalog):
    """Catalog backed by plain dictionaries, seeded from config.yaml."""

    def __init__(self, records: Optional[Dict[str, List[Any]]] = None,
                 categories: Optional[Dict[str, List[Any]]] = None):
        self._records = {name: self._items(entries) for name, entries in (records or {}).items()}
        self._categories = {name: self._items(entries) for name, entries in (categories or {}).items()}

    @staticmethod
    def _items(entries: Any) -> List[CatalogItem]:
        items = []
        for entry in entries or []:
            if isinstance(entry, CatalogItem):
                items.append(entry)
            elif isinstance(entry, dict):
                items.append(CatalogItem(id=entry['id'], title=str(entry.get('title', entry['id']))))
            else:
                items.append(CatalogItem(id=entry, title=str(entry)))
        return sorted(items, key=lambda item: item.title.lower())

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'InMemoryCatalog':
        catalog = config.get('catalog') or {}
        return cls(records=catalog.get('records') or {}, categories=catalog.get('categories') or {})

    def record_type_exists(self, record_type: str) -> bool:
        return record_type in self._records

    def records(self, record_type: str) -> List[CatalogItem]:
        return list(self._records.get(record_type, []))

    def category_type_exists(self, category_type: str) -> bool:
        return category_type in self._categories

    def categories(self, category_type: str) -> List[CatalogItem]:
        return list(self._categories.get(category_type, []))

    def record_types(self) -> List[str]:
        return list(self._records)

    def category_types(self) -> List[str]:
        return list(self._categories)
