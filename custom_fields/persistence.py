"""
Persistence adapter for the custom fields app.

Three storage scopes sit behind one contract (read, read_all, write_all,
clear_all, diff):

- global: one flat mapping stored under the configured option name
- record: one value per (record id, key) in the record meta store
- category: one mapping per category stored as option 'taxonomy_<id>'

The backend is chosen from a mapping keyed by the scope discriminant.
Only changed keys are written and an empty diff set writes nothing.
"""

import json
import logging
from abc import ABC, abstractmethod
from copy import deepcopy
from pathlib import Path
from typing import Dict, Any, Optional, Union

from .diff_utils import ChangeType, DiffSet, calculate_diff_set
from .exceptions import PersistenceError
from .scope_resolver import ScopeContext, ScopeKind

logger = logging.getLogger(__name__)

CATEGORY_OPTION_PREFIX = "taxonomy_"


def category_option_name(category_id: Union[int, str]) -> str:
    return f"{CATEGORY_OPTION_PREFIX}{category_id}"


# ---------------------------------------------------------------------------
# Store interfaces
# ---------------------------------------------------------------------------

class OptionStore(ABC):
    """Key-value settings store holding whole mappings under an option name."""

    @abstractmethod
    def get_option(self, name: str, default: Any = None) -> Any:
        ...

    @abstractmethod
    def update_option(self, name: str, value: Any) -> None:
        ...

    @abstractmethod
    def delete_option(self, name: str) -> None:
        ...


class RecordMetaStore(ABC):
    """Per-record attribute store."""

    @abstractmethod
    def get_meta(self, record_id: Union[int, str], key: str) -> Any:
        """Stored value or None when the key is absent."""

    @abstractmethod
    def get_all_meta(self, record_id: Union[int, str]) -> Dict[str, Any]:
        ...

    @abstractmethod
    def add_meta(self, record_id: Union[int, str], key: str, value: Any) -> None:
        ...

    @abstractmethod
    def update_meta(self, record_id: Union[int, str], key: str, value: Any) -> None:
        ...

    @abstractmethod
    def delete_meta(self, record_id: Union[int, str], key: str) -> None:
        ...


class InMemoryOptionStore(OptionStore):
    """Option store kept in a dictionary; counts writes for inspection."""

    def __init__(self, options: Optional[Dict[str, Any]] = None):
        self.options: Dict[str, Any] = deepcopy(options) if options else {}
        self.write_count = 0

    def get_option(self, name: str, default: Any = None) -> Any:
        return deepcopy(self.options.get(name, default))

    def update_option(self, name: str, value: Any) -> None:
        self.options[name] = deepcopy(value)
        self.write_count += 1

    def delete_option(self, name: str) -> None:
        self.options.pop(name, None)
        self.write_count += 1


class InMemoryRecordMetaStore(RecordMetaStore):
    """Record meta store kept in a dictionary; logs every write call."""

    def __init__(self, meta: Optional[Dict[str, Dict[str, Any]]] = None):
        self.meta: Dict[str, Dict[str, Any]] = {
            str(record_id): dict(values) for record_id, values in (meta or {}).items()
        }
        self.calls: list = []

    def get_meta(self, record_id: Union[int, str], key: str) -> Any:
        return deepcopy(self.meta.get(str(record_id), {}).get(key))

    def get_all_meta(self, record_id: Union[int, str]) -> Dict[str, Any]:
        return deepcopy(self.meta.get(str(record_id), {}))

    def add_meta(self, record_id: Union[int, str], key: str, value: Any) -> None:
        self.calls.append(('add', str(record_id), key))
        self.meta.setdefault(str(record_id), {})[key] = deepcopy(value)

    def update_meta(self, record_id: Union[int, str], key: str, value: Any) -> None:
        self.calls.append(('update', str(record_id), key))
        self.meta.setdefault(str(record_id), {})[key] = deepcopy(value)

    def delete_meta(self, record_id: Union[int, str], key: str) -> None:
        self.calls.append(('delete', str(record_id), key))
        self.meta.get(str(record_id), {}).pop(key, None)


class _JsonFile:
    """Small helper reading and writing one JSON document."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        with open(self.path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"{self.path} does not contain a JSON object")
        return data

    def save(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        logger.debug(f"Wrote {self.path}")


class JsonFileOptionStore(OptionStore):
    """Option store persisted in <data_dir>/options.json."""

    def __init__(self, data_dir: Path):
        self._file = _JsonFile(Path(data_dir) / "options.json")

    def get_option(self, name: str, default: Any = None) -> Any:
        return self._file.load().get(name, default)

    def update_option(self, name: str, value: Any) -> None:
        data = self._file.load()
        data[name] = value
        self._file.save(data)

    def delete_option(self, name: str) -> None:
        data = self._file.load()
        if name in data:
            del data[name]
            self._file.save(data)


class JsonFileRecordMetaStore(RecordMetaStore):
    """Record meta store persisted in <data_dir>/record_meta.json."""

    def __init__(self, data_dir: Path):
        self._file = _JsonFile(Path(data_dir) / "record_meta.json")

    def get_meta(self, record_id: Union[int, str], key: str) -> Any:
        return self._file.load().get(str(record_id), {}).get(key)

    def get_all_meta(self, record_id: Union[int, str]) -> Dict[str, Any]:
        return dict(self._file.load().get(str(record_id), {}))

    def _set(self, record_id: Union[int, str], key: str, value: Any) -> None:
        data = self._file.load()
        data.setdefault(str(record_id), {})[key] = value
        self._file.save(data)

    def add_meta(self, record_id: Union[int, str], key: str, value: Any) -> None:
        self._set(record_id, key, value)

    def update_meta(self, record_id: Union[int, str], key: str, value: Any) -> None:
        self._set(record_id, key, value)

    def delete_meta(self, record_id: Union[int, str], key: str) -> None:
        data = self._file.load()
        if key in data.get(str(record_id), {}):
            del data[str(record_id)][key]
            self._file.save(data)


# ---------------------------------------------------------------------------
# Scope backends
# ---------------------------------------------------------------------------

class ScopeStorage(ABC):
    """Storage contract for one scope."""

    scope: ScopeKind

    @abstractmethod
    def read_all(self, context: ScopeContext) -> Dict[str, Any]:
        ...

    @abstractmethod
    def write_all(self, context: ScopeContext, diff_set: DiffSet) -> None:
        ...

    @abstractmethod
    def clear_all(self, context: ScopeContext) -> None:
        ...

    @abstractmethod
    def storage_key(self, context: ScopeContext, name: str) -> str:
        ...

    def read(self, context: ScopeContext, key: str) -> Any:
        return self.read_all(context).get(key)

    def _require_object(self, context: ScopeContext) -> Union[int, str]:
        if context.object_id is None:
            raise ValueError(f"{self.scope.value} scope needs an object id")
        return context.object_id


class GlobalScopeStorage(ScopeStorage):
    """Whole settings mapping replaced in a single write."""

    scope = ScopeKind.GLOBAL

    def __init__(self, option_store: OptionStore, option_name: str):
        self.option_store = option_store
        self.option_name = option_name

    def storage_key(self, context: ScopeContext, name: str) -> str:
        return f"{self.option_name}[{name}]"

    def read_all(self, context: ScopeContext) -> Dict[str, Any]:
        stored = self.option_store.get_option(self.option_name, {})
        return dict(stored) if isinstance(stored, dict) else {}

    def write_all(self, context: ScopeContext, diff_set: DiffSet) -> None:
        mapping = self.read_all(context)
        for entry in diff_set.changes:
            if entry.change == ChangeType.CLEARED:
                mapping.pop(entry.key, None)
            else:
                mapping[entry.key] = entry.new
        self.option_store.update_option(self.option_name, mapping)
        logger.info(f"Replaced option '{self.option_name}' ({len(mapping)} keys)")

    def clear_all(self, context: ScopeContext) -> None:
        self.option_store.delete_option(self.option_name)


class RecordScopeStorage(ScopeStorage):
    """Per-record values, touched one key at a time."""

    scope = ScopeKind.RECORD

    def __init__(self, meta_store: RecordMetaStore):
        self.meta_store = meta_store

    def storage_key(self, context: ScopeContext, name: str) -> str:
        return f"{context.object_id}:{name}"

    def read_all(self, context: ScopeContext) -> Dict[str, Any]:
        if context.object_id is None:
            return {}
        return self.meta_store.get_all_meta(context.object_id)

    def read(self, context: ScopeContext, key: str) -> Any:
        if context.object_id is None:
            return None
        return self.meta_store.get_meta(context.object_id, key)

    def write_all(self, context: ScopeContext, diff_set: DiffSet) -> None:
        record_id = self._require_object(context)
        for entry in diff_set.changes:
            if entry.change == ChangeType.CREATED:
                self.meta_store.add_meta(record_id, entry.key, entry.new)
            elif entry.change == ChangeType.UPDATED:
                self.meta_store.update_meta(record_id, entry.key, entry.new)
            elif entry.change == ChangeType.CLEARED:
                self.meta_store.delete_meta(record_id, entry.key)
        logger.info(f"Saved {len(diff_set.changes)} changed keys for record {record_id}")

    def clear_all(self, context: ScopeContext) -> None:
        record_id = self._require_object(context)
        for key in self.meta_store.get_all_meta(record_id):
            self.meta_store.delete_meta(record_id, key)


class CategoryScopeStorage(ScopeStorage):
    """Per-category mapping; keys outside the diff set are preserved."""

    scope = ScopeKind.CATEGORY

    def __init__(self, option_store: OptionStore):
        self.option_store = option_store

    def storage_key(self, context: ScopeContext, name: str) -> str:
        return f"{category_option_name(context.object_id)}[{name}]"

    def read_all(self, context: ScopeContext) -> Dict[str, Any]:
        if context.object_id is None:
            return {}
        stored = self.option_store.get_option(category_option_name(context.object_id), {})
        return dict(stored) if isinstance(stored, dict) else {}

    def write_all(self, context: ScopeContext, diff_set: DiffSet) -> None:
        category_id = self._require_object(context)
        blob = self.read_all(context)
        for entry in diff_set.changes:
            if entry.change == ChangeType.CLEARED:
                blob.pop(entry.key, None)
            else:
                blob[entry.key] = entry.new
        self.option_store.update_option(category_option_name(category_id), blob)
        logger.info(f"Saved {len(diff_set.changes)} changed keys for category {category_id}")

    def clear_all(self, context: ScopeContext) -> None:
        self.option_store.delete_option(category_option_name(self._require_object(context)))


class PersistenceAdapter:
    """
    Maps field values to and from the three storage scopes.

    Args:
        option_store: Settings store (global mapping and category blobs)
        meta_store: Per-record attribute store
        option_name: Option name holding the global mapping
    """

    def __init__(self, option_store: OptionStore, meta_store: RecordMetaStore, option_name: str):
        self.option_name = option_name
        self._backends: Dict[ScopeKind, ScopeStorage] = {
            ScopeKind.GLOBAL: GlobalScopeStorage(option_store, option_name),
            ScopeKind.RECORD: RecordScopeStorage(meta_store),
            ScopeKind.CATEGORY: CategoryScopeStorage(option_store),
        }

    def backend(self, context: ScopeContext) -> ScopeStorage:
        return self._backends[context.kind]

    def storage_key(self, context: ScopeContext, name: str) -> str:
        """Scope-qualified key; equal names in different scopes never collide."""
        return self.backend(context).storage_key(context, name)

    def read(self, context: ScopeContext, key: str) -> Any:
        """Stored value for a key, None when absent."""
        try:
            return self.backend(context).read(context, key)
        except Exception as e:
            raise PersistenceError(context.kind.value, "read", e)

    def read_all(self, context: ScopeContext) -> Dict[str, Any]:
        try:
            return self.backend(context).read_all(context)
        except Exception as e:
            raise PersistenceError(context.kind.value, "read", e)

    def diff(self, context: ScopeContext, submitted: Dict[str, Any]) -> DiffSet:
        """Classify encoded submitted values against what is stored."""
        return calculate_diff_set(self.read_all(context), submitted)

    def write_all(self, context: ScopeContext, diff_set: DiffSet) -> bool:
        """
        Write the changed keys of a diff set.

        Returns:
            True if anything was written, False for an empty diff set

        Raises:
            PersistenceError: If the backend fails
        """
        if diff_set.is_empty:
            logger.debug(f"No changes to save for {context}")
            return False
        try:
            self.backend(context).write_all(context, diff_set)
        except Exception as e:
            raise PersistenceError(context.kind.value, "save", e)
        return True

    def clear_all(self, context: ScopeContext) -> None:
        try:
            self.backend(context).clear_all(context)
        except Exception as e:
            raise PersistenceError(context.kind.value, "clear", e)
        logger.info(f"Cleared all stored values for {context}")
