"""
Diff utilities for the custom fields save pipeline.
Classifies every submitted field against its stored value using DeepDiff,
so a save only touches keys that really changed.
"""

from enum import Enum
from typing import Dict, Any, List, Optional, Iterable
from deepdiff import DeepDiff
from pydantic import BaseModel, ConfigDict
import logging

logger = logging.getLogger(__name__)


class ChangeType(str, Enum):
    UNCHANGED = "unchanged"
    CREATED = "created"
    UPDATED = "updated"
    CLEARED = "cleared"


class DiffEntry(BaseModel):
    """Classification of one key between the stored and the submitted value."""
    model_config = ConfigDict(frozen=True)

    key: str
    change: ChangeType
    old: Any = None
    new: Any = None


class DiffSet(BaseModel):
    """Per-key classification of a submission."""
    model_config = ConfigDict(frozen=True)

    entries: Dict[str, DiffEntry] = {}

    @property
    def changes(self) -> List[DiffEntry]:
        """Entries that have to be written (created, updated or cleared)."""
        return [entry for entry in self.entries.values() if entry.change != ChangeType.UNCHANGED]

    @property
    def is_empty(self) -> bool:
        return not self.changes

    def of(self, change: ChangeType) -> List[DiffEntry]:
        return [entry for entry in self.entries.values() if entry.change == change]

    def summary(self) -> Dict[str, int]:
        return get_change_summary(self)


def normalize_value(v: Any) -> Any:
    """Fold the empty representations (None, '' and []) into None.

    Any other value is returned as it is: encoded values are already in
    their storage form, so '007' and '7' stay different.
    """
    if v is None or v == '' or v == []:
        return None
    return v


def values_differ(old: Any, new: Any) -> bool:
    """True when two encoded values differ. Lists are compared in order."""
    normalized_old = normalize_value(old)
    normalized_new = normalize_value(new)
    if normalized_old is None or normalized_new is None:
        return normalized_old is not normalized_new
    diff = DeepDiff(normalized_old, normalized_new, ignore_numeric_type_changes=True)
    return bool(diff)


def classify(key: str, old: Any, new: Any, present: Optional[bool] = None) -> DiffEntry:
    """
    Classify one key into unchanged, created, updated or cleared.

    Args:
        key: Storage key
        old: Stored value
        new: Encoded submitted value
        present: Whether the key exists in storage; defaults to a non-empty stored value

    Returns:
        DiffEntry for the key
    """
    if present is None:
        present = normalize_value(old) is not None
    new_empty = normalize_value(new) is None

    if not present:
        change = ChangeType.UNCHANGED if new_empty else ChangeType.CREATED
    elif new_empty:
        change = ChangeType.CLEARED if normalize_value(old) is not None else ChangeType.UNCHANGED
    elif values_differ(old, new):
        change = ChangeType.UPDATED
    else:
        change = ChangeType.UNCHANGED
    return DiffEntry(key=key, change=change, old=old, new=new)


def calculate_diff_set(
    original: Dict[str, Any],
    modified: Dict[str, Any],
    keys: Optional[Iterable[str]] = None
) -> DiffSet:
    """
    Calculate the per-key diff set between stored and submitted values.

    If `keys` is provided only those keys are classified; otherwise every
    key of `modified` is. Keys present only in `original` are never touched
    unless they are listed in `keys`.

    Args:
        original: Stored mapping (absent keys read as None)
        modified: Encoded submitted mapping
        keys: Optional restriction of the keys to classify

    Returns:
        DiffSet with one entry per classified key
    """
    selected = list(keys) if keys is not None else list(modified.keys())
    entries = {
        key: classify(key, original.get(key), modified.get(key), present=key in original)
        for key in selected
    }
    diff_set = DiffSet(entries=entries)
    logger.debug(f"Calculated diff set: {get_change_summary(diff_set)}")
    return diff_set


def has_changes(diff_set: DiffSet) -> bool:
    """
    Check if there are any changes in the diff set.

    Args:
        diff_set: Diff set from calculate_diff_set

    Returns:
        True if there are changes, False otherwise
    """
    return diff_set is not None and not diff_set.is_empty


def get_change_summary(diff_set: DiffSet) -> Dict[str, int]:
    """
    Get summary statistics of changes.

    Args:
        diff_set: Diff set from calculate_diff_set

    Returns:
        Dictionary with change counts per change type plus the total
    """
    summary = {change.value: 0 for change in ChangeType if change != ChangeType.UNCHANGED}
    for entry in diff_set.changes:
        summary[entry.change.value] += 1
    summary['total'] = sum(summary.values())
    return summary
