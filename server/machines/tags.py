"""Tag set value type and the tag helpers used for bulk selection."""
from __future__ import annotations

from typing import TYPE_CHECKING, Dict, Iterable, Iterator, List

from .errors import MachineValidationError

if TYPE_CHECKING:  # pragma: no cover - hints only
    from .registry import Machine


def _check_tag(tag: object) -> str:
    if not isinstance(tag, str) or not tag:
        raise MachineValidationError(f"Tags must be non-empty strings, got {tag!r}")
    return tag


class TagSet:
    """Insertion-ordered set of string labels.

    Ordering only matters for serialization; equality and matching are
    plain set semantics.
    """

    __slots__ = ("_tags",)

    def __init__(self, tags: Iterable[str] | None = None) -> None:
        self._tags: Dict[str, None] = {}
        if tags is None:
            return
        if isinstance(tags, str):
            raise MachineValidationError("Tags must be a list of strings, not a single string")
        try:
            for tag in tags:
                self._tags[_check_tag(tag)] = None
        except TypeError as exc:
            raise MachineValidationError(f"Tags must be a list of strings: {exc}") from exc

    def add(self, tag: str) -> bool:
        """Add ``tag``; return False when it was already present."""
        _check_tag(tag)
        if tag in self._tags:
            return False
        self._tags[tag] = None
        return True

    def remove(self, tag: str) -> bool:
        """Remove ``tag``; return False when it was not present."""
        if tag not in self._tags:
            return False
        del self._tags[tag]
        return True

    def contains_all(self, required: Iterable[str]) -> bool:
        return all(tag in self._tags for tag in required)

    def copy(self) -> "TagSet":
        return TagSet(self._tags)

    def to_list(self) -> List[str]:
        return list(self._tags)

    def __contains__(self, tag: object) -> bool:
        return tag in self._tags

    def __iter__(self) -> Iterator[str]:
        return iter(self._tags)

    def __len__(self) -> int:
        return len(self._tags)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, TagSet):
            return self._tags.keys() == other._tags.keys()
        if isinstance(other, (set, frozenset)):
            return set(self._tags) == other
        return NotImplemented

    def __repr__(self) -> str:
        return f"TagSet({self.to_list()!r})"


def add_tag(machine: "Machine", tag: str) -> bool:
    return machine.tags.add(tag)


def remove_tag(machine: "Machine", tag: str) -> bool:
    return machine.tags.remove(tag)


def matches(machine: "Machine", required_tags: Iterable[str]) -> bool:
    """True when every required tag is on the machine; extra tags are ignored."""
    return machine.tags.contains_all(required_tags)


__all__ = ["TagSet", "add_tag", "matches", "remove_tag"]
