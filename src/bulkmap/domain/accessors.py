"""Compiled property accessors.

Reconciliation reads and writes properties O(properties × batch size) times, so
each property path is turned into a getter/setter pair once per mapping and
looked up by name afterwards.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import FrozenInstanceError, dataclass, replace
from operator import attrgetter
from typing import TYPE_CHECKING, Any, TypeAlias

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Iterator, Sequence

    from .facts import OwnedMember, RelationFacts

Getter: TypeAlias = "Callable[[Any], Any]"
Setter: TypeAlias = "Callable[[Any, Any], None]"
Factory: TypeAlias = "Callable[[], Any]"


@dataclass(frozen=True, slots=True)
class PropertyAccessor:
    name: str
    get: Getter
    set: Setter
    python_type: type = object


class AccessorTable(Mapping[str, PropertyAccessor]):
    """Read-only table of accessors keyed by property path."""

    __slots__ = ("_accessors",)

    def __init__(self, accessors: Iterable[PropertyAccessor] = ()) -> None:
        self._accessors: dict[str, PropertyAccessor] = {}
        for accessor in accessors:
            self._accessors.setdefault(accessor.name, accessor)

    def __getitem__(self, name: str) -> PropertyAccessor:
        return self._accessors[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._accessors)

    def __len__(self) -> int:
        return len(self._accessors)

    def __repr__(self) -> str:
        return f"AccessorTable({list(self._accessors)!r})"

    def get_value(self, entity: object, name: str) -> Any:
        return self._accessors[name].get(entity)

    def set_value(self, entity: object, name: str, value: Any) -> None:
        self._accessors[name].set(entity, value)

    def copy_values(self, source: object, target: object, names: Iterable[str]) -> None:
        for name in names:
            accessor = self._accessors[name]
            accessor.set(target, accessor.get(source))


def build_accessor_table(facts: RelationFacts) -> AccessorTable:
    """Create accessors for every settable property path of ``facts``."""

    accessors: list[PropertyAccessor] = [
        attribute_accessor(fact.property_name, fact.python_type)
        for fact in facts.columns
        if not fact.is_shadow
    ]
    accessors.extend(
        attribute_accessor(navigation.name)
        for navigation in facts.navigations
        if not navigation.is_collection
    )
    accessors.extend(_owned_accessors(facts.owned_members, prefix=(), factories=()))
    return AccessorTable(accessors)


def attribute_accessor(name: str, python_type: type = object) -> PropertyAccessor:
    def _set(entity: Any, value: Any) -> None:
        setattr(entity, name, value)

    return PropertyAccessor(name=name, get=attrgetter(name), set=_set, python_type=python_type)


def path_accessor(
    path: Sequence[str],
    factories: Sequence[Factory | None],
    python_type: type = object,
) -> PropertyAccessor:
    """Accessor for a dotted path through owned value objects.

    ``factories`` holds one entry per intermediate segment and creates the owned
    object when the owner does not have one yet. Frozen dataclass values are
    replaced rather than mutated, and each level is re-assigned so ORM change
    tracking notices the write.
    """

    segments = tuple(path)
    chain = tuple(factories)
    getter = attrgetter(".".join(segments))

    def _get(entity: Any) -> Any:
        try:
            return getter(entity)
        except AttributeError:
            # an owned object that has not been created yet
            return None

    def _set(entity: Any, value: Any) -> None:
        _assign(entity, segments, chain, value)

    return PropertyAccessor(name=".".join(segments), get=_get, set=_set, python_type=python_type)


def _assign(
    target: Any,
    segments: tuple[str, ...],
    factories: tuple[Factory | None, ...],
    value: Any,
) -> Any:
    head, rest = segments[0], segments[1:]
    if not rest:
        return _with_attribute(target, head, value)
    child = getattr(target, head, None)
    if child is None:
        factory = factories[0] if factories else None
        if factory is None:
            raise AttributeError(f"Cannot create owned value '{head}' on {type(target).__name__}")
        child = factory()
    child = _assign(child, rest, factories[1:], value)
    return _with_attribute(target, head, child)


def _with_attribute(target: Any, name: str, value: Any) -> Any:
    try:
        setattr(target, name, value)
    except FrozenInstanceError:
        return replace(target, **{name: value})
    return target


def _owned_accessors(
    members: Iterable[OwnedMember],
    *,
    prefix: tuple[str, ...],
    factories: tuple[Factory | None, ...],
) -> Iterator[PropertyAccessor]:
    for member in members:
        path = (*prefix, member.name)
        chain = (*factories, member.factory)
        if prefix:
            yield path_accessor(path, factories)
        for fact in member.facts:
            yield path_accessor((*path, fact.property_name), chain, fact.python_type)
        yield from _owned_accessors(member.nested, prefix=path, factories=chain)
