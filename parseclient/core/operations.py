"""
Pending field mutations.

Each operation describes one change queued on a single field of an object.
``apply`` gives the in-memory effect on a prior value; ``merge_operations``
collapses two operations queued on the same field before a save.
"""
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Tuple

from parseclient.core.exceptions import ErrorCode, ValidationError


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _type_error(message: str) -> ValidationError:
    return ValidationError(message, code=ErrorCode.INCORRECT_TYPE)


def _is_cleared(op: Any) -> bool:
    return isinstance(op, UnsetOperation) or (
        isinstance(op, SetOperation) and op.value is None
    )


def _unique(items: Iterable[Any]) -> List[Any]:
    result: List[Any] = []
    for item in items:
        if item not in result:
            result.append(item)
    return result


class FieldOperation:
    """Base class of the operation variants."""

    def apply(self, old_value: Any) -> Any:
        raise NotImplementedError


@dataclass(frozen=True)
class SetOperation(FieldOperation):
    value: Any

    def apply(self, old_value: Any) -> Any:
        return self.value


@dataclass(frozen=True)
class UnsetOperation(FieldOperation):
    def apply(self, old_value: Any) -> Any:
        return None


@dataclass(frozen=True)
class IncrementOperation(FieldOperation):
    amount: float

    def __post_init__(self):
        if not _is_number(self.amount):
            raise _type_error("Increment amount must be a number")

    def apply(self, old_value: Any) -> Any:
        if old_value is None:
            return self.amount
        if _is_number(old_value):
            return old_value + self.amount
        raise _type_error("Cannot increment non-numeric value")


@dataclass(frozen=True)
class AddOperation(FieldOperation):
    objects: Tuple[Any, ...]

    def apply(self, old_value: Any) -> Any:
        if old_value is None:
            return list(self.objects)
        if isinstance(old_value, list):
            return [*old_value, *self.objects]
        raise _type_error("Cannot add to non-array value")


@dataclass(frozen=True)
class AddUniqueOperation(FieldOperation):
    objects: Tuple[Any, ...]

    def apply(self, old_value: Any) -> Any:
        if old_value is None:
            return _unique(self.objects)
        if not isinstance(old_value, list):
            raise _type_error("Cannot add to non-array value")
        result = list(old_value)
        for obj in self.objects:
            if obj not in result:
                result.append(obj)
        return result


@dataclass(frozen=True)
class RemoveOperation(FieldOperation):
    objects: Tuple[Any, ...]

    def apply(self, old_value: Any) -> Any:
        if old_value is None:
            return []
        if not isinstance(old_value, list):
            raise _type_error("Cannot remove from non-array value")
        return [item for item in old_value if item not in self.objects]


@dataclass(frozen=True)
class RelationOperation(FieldOperation):
    objects_to_add: Tuple[Any, ...] = field(default_factory=tuple)
    objects_to_remove: Tuple[Any, ...] = field(default_factory=tuple)

    def __post_init__(self):
        names = {
            getattr(obj, "class_name", None)
            for obj in (*self.objects_to_add, *self.objects_to_remove)
        }
        if None in names:
            raise _type_error("Relations can only hold objects")
        if len(names) > 1:
            raise _type_error(
                f"All objects in a relation must have the same class, got {sorted(names)}"
            )

    @property
    def target_class_name(self) -> Optional[str]:
        for obj in (*self.objects_to_add, *self.objects_to_remove):
            return obj.class_name
        return None

    def apply(self, old_value: Any) -> Any:
        # Relation membership lives on the server.
        return old_value


def merge_operations(
    later: FieldOperation, earlier: Optional[FieldOperation]
) -> FieldOperation:
    """
    Combine ``later`` with an ``earlier`` operation queued on the same field.

    Raises:
        ValidationError: when the pair cannot be combined, e.g. an increment
        queued after a non-numeric set.
    """
    if earlier is None:
        return later

    if isinstance(later, (SetOperation, UnsetOperation)):
        return later

    if isinstance(later, IncrementOperation):
        if isinstance(earlier, IncrementOperation):
            return IncrementOperation(earlier.amount + later.amount)
        if _is_cleared(earlier):
            return SetOperation(later.amount)
        if isinstance(earlier, SetOperation) and _is_number(earlier.value):
            return SetOperation(earlier.value + later.amount)
        raise _type_error("Cannot merge an increment with the previous operation")

    if isinstance(later, AddOperation):
        if isinstance(earlier, AddOperation):
            return AddOperation((*earlier.objects, *later.objects))
        if _is_cleared(earlier):
            return SetOperation(list(later.objects))
        if isinstance(earlier, SetOperation) and isinstance(earlier.value, list):
            return SetOperation([*earlier.value, *later.objects])
        raise _type_error("Cannot merge an add with the previous operation")

    if isinstance(later, AddUniqueOperation):
        if isinstance(earlier, AddUniqueOperation):
            return AddUniqueOperation(tuple(_unique((*earlier.objects, *later.objects))))
        if _is_cleared(earlier):
            return SetOperation(_unique(later.objects))
        if isinstance(earlier, SetOperation) and isinstance(earlier.value, list):
            return SetOperation(later.apply(earlier.value))
        raise _type_error("Cannot merge an add-unique with the previous operation")

    if isinstance(later, RemoveOperation):
        if isinstance(earlier, RemoveOperation):
            return RemoveOperation(tuple(_unique((*earlier.objects, *later.objects))))
        if _is_cleared(earlier):
            return earlier
        if isinstance(earlier, SetOperation) and isinstance(earlier.value, list):
            return SetOperation(later.apply(earlier.value))
        raise _type_error("Cannot merge a remove with the previous operation")

    if isinstance(later, RelationOperation):
        if isinstance(earlier, RelationOperation):
            to_add = _unique(
                [o for o in earlier.objects_to_add if o not in later.objects_to_remove]
                + list(later.objects_to_add)
            )
            to_remove = _unique(
                [o for o in earlier.objects_to_remove if o not in later.objects_to_add]
                + list(later.objects_to_remove)
            )
            return RelationOperation(tuple(to_add), tuple(to_remove))
        raise _type_error("Cannot merge a relation edit with the previous operation")

    raise TypeError(f"Unknown field operation: {type(later).__name__}")
