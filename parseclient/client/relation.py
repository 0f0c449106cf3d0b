from typing import Any, Dict, Optional

from parseclient.core.exceptions import PreconditionError
from parseclient.core.operations import RelationOperation, merge_operations


class ParseRelation:
    """
    Many-to-many link stored under ``key`` on a parent object.

    Edits are queued on the parent and sent with its next save; membership
    is only known to the server and is read back through ``query()``.
    """

    def __init__(self, parent, key: str, target_class_name: Optional[str] = None):
        self.parent = parent
        self.key = key
        self.target_class_name = target_class_name

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "ParseRelation":
        # Unbound until the owning object adopts it
        return cls(None, "", target_class_name=data.get("className"))

    def bind(self, parent, key: str) -> None:
        self.parent = parent
        self.key = key

    def to_json(self) -> Dict[str, Any]:
        return {"__type": "Relation", "className": self.target_class_name}

    def add(self, objects) -> None:
        self._edit(RelationOperation(objects_to_add=self._as_tuple(objects)))

    def remove(self, objects) -> None:
        self._edit(RelationOperation(objects_to_remove=self._as_tuple(objects)))

    @staticmethod
    def _as_tuple(objects) -> tuple:
        if isinstance(objects, (list, tuple)):
            return tuple(objects)
        return (objects,)

    def _edit(self, op: RelationOperation) -> None:
        if not op.objects_to_add and not op.objects_to_remove:
            return
        if self.parent is None:
            raise PreconditionError("Relation is not attached to an object")
        merged = merge_operations(op, self.parent.pending_operation(self.key))
        self.parent.set(self.key, merged)
        if self.target_class_name is None:
            self.target_class_name = op.target_class_name

    def query(self):
        """
        Query the objects in this relation.

        Falls back to the parent's class when the target class is unknown.
        """
        from parseclient.client.query import ParseQuery

        if self.parent is None:
            raise PreconditionError("Relation is not attached to an object")
        class_name = self.target_class_name or self.parent.class_name
        query = ParseQuery(class_name, client=self.parent._client)
        query.where_related_to(self.parent, self.key)
        return query

    def __repr__(self):
        return f"ParseRelation(key={self.key!r}, target_class_name={self.target_class_name!r})"
