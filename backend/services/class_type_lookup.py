from __future__ import annotations

from sqlalchemy.orm import Session

from models.class_type import ClassType
from scheduling.types import ClassTypeNode
from services.repository import as_uuid


class SqlClassTypeLookup:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get_class_type(self, class_type_id) -> ClassTypeNode | None:
        key = as_uuid(class_type_id)
        if key is None:
            return None
        row = self.db.get(ClassType, key)
        if row is None:
            return None
        return ClassTypeNode(id=row.id, name=row.name, parent_id=row.parent_id)
