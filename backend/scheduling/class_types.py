from __future__ import annotations

from typing import Any

from scheduling.ports import ClassTypeLookup


class SpecialClassTypeResolver:
    """Answers "is this class type (or one of its ancestors) the special type?".

    Series of special class types are scheduled one-off and never generated.
    The parent chain is walked at most `max_depth` steps; answers are kept in
    `cache`, which the caller may share between resolvers.
    """

    def __init__(
        self,
        lookup: ClassTypeLookup,
        *,
        special_name: str,
        max_depth: int = 10,
        cache: dict[Any, bool] | None = None,
    ) -> None:
        self._lookup = lookup
        self._special_name = special_name
        self._max_depth = max(1, int(max_depth))
        self._cache: dict[Any, bool] = cache if cache is not None else {}

    def is_special(self, class_type_id) -> bool:
        if class_type_id is None:
            return False
        if class_type_id in self._cache:
            return self._cache[class_type_id]

        visited: list[Any] = []
        result = False
        current = class_type_id
        for _ in range(self._max_depth):
            if current is None:
                break
            if current in self._cache:
                result = self._cache[current]
                break
            node = self._lookup.get_class_type(current)
            if node is None:
                break
            visited.append(current)
            if node.name == self._special_name:
                result = True
                break
            current = node.parent_id

        # Only the chain below a special node is known to be special; a
        # depth-bounded miss is recorded for the starting id alone.
        if result:
            for cid in visited:
                self._cache[cid] = True
        self._cache[class_type_id] = result
        return result
