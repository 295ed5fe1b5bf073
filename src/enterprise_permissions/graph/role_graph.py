"""Role inheritance graph.

RoleGraph stores role ids in an arena (a list indexed by position) and the
inheritance relation as tuples of parent indices.  Edges always point from a
child role to the parent roles it inherits from.

The graph is built once per snapshot and never mutated.  It answers the
structural questions the rest of the engine needs:

- does the relation contain a cycle, and through which role?
- which roles does a role (transitively) inherit from?
- which roles inherit directly from a role (referential integrity)?
- in what order can roles be resolved so that parents come first?

Example
-------
::

    graph = RoleGraph.from_roles([viewer, editor])
    graph.validate()                          # raises CycleError on a cycle
    graph.topological_order()                 # ['viewer', 'editor']
    graph.ancestors("editor")                 # frozenset({'viewer'})
"""
from __future__ import annotations

import logging
from typing import Iterable

from enterprise_permissions.model.errors import CycleError, UnknownRoleError
from enterprise_permissions.model.types import CustomRole

logger = logging.getLogger(__name__)

_WHITE, _GREY, _BLACK = 0, 1, 2


class RoleGraph:
    """Immutable, arena-indexed inheritance graph over role ids.

    Parameters
    ----------
    edges:
        Mapping of role id to the ordered parent ids it inherits from.
        Parent ids that are not keys of the mapping are kept aside as
        dangling references (see :meth:`missing_parents`).
    """

    def __init__(self, edges: dict[str, tuple[str, ...]]) -> None:
        self._ids: list[str] = sorted(edges)
        self._index: dict[str, int] = {role_id: i for i, role_id in enumerate(self._ids)}
        self._parents: list[tuple[int, ...]] = []
        self._children: list[list[int]] = [[] for _ in self._ids]
        self._missing: dict[str, tuple[str, ...]] = {}

        for i, role_id in enumerate(self._ids):
            resolved: list[int] = []
            missing: list[str] = []
            for parent_id in edges[role_id]:
                parent_index = self._index.get(parent_id)
                if parent_index is None:
                    missing.append(parent_id)
                elif parent_index not in resolved:
                    resolved.append(parent_index)
            self._parents.append(tuple(resolved))
            for parent_index in resolved:
                self._children[parent_index].append(i)
            if missing:
                self._missing[role_id] = tuple(missing)

    @classmethod
    def from_roles(cls, roles: Iterable[CustomRole]) -> RoleGraph:
        return cls({role.id: role.inheritance for role in roles})

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def __contains__(self, role_id: object) -> bool:
        return role_id in self._index

    def __len__(self) -> int:
        return len(self._ids)

    @property
    def role_ids(self) -> tuple[str, ...]:
        return tuple(self._ids)

    def _require(self, role_id: str) -> int:
        index = self._index.get(role_id)
        if index is None:
            raise UnknownRoleError(role_id)
        return index

    def parents(self, role_id: str) -> tuple[str, ...]:
        """Return the direct parents of ``role_id`` in declaration order."""
        return tuple(self._ids[p] for p in self._parents[self._require(role_id)])

    def children(self, role_id: str) -> tuple[str, ...]:
        """Return the roles that directly inherit from ``role_id``, sorted."""
        return tuple(sorted(self._ids[c] for c in self._children[self._require(role_id)]))

    def ancestors(self, role_id: str) -> frozenset[str]:
        """Return every role ``role_id`` inherits from, directly or transitively."""
        start = self._require(role_id)
        seen: set[int] = set()
        stack = list(self._parents[start])
        while stack:
            node = stack.pop()
            if node in seen:
                continue
            seen.add(node)
            stack.extend(self._parents[node])
        return frozenset(self._ids[i] for i in seen)

    def descendants(self, role_id: str) -> frozenset[str]:
        """Return every role that inherits from ``role_id``, directly or transitively."""
        start = self._require(role_id)
        seen: set[int] = set()
        stack = list(self._children[start])
        while stack:
            node = stack.pop()
            if node in seen:
                continue
            seen.add(node)
            stack.extend(self._children[node])
        return frozenset(self._ids[i] for i in seen)

    def missing_parents(self) -> dict[str, tuple[str, ...]]:
        """Return ``{role_id: unknown_parent_ids}`` for dangling inheritance edges."""
        return dict(self._missing)

    # ------------------------------------------------------------------
    # Cycle detection
    # ------------------------------------------------------------------

    def find_cycle(self, start: str | None = None) -> list[str] | None:
        """Return the first inheritance cycle found, or ``None``.

        The search starts at ``start`` when given (so the reported cycle
        passes through the role being edited), then covers every other
        role in id order.  The returned path begins and ends with the
        repeated role id, e.g. ``["a", "b", "a"]``.
        """
        colour = [_WHITE] * len(self._ids)
        order = list(range(len(self._ids)))
        if start is not None:
            first = self._require(start)
            order.remove(first)
            order.insert(0, first)

        for root in order:
            if colour[root] != _WHITE:
                continue
            path: list[int] = [root]
            iterators = [iter(self._parents[root])]
            colour[root] = _GREY
            while iterators:
                advanced = False
                for parent in iterators[-1]:
                    if colour[parent] == _GREY:
                        cycle_start = path.index(parent)
                        cycle = [self._ids[i] for i in path[cycle_start:]]
                        cycle.append(self._ids[parent])
                        return cycle
                    if colour[parent] == _WHITE:
                        colour[parent] = _GREY
                        path.append(parent)
                        iterators.append(iter(self._parents[parent]))
                        advanced = True
                        break
                if not advanced:
                    colour[path.pop()] = _BLACK
                    iterators.pop()
        return None

    def validate(self, start: str | None = None) -> None:
        """Raise :class:`CycleError` if the inheritance relation has a cycle."""
        cycle = self.find_cycle(start)
        if cycle is not None:
            logger.warning("Role inheritance cycle rejected: %s", " -> ".join(cycle))
            raise CycleError(cycle[0], cycle)

    def path_between(self, descendant: str, ancestor: str) -> list[str] | None:
        """Return an inheritance path from ``descendant`` up to ``ancestor``, if any."""
        start = self._require(descendant)
        target = self._require(ancestor)
        previous: dict[int, int] = {start: start}
        queue = [start]
        while queue:
            node = queue.pop(0)
            if node == target:
                path = [node]
                while path[-1] != start:
                    path.append(previous[path[-1]])
                return [self._ids[i] for i in reversed(path)]
            for parent in self._parents[node]:
                if parent not in previous:
                    previous[parent] = node
                    queue.append(parent)
        return None

    def topological_order(self) -> list[str]:
        """Return role ids with every parent before its children.

        Raises
        ------
        CycleError
            If the graph contains a cycle.
        """
        self.validate()
        in_degree = [len(p) for p in self._parents]
        ready = [i for i, degree in enumerate(in_degree) if degree == 0]
        order: list[str] = []
        while ready:
            ready.sort(key=lambda i: self._ids[i])
            node = ready.pop(0)
            order.append(self._ids[node])
            for child in self._children[node]:
                in_degree[child] -= 1
                if in_degree[child] == 0:
                    ready.append(child)
        return order

    def depth(self, role_id: str) -> int:
        """Return the length of the longest inheritance chain above ``role_id``."""
        depths: dict[str, int] = {}
        for current in self.topological_order():
            parents = self.parents(current)
            depths[current] = 1 + max((depths[p] for p in parents), default=-1)
        return depths[self._ids[self._require(role_id)]]

    def __repr__(self) -> str:
        edges = sum(len(p) for p in self._parents)
        return f"RoleGraph(roles={len(self._ids)}, edges={edges})"
