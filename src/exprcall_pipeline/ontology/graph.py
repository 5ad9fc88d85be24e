"""Arena-indexed ontology DAG with memoized ancestor/descendant closures."""

import threading
from collections import deque
from typing import Generic, Hashable, Iterable, Iterator, Optional, TypeVar

import structlog

from exprcall_pipeline.exceptions import (
    InvariantViolationError,
    NoCommonAncestorError,
    UnknownElementError,
)

logger = structlog.get_logger()

E = TypeVar("E")


class Ontology(Generic[E]):
    """
    Immutable directed acyclic graph over ontology elements.

    Elements are stored in an arena: every identifier maps to an integer
    index, and parent/child edges are tuples of indexes. Public methods take
    and return element identifiers.

    Ancestor and descendant closures are memoized per node. Each cache key is
    written once under a lock, so concurrent readers see either no entry or a
    complete one; two threads racing on the same key compute the same set.

    Args:
        elements: Elements exposing an ``id`` attribute
        relations: (child_id, parent_id) pairs
        name: Label used in log events and error messages

    Raises:
        UnknownElementError: If a relation references an unknown identifier
        InvariantViolationError: If relations contain a cycle
    """

    def __init__(
        self,
        elements: Iterable[E],
        relations: Iterable[tuple[Hashable, Hashable]],
        name: str = "ontology",
    ):
        self.name = name
        self._elements: list[E] = []
        self._index: dict[Hashable, int] = {}

        for element in elements:
            if element.id in self._index:
                logger.warning(
                    "ontology_duplicate_element",
                    ontology=name,
                    element_id=element.id,
                )
                continue
            self._index[element.id] = len(self._elements)
            self._elements.append(element)

        parents: list[set[int]] = [set() for _ in self._elements]
        children: list[set[int]] = [set() for _ in self._elements]
        for child_id, parent_id in relations:
            child = self._index_of(child_id)
            parent = self._index_of(parent_id)
            if child == parent:
                raise InvariantViolationError(
                    f"Self-referencing relation in {name}: {child_id}"
                )
            parents[child].add(parent)
            children[parent].add(child)

        self._parents: tuple[tuple[int, ...], ...] = tuple(
            tuple(sorted(p)) for p in parents
        )
        self._children: tuple[tuple[int, ...], ...] = tuple(
            tuple(sorted(c)) for c in children
        )
        self._depths: tuple[int, ...] = self._compute_depths()

        self._ancestor_cache: dict[int, frozenset[int]] = {}
        self._descendant_cache: dict[int, frozenset[int]] = {}
        self._cache_lock = threading.Lock()

        logger.debug(
            "ontology_built",
            ontology=name,
            element_count=len(self._elements),
            max_depth=max(self._depths, default=0),
        )

    # ------------------------------------------------------------------
    # Construction helpers
    # ------------------------------------------------------------------

    def _index_of(self, element_id: Hashable) -> int:
        try:
            return self._index[element_id]
        except KeyError:
            raise UnknownElementError(self.name, element_id) from None

    def _compute_depths(self) -> tuple[int, ...]:
        """Longest path from a root for every node (Kahn topological order)."""
        depths = [0] * len(self._elements)
        pending_parents = [len(p) for p in self._parents]
        queue = deque(i for i, count in enumerate(pending_parents) if count == 0)
        processed = 0

        while queue:
            node = queue.popleft()
            processed += 1
            for child in self._children[node]:
                depths[child] = max(depths[child], depths[node] + 1)
                pending_parents[child] -= 1
                if pending_parents[child] == 0:
                    queue.append(child)

        if processed != len(self._elements):
            raise InvariantViolationError(
                f"Relations of {self.name} contain a cycle "
                f"({len(self._elements) - processed} elements involved)"
            )
        return tuple(depths)

    # ------------------------------------------------------------------
    # Closures
    # ------------------------------------------------------------------

    def _closure(
        self,
        start: int,
        edges: tuple[tuple[int, ...], ...],
        cache: dict[int, frozenset[int]],
    ) -> frozenset[int]:
        cached = cache.get(start)
        if cached is not None:
            return cached

        seen: set[int] = set()
        stack = list(edges[start])
        while stack:
            node = stack.pop()
            if node in seen:
                continue
            known = cache.get(node)
            if known is not None:
                seen.add(node)
                seen.update(known)
                continue
            seen.add(node)
            stack.extend(edges[node])

        result = frozenset(seen)
        with self._cache_lock:
            return cache.setdefault(start, result)

    def _ancestor_indexes(self, index: int) -> frozenset[int]:
        return self._closure(index, self._parents, self._ancestor_cache)

    def _descendant_indexes(self, index: int) -> frozenset[int]:
        return self._closure(index, self._children, self._descendant_cache)

    def _ancestor_indexes_within(self, index: int, max_steps: Optional[int]) -> frozenset[int]:
        """Strict ancestors reachable in at most ``max_steps`` parent hops."""
        if max_steps is None:
            return self._ancestor_indexes(index)

        reached: set[int] = set()
        frontier = {index}
        for _ in range(max_steps):
            frontier = {p for node in frontier for p in self._parents[node]} - reached
            if not frontier:
                break
            reached.update(frontier)
        return frozenset(reached)

    def _ids(self, indexes: Iterable[int]) -> set:
        return {self._elements[i].id for i in indexes}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def elements(self) -> tuple[E, ...]:
        return tuple(self._elements)

    def __len__(self) -> int:
        return len(self._elements)

    def __contains__(self, element_id) -> bool:
        return element_id in self._index

    def __iter__(self) -> Iterator[E]:
        return iter(self._elements)

    def get_element(self, element_id: Hashable) -> E:
        return self._elements[self._index_of(element_id)]

    def parents_of(self, element_id: Hashable) -> set:
        return self._ids(self._parents[self._index_of(element_id)])

    def children_of(self, element_id: Hashable) -> set:
        return self._ids(self._children[self._index_of(element_id)])

    def roots(self) -> set:
        return {e.id for i, e in enumerate(self._elements) if not self._parents[i]}

    def ancestors_of(self, element_id: Hashable, include_self: bool = False) -> set:
        """Transitive closure over parent relations."""
        index = self._index_of(element_id)
        result = self._ids(self._ancestor_indexes(index))
        if include_self:
            result.add(element_id)
        return result

    def descendants_of(self, element_id: Hashable, include_self: bool = False) -> set:
        """Transitive closure over child relations."""
        index = self._index_of(element_id)
        result = self._ids(self._descendant_indexes(index))
        if include_self:
            result.add(element_id)
        return result

    def is_ancestor_of(self, ancestor_id: Hashable, element_id: Hashable) -> bool:
        """True if ``ancestor_id`` is a strict ancestor of ``element_id``."""
        return self._index_of(ancestor_id) in self._ancestor_indexes(
            self._index_of(element_id)
        )

    def depth_of(self, element_id: Hashable) -> int:
        """Length of the longest path from a root down to the element."""
        return self._depths[self._index_of(element_id)]

    def ancestors_among_elements(
        self,
        element_ids: Iterable[Hashable],
        max_steps: Optional[int] = None,
    ) -> set:
        """
        Return the given elements that are ancestors of another given element.

        Args:
            element_ids: Elements to compare with each other
            max_steps: Maximum number of parent hops to look up from each
                element (None for the full closure)

        Returns:
            Subset of ``element_ids``
        """
        indexes = {self._index_of(e) for e in element_ids}
        reached: set[int] = set()
        for index in indexes:
            reached.update(self._ancestor_indexes_within(index, max_steps))
        return self._ids(reached & indexes)

    def maximal_elements(
        self,
        element_ids: Iterable[Hashable],
        max_steps: Optional[int] = None,
    ) -> set:
        """
        Return the given elements having no ancestor among the given elements.

        For a set expected to form a single ancestor/descendant chain the
        result holds exactly one element.
        """
        indexes = {self._index_of(e) for e in element_ids}
        return self._ids(
            index
            for index in indexes
            if not (self._ancestor_indexes_within(index, max_steps) & indexes)
        )

    def least_common_ancestor(self, element_ids: Iterable[Hashable]) -> Hashable:
        """
        Compute the deepest element shared by the ancestor sets of all inputs.

        Each input counts as its own ancestor, so the LCA of a single element
        is itself and the LCA of an element and its descendant is the element.

        Args:
            element_ids: Elements to resolve

        Returns:
            Identifier of the least common ancestor

        Raises:
            NoCommonAncestorError: If no element is provided or the inputs
                belong to disconnected parts of the ontology
        """
        element_ids = list(dict.fromkeys(element_ids))
        if not element_ids:
            raise NoCommonAncestorError(self.name, [])

        common: Optional[set[int]] = None
        for element_id in element_ids:
            index = self._index_of(element_id)
            lineage = set(self._ancestor_indexes(index))
            lineage.add(index)
            common = lineage if common is None else common & lineage
            if not common:
                raise NoCommonAncestorError(self.name, element_ids)

        best_depth = max(self._depths[i] for i in common)
        candidates = sorted(
            (self._elements[i].id for i in common if self._depths[i] == best_depth),
            key=str,
        )
        if len(candidates) > 1:
            logger.warning(
                "ontology_lca_tie",
                ontology=self.name,
                element_ids=[str(e) for e in element_ids],
                candidates=[str(c) for c in candidates],
                selected=str(candidates[0]),
            )
        return candidates[0]
