"""Error taxonomy for the call engine.

Input inconsistencies are logged, unknown user identifiers are returned in
"not found" sets, everything below is raised.
"""


class ExprCallError(Exception):
    """Base class for all engine errors."""


class NoCommonAncestorError(ExprCallError):
    """Raised when a set of ontology elements is empty or has no shared ancestor."""

    def __init__(self, ontology_name: str, element_ids):
        self.ontology_name = ontology_name
        self.element_ids = tuple(sorted(element_ids, key=str))
        if self.element_ids:
            message = (
                f"No common ancestor in {ontology_name} for elements: "
                f"{', '.join(str(e) for e in self.element_ids)}"
            )
        else:
            message = f"No common ancestor in {ontology_name}: no elements provided"
        super().__init__(message)


class UnknownElementError(ExprCallError, KeyError):
    """Raised when an identifier is not part of an ontology."""

    def __init__(self, ontology_name: str, element_id):
        self.ontology_name = ontology_name
        self.element_id = element_id
        super().__init__(f"Unknown element in {ontology_name}: {element_id}")

    def __str__(self) -> str:
        return self.args[0]


class InvariantViolationError(ExprCallError):
    """Internal data-model corruption. Never caught inside the engine."""


class VotingTieError(ExprCallError):
    """Raised by the 'raise' tie policy when differential calls tie."""

    def __init__(self, key, tied_calls):
        self.key = key
        self.tied_calls = tuple(tied_calls)
        super().__init__(
            f"Differential expression vote tied for {key}: "
            f"{', '.join(c.name for c in self.tied_calls)}"
        )


class TaxonConsistencyError(ExprCallError):
    """Annotation taxa are not an ancestor/descendant chain (strict mode only)."""


class SnapshotFormatError(ExprCallError, ValueError):
    """A snapshot file is missing columns or holds unknown enumerated values."""
