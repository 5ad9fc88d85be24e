"""Homology, orthology and multi-species comparison records."""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional

from exprcall_pipeline.evidence.models import ComparisonFactor, Species


class CIOConfidence(Enum):
    """Confidence Information Ontology levels of homology annotations (ordinal)."""

    HIGH = ("CIO:0000029", "high confidence level", 3)
    MEDIUM = ("CIO:0000030", "medium confidence level", 2)
    LOW = ("CIO:0000031", "low confidence level", 1)
    REJECTED = ("CIO:0000039", "rejected", 0)

    def __init__(self, cio_id: str, label: str, rank: int):
        self.cio_id = cio_id
        self.label = label
        self.rank = rank

    @property
    def trusted(self) -> bool:
        return self.rank >= CIOConfidence.MEDIUM.rank

    @classmethod
    def from_cio_id(cls, cio_id: str) -> "CIOConfidence":
        for level in cls:
            if level.cio_id == cio_id:
                return level
        raise ValueError(f"Unknown CIO confidence term: {cio_id}")


@dataclass(frozen=True)
class AnatEntitySimilarity:
    """Anatomical entities annotated as homologous at a taxon."""

    similarity_id: str
    anat_entity_ids: frozenset[str]
    taxon_id: int
    confidence: CIOConfidence

    @property
    def trusted(self) -> bool:
        return self.confidence.trusted

    @property
    def cio_id(self) -> str:
        return self.confidence.cio_id


@dataclass(frozen=True)
class HomologyGroup:
    """Annotations of one anatomical entity set valid at a requested taxon.

    ``annotations`` are ordered from the taxon closest to the requested
    taxon to the most ancestral one.
    """

    anat_entity_ids: frozenset[str]
    annotations: tuple[AnatEntitySimilarity, ...]

    @property
    def trusted(self) -> bool:
        return any(a.trusted for a in self.annotations)

    @property
    def taxon_ids(self) -> tuple[int, ...]:
        return tuple(a.taxon_id for a in self.annotations)

    @property
    def best_confidence(self) -> CIOConfidence:
        return max((a.confidence for a in self.annotations), key=lambda c: c.rank)

    def sort_key(self) -> tuple:
        return tuple(sorted(self.anat_entity_ids))


@dataclass(frozen=True)
class OMAGroup:
    """Genes descending from a single ancestral gene at a taxon."""

    oma_group_id: str
    taxon_id: int
    gene_ids: frozenset[str]


class CountCategory(str, Enum):
    """Per-species bins of multi-species comparison records."""

    OVER_EXPRESSED = "over-expressed"
    UNDER_EXPRESSED = "under-expressed"
    NOT_DIFF_EXPRESSED = "not diff. expressed"
    PRESENT = "present"
    ABSENT = "absent"
    NA = "NA"


@dataclass(frozen=True)
class MultiSpeciesCallCounts:
    """Gene counts per species for an orthology group in a homologous condition.

    ``comparison_factor`` is None for presence/absence counts.
    """

    oma_group_id: str
    anat_entity_ids: tuple[str, ...]
    dev_stage_id: str
    comparison_factor: Optional[ComparisonFactor]
    counts: Mapping[int, Mapping[CountCategory, int]] = field(hash=False)
    gene_ids: tuple[str, ...] = ()

    def __post_init__(self):
        frozen = {
            species_id: MappingProxyType(dict(per_species))
            for species_id, per_species in sorted(self.counts.items())
        }
        object.__setattr__(self, "counts", MappingProxyType(frozen))

    @property
    def species_ids(self) -> tuple[int, ...]:
        return tuple(self.counts)

    def count(self, species_id: int, category: CountCategory) -> int:
        return self.counts.get(species_id, {}).get(category, 0)


@dataclass(frozen=True)
class AnatEntitySimilarityAnalysis:
    """Outcome of a cross-species comparability request."""

    requested_species_ids: tuple[int, ...]
    requested_species_ids_not_found: frozenset[int]
    species: tuple[Species, ...]
    lca_taxon_id: int
    requested_anat_entity_ids: tuple[str, ...]
    requested_anat_entity_ids_not_found: frozenset[str]
    anat_entity_ids_without_similarity: frozenset[str]
    homology_groups: tuple[HomologyGroup, ...]
    oma_groups: tuple[OMAGroup, ...]
    anat_entities_exist_in_species: Mapping[str, frozenset[int]] = field(hash=False)
    requested_gene_ids_not_found: frozenset[str] = frozenset()
    multi_species_counts: tuple[MultiSpeciesCallCounts, ...] = ()

    @property
    def grouped_anat_entity_ids(self) -> frozenset[str]:
        grouped = frozenset().union(*(g.anat_entity_ids for g in self.homology_groups))
        if not self.requested_anat_entity_ids:
            return grouped
        return grouped & frozenset(self.requested_anat_entity_ids)

    @property
    def species_ids(self) -> tuple[int, ...]:
        return tuple(s.species_id for s in self.species)
