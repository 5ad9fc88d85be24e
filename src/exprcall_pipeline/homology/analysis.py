"""Cross-species comparability: LCA, homology and orthology group selection."""

from collections import defaultdict
from dataclasses import replace
from enum import Enum
from typing import Iterable, Mapping, Optional

import structlog

from exprcall_pipeline.config.schema import HomologySettings
from exprcall_pipeline.diffexpr.models import DiffExpressionCall
from exprcall_pipeline.evidence.models import Gene, Species
from exprcall_pipeline.exceptions import (
    InvariantViolationError,
    NoCommonAncestorError,
    TaxonConsistencyError,
)
from exprcall_pipeline.homology.aggregation import (
    aggregate_diff_expression,
    aggregate_expression,
)
from exprcall_pipeline.homology.models import (
    AnatEntitySimilarity,
    AnatEntitySimilarityAnalysis,
    CIOConfidence,
    HomologyGroup,
    OMAGroup,
)
from exprcall_pipeline.ontology import Ontology
from exprcall_pipeline.presence.models import ExpressionCall

logger = structlog.get_logger()


class AnalysisState(str, Enum):
    INIT = "init"
    TAXON_RESOLVED = "taxon_resolved"
    GROUPS_SELECTED = "groups_selected"
    AGGREGATED = "aggregated"
    DONE = "done"
    FAILED = "failed"


_TRANSITIONS = {
    AnalysisState.INIT: {AnalysisState.TAXON_RESOLVED, AnalysisState.FAILED},
    AnalysisState.TAXON_RESOLVED: {AnalysisState.GROUPS_SELECTED},
    AnalysisState.GROUPS_SELECTED: {AnalysisState.AGGREGATED},
    AnalysisState.AGGREGATED: {AnalysisState.DONE},
    AnalysisState.DONE: set(),
    AnalysisState.FAILED: set(),
}


class ComparabilityResolver:
    """
    Read-only snapshot of the data needed for cross-species comparisons.

    A resolver can be shared by concurrent requests: each call to
    ``analyze`` runs its own ComparabilityAnalysis.

    Args:
        taxonomy: Taxonomy ontology
        anat_ontology: Anatomy ontology
        species: Known species
        similarities: Anatomical homology annotations
        oma_groups: Orthology groups
        genes: Known genes, keyed by gene ID
        anat_entity_species: Taxon constraints, anat entity ID -> IDs of
            species it exists in. Entities without constraints exist in all
            species.
        settings: Homology settings (defaults if None)
    """

    def __init__(
        self,
        taxonomy: Ontology,
        anat_ontology: Ontology,
        species: Iterable[Species],
        similarities: Iterable[AnatEntitySimilarity],
        oma_groups: Iterable[OMAGroup],
        genes: Optional[Mapping[str, Gene]] = None,
        anat_entity_species: Optional[Mapping[str, Iterable[int]]] = None,
        settings: Optional[HomologySettings] = None,
    ):
        self.taxonomy = taxonomy
        self.anat_ontology = anat_ontology
        self.species = {s.species_id: s for s in species}
        self.similarities = tuple(
            sorted(similarities, key=lambda s: (s.similarity_id, s.taxon_id))
        )
        self.oma_groups = tuple(sorted(oma_groups, key=lambda g: g.oma_group_id))
        self.genes = dict(genes or {})
        self.anat_entity_species = {
            anat_id: frozenset(species_ids)
            for anat_id, species_ids in (anat_entity_species or {}).items()
        }
        self.settings = settings or HomologySettings()

    def analyze(
        self,
        species_ids: Iterable[int],
        anat_entity_ids: Optional[Iterable[str]] = None,
        gene_ids: Optional[Iterable[str]] = None,
        diff_calls: Optional[Iterable[DiffExpressionCall]] = None,
        expression_calls: Optional[Iterable[ExpressionCall]] = None,
    ) -> AnatEntitySimilarityAnalysis:
        """Run a complete comparability request. See ComparabilityAnalysis.run."""
        return ComparabilityAnalysis(self).run(
            species_ids,
            anat_entity_ids=anat_entity_ids,
            gene_ids=gene_ids,
            diff_calls=diff_calls,
            expression_calls=expression_calls,
        )


class ComparabilityAnalysis:
    """
    Single comparability request.

    States: INIT -> TAXON_RESOLVED -> GROUPS_SELECTED -> AGGREGATED -> DONE,
    or INIT -> FAILED when no common ancestor exists. An analysis runs once.
    """

    def __init__(self, resolver: ComparabilityResolver):
        self.resolver = resolver
        self.state = AnalysisState.INIT
        self.result: Optional[AnatEntitySimilarityAnalysis] = None

    def _transition(self, new_state: AnalysisState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise InvariantViolationError(
                f"Invalid analysis transition {self.state.name} -> {new_state.name}"
            )
        logger.debug(
            "comparability_state",
            from_state=self.state.value,
            to_state=new_state.value,
        )
        self.state = new_state

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _resolve_taxon(
        self, species_ids: tuple[int, ...]
    ) -> tuple[tuple[Species, ...], frozenset[int], int]:
        known = self.resolver.species
        taxonomy = self.resolver.taxonomy
        found = tuple(known[s] for s in sorted(set(species_ids)) if s in known)
        # A species outside the taxonomy cannot take part in the LCA
        outside = tuple(s for s in found if s.lineage_taxon_id not in taxonomy)
        if outside:
            logger.warning(
                "species_taxon_not_in_taxonomy",
                species_ids=[s.species_id for s in outside],
                taxon_ids=[s.lineage_taxon_id for s in outside],
            )
            found = tuple(s for s in found if s not in outside)
        found_ids = {s.species_id for s in found}
        not_found = frozenset(s for s in species_ids if s not in found_ids)
        if not_found:
            logger.warning("requested_species_not_found", species_ids=sorted(not_found))

        lca = taxonomy.least_common_ancestor(
            s.lineage_taxon_id for s in found
        )
        logger.info(
            "comparability_taxon_resolved",
            species_ids=[s.species_id for s in found],
            lca_taxon_id=lca,
        )
        return found, not_found, lca

    def _is_valid_at(self, taxon_id: int, lca: int) -> Optional[bool]:
        """True if ``taxon_id`` is the LCA or one of its ancestors, None if unknown."""
        taxonomy = self.resolver.taxonomy
        if taxon_id not in taxonomy:
            return None
        return taxon_id == lca or taxonomy.is_ancestor_of(taxon_id, lca)

    def _check_taxon_consistency(self, anat_entity_ids: frozenset[str], taxon_ids: set[int]) -> None:
        settings = self.resolver.settings
        most_general = self.resolver.taxonomy.maximal_elements(
            taxon_ids, max_steps=settings.ancestors_max_steps
        )
        if len(most_general) <= 1:
            return
        if settings.strict_taxon_consistency:
            raise TaxonConsistencyError(
                f"Annotation taxa of {sorted(anat_entity_ids)} are not a lineage: "
                f"{sorted(most_general)}"
            )
        logger.warning(
            "similarity_taxa_inconsistent",
            anat_entity_ids=sorted(anat_entity_ids),
            taxon_ids=sorted(taxon_ids),
            most_general_taxon_ids=sorted(most_general),
        )

    def _select_groups(
        self,
        lca: int,
        requested: Optional[frozenset[str]],
    ) -> tuple[HomologyGroup, ...]:
        settings = self.resolver.settings
        taxonomy = self.resolver.taxonomy

        candidates: dict[frozenset[str], list[AnatEntitySimilarity]] = defaultdict(list)
        unknown_taxa = set()
        for similarity in self.resolver.similarities:
            if similarity.confidence is CIOConfidence.REJECTED:
                continue
            if settings.only_trusted and not similarity.trusted:
                continue
            if similarity.taxon_id not in taxonomy:
                unknown_taxa.add(similarity.taxon_id)
                continue
            if requested is not None and not similarity.anat_entity_ids & requested:
                continue
            candidates[similarity.anat_entity_ids].append(similarity)

        if unknown_taxa:
            logger.warning("similarity_taxa_unknown", taxon_ids=sorted(unknown_taxa))

        groups = []
        for anat_entity_ids, annotations in candidates.items():
            valid = [a for a in annotations if self._is_valid_at(a.taxon_id, lca)]
            if not valid:
                continue
            self._check_taxon_consistency(anat_entity_ids, {a.taxon_id for a in annotations})
            valid.sort(
                key=lambda a: (-taxonomy.depth_of(a.taxon_id), a.taxon_id, a.similarity_id)
            )
            groups.append(HomologyGroup(anat_entity_ids, tuple(valid)))

        groups.sort(key=HomologyGroup.sort_key)
        return tuple(groups)

    def _select_oma_groups(self, lca: int) -> tuple[OMAGroup, ...]:
        selected = []
        for oma_group in self.resolver.oma_groups:
            valid = self._is_valid_at(oma_group.taxon_id, lca)
            if valid is None:
                logger.warning(
                    "oma_group_taxon_unknown",
                    oma_group_id=oma_group.oma_group_id,
                    taxon_id=oma_group.taxon_id,
                )
            elif valid:
                selected.append(oma_group)
        return tuple(selected)

    def _exists_in_species(
        self,
        anat_entity_ids: Iterable[str],
        species_ids: frozenset[int],
    ) -> dict[str, frozenset[int]]:
        constraints = self.resolver.anat_entity_species
        return {
            anat_id: (constraints[anat_id] & species_ids) if anat_id in constraints else species_ids
            for anat_id in sorted(anat_entity_ids)
        }

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def run(
        self,
        species_ids: Iterable[int],
        anat_entity_ids: Optional[Iterable[str]] = None,
        gene_ids: Optional[Iterable[str]] = None,
        diff_calls: Optional[Iterable[DiffExpressionCall]] = None,
        expression_calls: Optional[Iterable[ExpressionCall]] = None,
    ) -> AnatEntitySimilarityAnalysis:
        """
        Resolve the LCA of the requested species and make their data comparable.

        Steps:
        1. LCA of the taxa of the known requested species
        2. Homology groups annotated at the LCA or one of its ancestors,
           restricted to groups containing a requested anatomical entity
        3. Partition of requested anatomical entities into grouped,
           found-without-similarity and not-found
        4. Per-species counts of the supplied calls over orthology groups
           valid at the LCA

        Args:
            species_ids: Requested species
            anat_entity_ids: Requested anatomical entities (None for all)
            gene_ids: Restrict counts to these genes (None for all)
            diff_calls: Differential expression calls to count
            expression_calls: Presence/absence calls to count

        Returns:
            AnatEntitySimilarityAnalysis

        Raises:
            NoCommonAncestorError: If no requested species is known or their
                taxa share no ancestor
            TaxonConsistencyError: In strict mode, on inconsistent annotations
        """
        if self.state is not AnalysisState.INIT:
            raise InvariantViolationError(f"Analysis already run (state {self.state.name})")

        species_ids = tuple(species_ids)
        try:
            species, species_not_found, lca = self._resolve_taxon(species_ids)
        except NoCommonAncestorError:
            self._transition(AnalysisState.FAILED)
            logger.error("comparability_failed", species_ids=list(species_ids))
            raise
        self._transition(AnalysisState.TAXON_RESOLVED)

        anat_ontology = self.resolver.anat_ontology
        requested_anat = tuple(dict.fromkeys(anat_entity_ids)) if anat_entity_ids is not None else ()
        anat_not_found = frozenset(a for a in requested_anat if a not in anat_ontology)
        found_anat = frozenset(requested_anat) - anat_not_found
        groups = self._select_groups(lca, found_anat if anat_entity_ids is not None else None)
        oma_groups = self._select_oma_groups(lca)

        grouped = frozenset().union(*(g.anat_entity_ids for g in groups))
        without_similarity = found_anat - grouped
        found_species_ids = frozenset(s.species_id for s in species)
        self.result = AnatEntitySimilarityAnalysis(
            requested_species_ids=species_ids,
            requested_species_ids_not_found=species_not_found,
            species=species,
            lca_taxon_id=lca,
            requested_anat_entity_ids=requested_anat,
            requested_anat_entity_ids_not_found=anat_not_found,
            anat_entity_ids_without_similarity=without_similarity,
            homology_groups=groups,
            oma_groups=oma_groups,
            anat_entities_exist_in_species=self._exists_in_species(
                grouped | found_anat, found_species_ids
            ),
        )
        self._transition(AnalysisState.GROUPS_SELECTED)
        logger.info(
            "comparability_groups_selected",
            lca_taxon_id=lca,
            homology_group_count=len(groups),
            oma_group_count=len(oma_groups),
            anat_not_found=len(anat_not_found),
            anat_without_similarity=len(without_similarity),
        )

        genes = self.resolver.genes
        gene_not_found: frozenset[str] = frozenset()
        if gene_ids is not None:
            gene_ids = frozenset(gene_ids)
            gene_not_found = frozenset(g for g in gene_ids if g not in genes)
            if gene_not_found:
                logger.warning("requested_genes_not_found", gene_ids=sorted(gene_not_found))
            if diff_calls is not None:
                diff_calls = [c for c in diff_calls if c.gene_id in gene_ids]
            if expression_calls is not None:
                expression_calls = [c for c in expression_calls if c.gene_id in gene_ids]

        counts = []
        if diff_calls is not None:
            counts.extend(
                aggregate_diff_expression(diff_calls, groups, oma_groups, found_species_ids, genes)
            )
        if expression_calls is not None:
            counts.extend(
                aggregate_expression(expression_calls, groups, oma_groups, found_species_ids, genes)
            )
        self.result = replace(
            self.result,
            requested_gene_ids_not_found=gene_not_found,
            multi_species_counts=tuple(counts),
        )
        self._transition(AnalysisState.AGGREGATED)

        self._transition(AnalysisState.DONE)
        return self.result
