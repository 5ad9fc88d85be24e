"""Per-species gene counts for orthologous genes in homologous conditions."""

from collections import defaultdict
from typing import Iterable, Mapping, Optional

import structlog

from exprcall_pipeline.diffexpr.models import DiffExpressionCall, DiffExpressionSummary
from exprcall_pipeline.evidence.models import ComparisonFactor, Condition, Gene, unexpected
from exprcall_pipeline.homology.models import (
    CountCategory,
    HomologyGroup,
    MultiSpeciesCallCounts,
    OMAGroup,
)
from exprcall_pipeline.presence.models import ExpressionCall, ExpressionSummary

logger = structlog.get_logger()


def diff_category(summary: DiffExpressionSummary) -> Optional[CountCategory]:
    match summary:
        case DiffExpressionSummary.OVER_EXPRESSED:
            return CountCategory.OVER_EXPRESSED
        case DiffExpressionSummary.UNDER_EXPRESSED:
            return CountCategory.UNDER_EXPRESSED
        case DiffExpressionSummary.NOT_DIFF_EXPRESSED:
            return CountCategory.NOT_DIFF_EXPRESSED
        case DiffExpressionSummary.WEAK_AMBIGUITY | DiffExpressionSummary.STRONG_AMBIGUITY:
            return CountCategory.NA
        case DiffExpressionSummary.NO_DATA:
            return None
        case _:
            unexpected(summary)


def expression_category(summary: ExpressionSummary) -> CountCategory:
    match summary:
        case ExpressionSummary.PRESENT:
            return CountCategory.PRESENT
        case ExpressionSummary.ABSENT:
            return CountCategory.ABSENT
        case ExpressionSummary.LOW_AMBIGUITY | ExpressionSummary.HIGH_AMBIGUITY:
            return CountCategory.NA
        case _:
            unexpected(summary)


def _count(
    entries: Iterable[tuple[str, Condition, Optional[ComparisonFactor], CountCategory]],
    homology_groups: Iterable[HomologyGroup],
    oma_groups: Iterable[OMAGroup],
    species_ids: Iterable[int],
    genes: Mapping[str, Gene],
) -> list[MultiSpeciesCallCounts]:
    species_ids = set(species_ids)

    groups_by_entity: dict[str, list[HomologyGroup]] = defaultdict(list)
    for group in homology_groups:
        for anat_entity_id in group.anat_entity_ids:
            groups_by_entity[anat_entity_id].append(group)

    omas_by_gene: dict[str, list[OMAGroup]] = defaultdict(list)
    for oma_group in oma_groups:
        for gene_id in oma_group.gene_ids:
            omas_by_gene[gene_id].append(oma_group)

    # record key -> gene -> categories of the gene's calls in the record
    bins: dict[tuple, dict[str, set[CountCategory]]] = defaultdict(lambda: defaultdict(set))
    gene_species: dict[str, int] = {}
    for gene_id, condition, factor, category in entries:
        gene = genes.get(gene_id)
        species_id = gene.species_id if gene is not None else condition.species_id
        if species_id not in species_ids:
            continue
        gene_species[gene_id] = species_id
        for group in groups_by_entity.get(condition.anat_entity_id, ()):
            for oma_group in omas_by_gene.get(gene_id, ()):
                key = (
                    oma_group.oma_group_id,
                    group.sort_key(),
                    condition.dev_stage_id,
                    factor,
                )
                bins[key][gene_id].add(category)

    records = []
    for (oma_group_id, anat_entity_ids, dev_stage_id, factor), per_gene in sorted(
        bins.items(),
        key=lambda item: (item[0][0], item[0][1], item[0][2], item[0][3].name if item[0][3] else ""),
    ):
        counts: dict[int, dict[CountCategory, int]] = defaultdict(lambda: defaultdict(int))
        for gene_id, categories in per_gene.items():
            # A gene with discordant calls across the homologous entities is NA
            category = next(iter(categories)) if len(categories) == 1 else CountCategory.NA
            counts[gene_species[gene_id]][category] += 1
        records.append(
            MultiSpeciesCallCounts(
                oma_group_id=oma_group_id,
                anat_entity_ids=anat_entity_ids,
                dev_stage_id=dev_stage_id,
                comparison_factor=factor,
                counts=counts,
                gene_ids=tuple(sorted(per_gene)),
            )
        )
    return records


def aggregate_diff_expression(
    calls: Iterable[DiffExpressionCall],
    homology_groups: Iterable[HomologyGroup],
    oma_groups: Iterable[OMAGroup],
    species_ids: Iterable[int],
    genes: Mapping[str, Gene],
) -> list[MultiSpeciesCallCounts]:
    """
    Count over/under/not differentially expressed genes per species.

    One record is produced per (OMA group, homology group, stage, comparison
    factor) having data. Only species among ``species_ids`` with data in the
    record appear in its counts; NO_DATA calls are ignored and ambiguous
    calls are counted as NA.
    """
    entries = []
    for call in calls:
        category = diff_category(call.summary)
        if category is not None:
            entries.append((call.gene_id, call.condition, call.comparison_factor, category))

    records = _count(entries, homology_groups, oma_groups, species_ids, genes)
    logger.info(
        "multi_species_diff_counts_complete",
        call_count=len(entries),
        record_count=len(records),
    )
    return records


def aggregate_expression(
    calls: Iterable[ExpressionCall],
    homology_groups: Iterable[HomologyGroup],
    oma_groups: Iterable[OMAGroup],
    species_ids: Iterable[int],
    genes: Mapping[str, Gene],
) -> list[MultiSpeciesCallCounts]:
    """Count present/absent genes per species, ambiguous calls as NA."""
    entries = [
        (call.gene_id, call.condition, None, expression_category(call.summary))
        for call in calls
    ]
    records = _count(entries, homology_groups, oma_groups, species_ids, genes)
    logger.info(
        "multi_species_expression_counts_complete",
        call_count=len(entries),
        record_count=len(records),
    )
    return records
