"""Compare the presence/absence calls of a set of genes of one species."""

from collections import defaultdict
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

import structlog

from exprcall_pipeline.evidence.models import Condition
from exprcall_pipeline.exceptions import InvariantViolationError
from exprcall_pipeline.presence.models import ExpressionCall, ExpressionSummary

logger = structlog.get_logger()


@dataclass(frozen=True)
class MultiGeneExprCounts:
    """Genes of the requested set grouped by their call in one condition."""

    call_type_to_genes: Mapping[ExpressionSummary, frozenset[str]] = field(hash=False)
    genes_with_no_data: frozenset[str]

    def __post_init__(self):
        ordered = {
            summary: frozenset(self.call_type_to_genes[summary])
            for summary in ExpressionSummary
            if self.call_type_to_genes.get(summary)
        }
        object.__setattr__(self, "call_type_to_genes", MappingProxyType(ordered))

    def genes_with(self, summary: ExpressionSummary) -> frozenset[str]:
        return self.call_type_to_genes.get(summary, frozenset())

    @property
    def score(self) -> Optional[float]:
        """
        Agreement of the genes on presence versus absence.

        1.0 when all genes with a clear call agree, 0.0 when they split
        evenly. None when no gene has a clear call (ambiguous calls only).
        """
        present = len(self.genes_with(ExpressionSummary.PRESENT))
        absent = len(self.genes_with(ExpressionSummary.ABSENT))
        if present + absent == 0:
            return None
        return abs(present - absent) / (present + absent)


@dataclass(frozen=True)
class MultiGeneExprAnalysis:
    """Per-condition grouping of the calls of a gene set."""

    gene_ids: frozenset[str]
    cond_to_counts: Mapping[Condition, MultiGeneExprCounts] = field(hash=False)

    def __post_init__(self):
        ordered = dict(sorted(self.cond_to_counts.items(), key=lambda kv: kv[0].sort_key()))
        object.__setattr__(self, "cond_to_counts", MappingProxyType(ordered))

    def ranked_conditions(self) -> list[tuple[Condition, MultiGeneExprCounts]]:
        """
        Conditions by decreasing score, then decreasing count of expressing
        genes. Conditions without a score come last.
        """
        return sorted(
            self.cond_to_counts.items(),
            key=lambda kv: (
                1.0 if kv[1].score is None else -kv[1].score,
                -len(kv[1].genes_with(ExpressionSummary.PRESENT)),
                kv[0].sort_key(),
            ),
        )


def analyze_multi_gene(
    calls: Iterable[ExpressionCall],
    gene_ids: Iterable[str],
) -> MultiGeneExprAnalysis:
    """
    Group the calls of the requested genes per condition.

    Only conditions where at least one requested gene has a call observed
    in that condition are kept. Genes of the set without any call there
    are reported as having no data.

    Args:
        calls: Presence/absence calls, usually all calls of one species
        gene_ids: Genes to compare

    Returns:
        MultiGeneExprAnalysis

    Raises:
        ValueError: If no gene is requested
        InvariantViolationError: If the calls of the requested genes span
            several species
    """
    requested = frozenset(gene_ids)
    if not requested:
        raise ValueError("Some genes must be provided")

    by_condition: dict[Condition, list[ExpressionCall]] = defaultdict(list)
    for call in calls:
        if call.gene_id in requested:
            by_condition[call.condition].append(call)

    species_ids = {condition.species_id for condition in by_condition}
    if len(species_ids) > 1:
        raise InvariantViolationError(
            f"Multi-gene comparison is for a single species, got {sorted(species_ids, key=str)}"
        )

    cond_to_counts = {}
    for condition, condition_calls in by_condition.items():
        if not any(c.is_observed for c in condition_calls):
            continue
        call_type_to_genes: dict[ExpressionSummary, set[str]] = defaultdict(set)
        for call in condition_calls:
            call_type_to_genes[call.summary].add(call.gene_id)
        with_data = {c.gene_id for c in condition_calls}
        cond_to_counts[condition] = MultiGeneExprCounts(
            call_type_to_genes=call_type_to_genes,
            genes_with_no_data=requested - with_data,
        )

    genes_without_calls = requested - {
        c.gene_id for condition_calls in by_condition.values() for c in condition_calls
    }
    if genes_without_calls:
        logger.warning("genes_without_calls", gene_ids=sorted(genes_without_calls))
    logger.info(
        "multi_gene_analysis_complete",
        gene_count=len(requested),
        condition_count=len(cond_to_counts),
    )
    return MultiGeneExprAnalysis(gene_ids=requested, cond_to_counts=cond_to_counts)
