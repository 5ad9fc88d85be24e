"""Presence/absence expression calls.

Raw per-data-type observations are propagated through the anatomy and
developmental stage ontologies (presence upward in both, absence downward
in anatomy only) and merged into one call per gene and condition. The
calls of a gene set can then be compared condition by condition.
"""

from exprcall_pipeline.presence.models import ExpressionCall, ExpressionSummary
from exprcall_pipeline.presence.propagation import propagate_data_type
from exprcall_pipeline.presence.aggregation import (
    aggregate_expression_calls,
    filter_expression_calls,
    merge_data_types,
    never_expressed_data_types,
    never_expressed_index,
)
from exprcall_pipeline.presence.multi_gene import (
    MultiGeneExprAnalysis,
    MultiGeneExprCounts,
    analyze_multi_gene,
)

__all__ = [
    "ExpressionCall",
    "ExpressionSummary",
    "propagate_data_type",
    "aggregate_expression_calls",
    "filter_expression_calls",
    "merge_data_types",
    "never_expressed_data_types",
    "never_expressed_index",
    "MultiGeneExprAnalysis",
    "MultiGeneExprCounts",
    "analyze_multi_gene",
]
