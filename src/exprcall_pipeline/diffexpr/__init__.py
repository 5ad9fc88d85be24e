"""Differential expression calls.

Analyses of the same gene, condition and data type are resolved by a
p-value weighted vote, then data types are merged into one summary with
weak/strong ambiguity states. No ontology propagation is applied.
"""

from exprcall_pipeline.diffexpr.models import (
    DataTypeDiffCall,
    DiffExpressionCall,
    DiffExpressionSummary,
)
from exprcall_pipeline.diffexpr.voting import resolve_data_type, vote_weight
from exprcall_pipeline.diffexpr.merge import merge_data_types, resolve_diff_expression

__all__ = [
    "DataTypeDiffCall",
    "DiffExpressionCall",
    "DiffExpressionSummary",
    "resolve_data_type",
    "vote_weight",
    "merge_data_types",
    "resolve_diff_expression",
]
