"""Cross-species comparability of expression calls.

Resolves the least common ancestor taxon of requested species, selects the
anatomical homology annotations (CIO graded) and OMA orthology groups valid
at that taxon, and counts per-species calls of orthologous genes in
homologous conditions.
"""

from exprcall_pipeline.homology.models import (
    AnatEntitySimilarity,
    AnatEntitySimilarityAnalysis,
    CIOConfidence,
    CountCategory,
    HomologyGroup,
    MultiSpeciesCallCounts,
    OMAGroup,
)
from exprcall_pipeline.homology.aggregation import (
    aggregate_diff_expression,
    aggregate_expression,
)
from exprcall_pipeline.homology.analysis import (
    AnalysisState,
    ComparabilityAnalysis,
    ComparabilityResolver,
)

__all__ = [
    "AnatEntitySimilarity",
    "AnatEntitySimilarityAnalysis",
    "CIOConfidence",
    "CountCategory",
    "HomologyGroup",
    "MultiSpeciesCallCounts",
    "OMAGroup",
    "aggregate_diff_expression",
    "aggregate_expression",
    "AnalysisState",
    "ComparabilityAnalysis",
    "ComparabilityResolver",
]
