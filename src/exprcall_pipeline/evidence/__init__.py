"""Evidence model: per-data-type observations and differential analysis results.

Data types:
- Affymetrix: microarray detection and differential analyses
- RNA-Seq: detection and differential analyses
- EST: expressed sequence tags, presence only
- In situ: in situ hybridization
"""

from exprcall_pipeline.evidence.models import (
    DIFF_DATA_TYPES,
    ComparisonFactor,
    Condition,
    DataPropagation,
    DataQuality,
    DataType,
    DataTypeObservation,
    DetectionFlag,
    DiffAnalysisResult,
    DiffCallType,
    Gene,
    Species,
    best_quality,
)
from exprcall_pipeline.evidence.collapse import collapse_observations

__all__ = [
    "DIFF_DATA_TYPES",
    "ComparisonFactor",
    "Condition",
    "DataPropagation",
    "DataQuality",
    "DataType",
    "DataTypeObservation",
    "DetectionFlag",
    "DiffAnalysisResult",
    "DiffCallType",
    "Gene",
    "Species",
    "best_quality",
    "collapse_observations",
]
