"""Differential expression call records."""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Mapping

from exprcall_pipeline.evidence.models import (
    ComparisonFactor,
    Condition,
    DataQuality,
    DataType,
    DiffCallType,
)


class DiffExpressionSummary(str, Enum):
    OVER_EXPRESSED = "over-expression"
    UNDER_EXPRESSED = "under-expression"
    NOT_DIFF_EXPRESSED = "no diff expression"
    WEAK_AMBIGUITY = "weak ambiguity"
    STRONG_AMBIGUITY = "strong ambiguity"
    NO_DATA = "no data"


@dataclass(frozen=True)
class DataTypeDiffCall:
    """Result of the p-value weighted vote for one data type."""

    data_type: DataType
    call: DiffCallType
    best_p_value: float
    support_count: int
    conflict_count: int
    quality: DataQuality


@dataclass(frozen=True)
class DiffExpressionCall:
    """Differential expression call of a gene in a condition along one comparison axis.

    The per-data-type entries are fixed when the call is built and are not
    re-aggregated afterwards.
    """

    gene_id: str
    condition: Condition
    comparison_factor: ComparisonFactor
    summary: DiffExpressionSummary
    quality: DataQuality
    per_data_type: Mapping[DataType, DataTypeDiffCall] = field(hash=False)

    def __post_init__(self):
        ordered = dict(sorted(self.per_data_type.items(), key=lambda kv: kv[0].name))
        object.__setattr__(self, "per_data_type", MappingProxyType(ordered))
