"""Presence/absence expression call records."""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Mapping

from exprcall_pipeline.evidence.models import (
    Condition,
    DataPropagation,
    DataQuality,
    DataType,
    DataTypeObservation,
)


class ExpressionSummary(str, Enum):
    PRESENT = "present"
    ABSENT = "absent"
    LOW_AMBIGUITY = "low ambiguity"
    HIGH_AMBIGUITY = "high ambiguity"


@dataclass(frozen=True)
class ExpressionCall:
    """Merged presence/absence call of a gene in a condition.

    ``per_data_type`` only holds data types having data at the condition and
    is exposed as a read-only mapping.
    """

    gene_id: str
    condition: Condition
    summary: ExpressionSummary
    quality: DataQuality
    per_data_type: Mapping[DataType, DataTypeObservation] = field(hash=False)
    observed: DataPropagation = DataPropagation.PROPAGATED

    def __post_init__(self):
        ordered = dict(sorted(self.per_data_type.items(), key=lambda kv: kv[0].name))
        object.__setattr__(self, "per_data_type", MappingProxyType(ordered))

    @property
    def is_observed(self) -> bool:
        return self.observed is DataPropagation.DIRECT

    @property
    def is_ambiguous(self) -> bool:
        return self.summary in (
            ExpressionSummary.LOW_AMBIGUITY,
            ExpressionSummary.HIGH_AMBIGUITY,
        )
