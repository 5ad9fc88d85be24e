"""Merge propagated per-data-type calls into presence/absence expression calls."""

from collections import Counter, defaultdict
from typing import Iterable, Mapping, Optional

import structlog

from exprcall_pipeline.evidence.collapse import collapse_observations
from exprcall_pipeline.evidence.models import (
    Condition,
    DataPropagation,
    DataQuality,
    DataType,
    DataTypeObservation,
    DetectionFlag,
    best_quality,
    unexpected,
)
from exprcall_pipeline.ontology import Ontology
from exprcall_pipeline.presence.models import ExpressionCall, ExpressionSummary
from exprcall_pipeline.presence.propagation import propagate_data_type

logger = structlog.get_logger()

_QUALITY_RANK = {
    DataQuality.HIGH: 2,
    DataQuality.LOW: 1,
    DataQuality.NA: 0,
}


def merge_data_types(
    gene_id: str,
    condition: Condition,
    per_data_type: Mapping[DataType, DataTypeObservation],
    has_raw_data: bool = False,
) -> Optional[ExpressionCall]:
    """
    Merge the calls of all data types for a gene in a condition.

    - All data types PRESENT: PRESENT
    - All data types ABSENT: ABSENT
    - PRESENT and ABSENT both observed directly at this condition:
      HIGH_AMBIGUITY
    - Any other conflict (visible only after propagation): LOW_AMBIGUITY

    Quality is HIGH without conflict when at least two data types agree or
    one of them is HIGH, LOW otherwise, and NA for ambiguities. A data type
    whose own reports conflicted keeps the call LOW whatever the other types
    say.

    Args:
        gene_id: Gene of the call
        condition: Condition of the call
        per_data_type: Propagated observation of each data type
        has_raw_data: True if any data type has raw data at the condition,
            whatever its detection flag. The call is then observed even if
            the surviving flags were all propagated.

    Returns:
        ExpressionCall, or None if no data type has data
    """
    present: list[DataTypeObservation] = []
    absent: list[DataTypeObservation] = []
    for data_type, obs in per_data_type.items():
        if obs.data_type is not data_type:
            unexpected(obs.data_type)
        match obs.detection_flag:
            case DetectionFlag.PRESENT:
                present.append(obs)
            case DetectionFlag.ABSENT:
                absent.append(obs)
            case DetectionFlag.NO_DATA:
                continue
            case _:
                unexpected(obs.detection_flag)

    with_data = present + absent
    if not with_data:
        return None

    if present and absent:
        direct_conflict = any(o.observed is DataPropagation.DIRECT for o in present) and any(
            o.observed is DataPropagation.DIRECT for o in absent
        )
        summary = (
            ExpressionSummary.HIGH_AMBIGUITY
            if direct_conflict
            else ExpressionSummary.LOW_AMBIGUITY
        )
        quality = DataQuality.NA
    else:
        summary = ExpressionSummary.PRESENT if present else ExpressionSummary.ABSENT
        quality = best_quality(o.quality for o in with_data)
        if len(with_data) >= 2:
            quality = DataQuality.HIGH
        if any(o.source_conflict for o in with_data):
            quality = DataQuality.LOW

    observed = (
        DataPropagation.DIRECT
        if has_raw_data or any(o.observed is DataPropagation.DIRECT for o in with_data)
        else DataPropagation.PROPAGATED
    )
    return ExpressionCall(
        gene_id=gene_id,
        condition=condition,
        summary=summary,
        quality=quality,
        per_data_type={o.data_type: o for o in with_data},
        observed=observed,
    )


def aggregate_expression_calls(
    observations: Iterable[DataTypeObservation],
    anat_ontology: Ontology,
    stage_ontology: Ontology,
    propagate: bool = True,
) -> list[ExpressionCall]:
    """
    Compute presence/absence expression calls from raw observations.

    Steps:
    1. Collapse repeated reports of a data type at a condition
    2. Propagate each (gene, data type) independently through the ontologies
    3. Merge data types per (gene, condition)

    Args:
        observations: Raw DataTypeObservation records
        anat_ontology: Anatomy ontology
        stage_ontology: Developmental stage ontology
        propagate: If False, only conditions with raw data are reported

    Returns:
        Expression calls sorted by gene and condition. Conditions without
        data in any data type are not reported.
    """
    collapsed = collapse_observations(observations)

    by_gene_type: dict[tuple[str, DataType], list[DataTypeObservation]] = defaultdict(list)
    for obs in collapsed:
        by_gene_type[(obs.gene_id, obs.data_type)].append(obs)

    logger.info(
        "expression_aggregation_start",
        observation_count=len(collapsed),
        gene_count=len({gene_id for gene_id, _ in by_gene_type}),
        propagate=propagate,
    )

    merged: dict[tuple[str, Condition], dict[DataType, DataTypeObservation]] = defaultdict(dict)
    for (gene_id, data_type), gene_obs in by_gene_type.items():
        if propagate:
            per_condition = propagate_data_type(gene_obs, anat_ontology, stage_ontology)
        else:
            per_condition = {o.condition: o for o in gene_obs}
        for condition, obs in per_condition.items():
            merged[(gene_id, condition)][data_type] = obs

    raw_keys = {(o.gene_id, o.condition) for o in collapsed}
    calls = []
    for (gene_id, condition), per_data_type in merged.items():
        call = merge_data_types(
            gene_id,
            condition,
            per_data_type,
            has_raw_data=(gene_id, condition) in raw_keys,
        )
        if call is not None:
            calls.append(call)
    calls.sort(key=lambda c: (c.gene_id, c.condition.sort_key()))

    summary_counts = Counter(c.summary.name for c in calls)
    logger.info(
        "expression_aggregation_complete",
        call_count=len(calls),
        observed_count=sum(1 for c in calls if c.is_observed),
        **{name.lower(): count for name, count in sorted(summary_counts.items())},
    )
    return calls


def filter_expression_calls(
    calls: Iterable[ExpressionCall],
    summaries: Optional[Iterable[ExpressionSummary]] = None,
    min_quality: Optional[DataQuality] = None,
    observed_only: bool = False,
    data_types: Optional[Iterable[DataType]] = None,
) -> list[ExpressionCall]:
    """
    Filter expression calls.

    Args:
        calls: Calls to filter
        summaries: Keep only these summaries (None keeps all)
        min_quality: HIGH keeps high quality calls, LOW keeps high and poor
            quality calls (ambiguous calls have NA quality and are dropped)
        observed_only: Keep only calls observed at their condition
        data_types: Keep only calls with data in at least one of these types
    """
    summaries = set(summaries) if summaries is not None else None
    data_types = set(data_types) if data_types is not None else None
    if min_quality is not None and min_quality not in _QUALITY_RANK:
        unexpected(min_quality)

    kept = []
    for call in calls:
        if summaries is not None and call.summary not in summaries:
            continue
        if min_quality is not None and _QUALITY_RANK[call.quality] < _QUALITY_RANK[min_quality]:
            continue
        if observed_only and not call.is_observed:
            continue
        if data_types is not None and not data_types & set(call.per_data_type):
            continue
        kept.append(call)
    return kept


def never_expressed_data_types(call: Optional[ExpressionCall]) -> frozenset[DataType]:
    """Data types reporting absence of expression in a call."""
    if call is None:
        return frozenset()
    return frozenset(
        data_type
        for data_type, obs in call.per_data_type.items()
        if obs.detection_flag is DetectionFlag.ABSENT
    )


def never_expressed_index(
    calls: Iterable[ExpressionCall],
) -> dict[tuple[str, Condition], frozenset[DataType]]:
    """Map (gene, condition) to the data types reporting absence there."""
    index = {}
    for call in calls:
        absent = never_expressed_data_types(call)
        if absent:
            index[(call.gene_id, call.condition)] = absent
    return index
