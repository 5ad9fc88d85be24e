"""Collapse repeated reports of the same data type at the same condition."""

from collections import defaultdict
from typing import Iterable

import structlog

from exprcall_pipeline.evidence.models import (
    DataPropagation,
    DataQuality,
    DataTypeObservation,
    DetectionFlag,
    best_quality,
    unexpected,
)

logger = structlog.get_logger()


def collapse_observations(
    observations: Iterable[DataTypeObservation],
) -> list[DataTypeObservation]:
    """Merge reports sharing (gene, condition, data type) into one observation.

    Rules:
    - NO_DATA reports carry no evidence and are dropped
    - Congruent reports: HIGH if any report is HIGH or at least two agree,
      LOW otherwise
    - PRESENT and ABSENT within the same data type: PRESENT with LOW quality
      and ``source_conflict`` set, the absence is discarded

    Args:
        observations: Raw observations, possibly repeated

    Returns:
        One observation per (gene, condition, data type) with data, sorted
        by gene, condition and data type
    """
    grouped: dict[tuple, list[DataTypeObservation]] = defaultdict(list)
    for obs in observations:
        match obs.detection_flag:
            case DetectionFlag.NO_DATA:
                continue
            case DetectionFlag.PRESENT | DetectionFlag.ABSENT:
                grouped[(obs.gene_id, obs.condition, obs.data_type)].append(obs)
            case _:
                unexpected(obs.detection_flag)

    collapsed = []
    internal_conflicts = 0
    for (gene_id, condition, data_type), reports in grouped.items():
        flags = {r.detection_flag for r in reports}
        observed = (
            DataPropagation.DIRECT
            if any(r.observed is DataPropagation.DIRECT for r in reports)
            else DataPropagation.PROPAGATED
        )

        conflict = len(flags) > 1
        if conflict:
            internal_conflicts += 1
            flag = DetectionFlag.PRESENT
            quality = DataQuality.LOW
        else:
            flag = flags.pop()
            quality = best_quality(r.quality for r in reports)
            if len(reports) >= 2:
                quality = DataQuality.HIGH

        collapsed.append(
            DataTypeObservation(
                gene_id=gene_id,
                condition=condition,
                data_type=data_type,
                detection_flag=flag,
                quality=quality,
                observed=observed,
                source_conflict=conflict,
            )
        )

    if internal_conflicts:
        logger.info(
            "same_data_type_conflicts_resolved",
            conflict_count=internal_conflicts,
        )

    collapsed.sort(
        key=lambda o: (o.gene_id, o.condition.sort_key(), o.data_type.name)
    )
    return collapsed
