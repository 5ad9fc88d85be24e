"""Per-data-type propagation of presence/absence calls through the ontologies."""

from collections import deque
from typing import Iterable

import structlog

from exprcall_pipeline.evidence.models import (
    Condition,
    DataPropagation,
    DataQuality,
    DataTypeObservation,
    DetectionFlag,
    best_quality,
    unexpected,
)
from exprcall_pipeline.exceptions import InvariantViolationError
from exprcall_pipeline.ontology import Ontology

logger = structlog.get_logger()


def _merge_quality(known: dict[Condition, DataQuality], target: Condition, quality: DataQuality) -> None:
    current = known.get(target)
    known[target] = quality if current is None else best_quality((current, quality))


def propagate_data_type(
    observations: Iterable[DataTypeObservation],
    anat_ontology: Ontology,
    stage_ontology: Ontology,
) -> dict[Condition, DataTypeObservation]:
    """
    Propagate the calls of one gene and one data type.

    PRESENT calls go up both ontologies: a call at (anat, stage) implies
    presence at every (ancestor anat, ancestor stage) combination.

    ABSENT calls go down the anatomy only, at the same stage. The absence is
    discarded at any condition where the same data type has a PRESENT call,
    raw or propagated. Because presence is propagated upward first, these
    are exactly the conditions with presence at the condition itself or at
    one of its descendants; the walk still continues below them.

    Args:
        observations: Collapsed observations (one per condition) of a single
            gene and data type
        anat_ontology: Anatomy ontology
        stage_ontology: Developmental stage ontology

    Returns:
        Mapping condition -> propagated observation. ``observed`` is DIRECT
        only where the raw data already carried the same detection flag.
        ``source_conflict`` is kept on a PRESENT call when all the presence
        reaching it comes from conflicting reports.

    Raises:
        InvariantViolationError: If observations mix genes or data types, or
            repeat a condition
        UnknownElementError: If a condition refers to an unknown ontology term
    """
    raw: dict[Condition, DataTypeObservation] = {}
    for obs in observations:
        if obs.condition in raw:
            raise InvariantViolationError(
                f"Uncollapsed observations for {obs.gene_id} at {obs.condition}"
            )
        raw[obs.condition] = obs
    if not raw:
        return {}

    keys = {(o.gene_id, o.data_type) for o in raw.values()}
    if len(keys) > 1:
        raise InvariantViolationError(
            f"Propagation expects a single gene and data type, got {sorted(keys)}"
        )
    gene_id, data_type = keys.pop()

    present: dict[Condition, DataQuality] = {}
    # True while every PRESENT source reaching the condition was a conflict
    conflicted: dict[Condition, bool] = {}
    absent_sources: list[DataTypeObservation] = []
    for condition in sorted(raw, key=Condition.sort_key):
        obs = raw[condition]
        match obs.detection_flag:
            case DetectionFlag.PRESENT:
                anat_lineage = anat_ontology.ancestors_of(
                    condition.anat_entity_id, include_self=True
                )
                stage_lineage = stage_ontology.ancestors_of(
                    condition.dev_stage_id, include_self=True
                )
                for anat_id in anat_lineage:
                    for stage_id in stage_lineage:
                        target = Condition(anat_id, stage_id, condition.species_id)
                        _merge_quality(present, target, obs.quality)
                        conflicted[target] = (
                            conflicted.get(target, True) and obs.source_conflict
                        )
            case DetectionFlag.ABSENT:
                absent_sources.append(obs)
            case DetectionFlag.NO_DATA:
                continue
            case _:
                unexpected(obs.detection_flag)

    absent: dict[Condition, DataQuality] = {}
    discarded = 0
    for obs in absent_sources:
        source = obs.condition
        # Stage is fixed; walk down the anatomy from the source entity
        queue = deque([source.anat_entity_id])
        visited: set[str] = set()
        while queue:
            anat_id = queue.popleft()
            if anat_id in visited:
                continue
            visited.add(anat_id)
            target = source.with_anat_entity(anat_id)
            if target in present:
                discarded += 1
            else:
                _merge_quality(absent, target, obs.quality)
            queue.extend(sorted(anat_ontology.children_of(anat_id)))

    if discarded:
        logger.debug(
            "absence_propagation_discarded",
            gene_id=gene_id,
            data_type=data_type.name,
            discarded_count=discarded,
        )

    def observed_at(target: Condition, flag: DetectionFlag) -> DataPropagation:
        source = raw.get(target)
        if source is not None and source.detection_flag is flag:
            return DataPropagation.DIRECT
        return DataPropagation.PROPAGATED

    result: dict[Condition, DataTypeObservation] = {}
    for flag, qualities in (
        (DetectionFlag.PRESENT, present),
        (DetectionFlag.ABSENT, absent),
    ):
        for target, quality in qualities.items():
            result[target] = DataTypeObservation(
                gene_id=gene_id,
                condition=target,
                data_type=data_type,
                detection_flag=flag,
                quality=quality,
                observed=observed_at(target, flag),
                source_conflict=flag is DetectionFlag.PRESENT and conflicted[target],
            )
    return result
