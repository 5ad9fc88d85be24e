"""P-value weighted voting among analyses of a single data type."""

import math
from collections import defaultdict
from typing import Iterable, Optional

import structlog

from exprcall_pipeline.config.schema import DiffExpressionSettings, TieBreakPolicy
from exprcall_pipeline.diffexpr.models import DataTypeDiffCall
from exprcall_pipeline.evidence.models import (
    DataQuality,
    DiffAnalysisResult,
    DiffCallType,
    unexpected,
)
from exprcall_pipeline.exceptions import InvariantViolationError, VotingTieError

logger = structlog.get_logger()

# Fixed order used as the last tie-break criterion
CALL_ORDER = (
    DiffCallType.OVER_EXPRESSED,
    DiffCallType.UNDER_EXPRESSED,
    DiffCallType.NOT_DIFF_EXPRESSED,
    DiffCallType.NOT_EXPRESSED,
)


def vote_weight(result: DiffAnalysisResult, p_value_floor: float) -> float:
    """Weight of one analysis: conditions compared divided by its p-value."""
    return result.conditions_compared / max(result.p_value, p_value_floor)


def _result_sort_key(result: DiffAnalysisResult) -> tuple:
    return (
        result.analysis_id,
        result.call.name,
        result.p_value,
        result.conditions_compared,
    )


def _break_tie(
    tied: list[DiffCallType],
    voting: list[DiffAnalysisResult],
    policy: TieBreakPolicy,
    key: tuple,
) -> DiffCallType:
    match policy:
        case TieBreakPolicy.RAISE:
            raise VotingTieError(key, tied)
        case TieBreakPolicy.PREFER_NOT_DIFF:
            if DiffCallType.NOT_DIFF_EXPRESSED in tied:
                return DiffCallType.NOT_DIFF_EXPRESSED
        case TieBreakPolicy.BEST_P_VALUE:
            pass
        case _:
            unexpected(policy)

    def best_p(call: DiffCallType) -> float:
        return min(r.p_value for r in voting if r.call is call)

    return min(tied, key=lambda call: (best_p(call), CALL_ORDER.index(call)))


def resolve_data_type(
    results: Iterable[DiffAnalysisResult],
    settings: Optional[DiffExpressionSettings] = None,
) -> DataTypeDiffCall:
    """
    Resolve the analyses of one (gene, condition, comparison factor, data type).

    Each analysis votes for its call with weight
    ``conditions_compared / max(p_value, p_value_floor)``; the call with the
    highest total weight wins. Analyses with NO_DATA do not vote. Calls within
    ``tie_tolerance`` (relative to the top weight) of the winner are tied and
    resolved by ``tie_policy``.

    Results are sorted before summation so the outcome does not depend on
    input order.

    Args:
        results: Analysis results sharing gene, condition, comparison factor
            and data type
        settings: Voting settings (defaults if None)

    Returns:
        DataTypeDiffCall with the winning call, the best p-value among the
        analyses supporting it, and the support and conflict counts. Quality
        is HIGH without conflicting analyses, LOW otherwise.

    Raises:
        InvariantViolationError: If results are empty or mix keys
        VotingTieError: On a tie with the RAISE policy
    """
    settings = settings or DiffExpressionSettings()
    results = sorted(results, key=_result_sort_key)
    if not results:
        raise InvariantViolationError("No differential analysis result to resolve")

    keys = {
        (r.gene_id, r.condition, r.comparison_factor, r.data_type) for r in results
    }
    if len(keys) > 1:
        raise InvariantViolationError(
            f"Voting expects results of a single gene, condition, factor and data type, "
            f"got {len(keys)} keys"
        )
    key = keys.pop()
    data_type = key[3]

    voting = [r for r in results if r.call is not DiffCallType.NO_DATA]
    if not voting:
        return DataTypeDiffCall(
            data_type=data_type,
            call=DiffCallType.NO_DATA,
            best_p_value=1.0,
            support_count=0,
            conflict_count=0,
            quality=DataQuality.NO_DATA,
        )

    weights_by_call: dict[DiffCallType, list[float]] = defaultdict(list)
    for result in voting:
        if result.call not in CALL_ORDER:
            unexpected(result.call)
        weights_by_call[result.call].append(vote_weight(result, settings.p_value_floor))
    totals = {call: math.fsum(weights) for call, weights in weights_by_call.items()}

    top = max(totals.values())
    tied = sorted(
        (call for call, total in totals.items() if top - total <= settings.tie_tolerance * top),
        key=CALL_ORDER.index,
    )
    if len(tied) == 1:
        winner = tied[0]
    else:
        winner = _break_tie(tied, voting, settings.tie_policy, key)
        logger.warning(
            "diff_vote_tie",
            gene_id=key[0],
            anat_entity_id=key[1].anat_entity_id,
            dev_stage_id=key[1].dev_stage_id,
            data_type=data_type.name,
            tied_calls=[c.name for c in tied],
            policy=settings.tie_policy.value,
            selected=winner.name,
        )

    supporting = [r for r in voting if r.call is winner]
    conflict_count = len(voting) - len(supporting)
    return DataTypeDiffCall(
        data_type=data_type,
        call=winner,
        best_p_value=min(r.p_value for r in supporting),
        support_count=len(supporting),
        conflict_count=conflict_count,
        quality=DataQuality.HIGH if conflict_count == 0 else DataQuality.LOW,
    )
