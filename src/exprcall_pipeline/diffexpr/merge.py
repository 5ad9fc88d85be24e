"""Cross-data-type merge of differential expression calls."""

from collections import Counter, defaultdict
from typing import Iterable, Mapping, Optional

import structlog

from exprcall_pipeline.config.schema import DiffExpressionSettings
from exprcall_pipeline.diffexpr.models import (
    DataTypeDiffCall,
    DiffExpressionCall,
    DiffExpressionSummary,
)
from exprcall_pipeline.diffexpr.voting import resolve_data_type
from exprcall_pipeline.evidence.models import (
    ComparisonFactor,
    Condition,
    DataQuality,
    DataType,
    DiffAnalysisResult,
    DiffCallType,
    unexpected,
)

logger = structlog.get_logger()

_AGREEMENT = {
    DiffCallType.OVER_EXPRESSED: DiffExpressionSummary.OVER_EXPRESSED,
    DiffCallType.UNDER_EXPRESSED: DiffExpressionSummary.UNDER_EXPRESSED,
    DiffCallType.NOT_DIFF_EXPRESSED: DiffExpressionSummary.NOT_DIFF_EXPRESSED,
}

NeverExpressedIndex = Mapping[tuple[str, Condition], frozenset[DataType]]


def merge_data_types(
    per_data_type: Mapping[DataType, DataTypeDiffCall],
    never_expressed: Iterable[DataType] = (),
) -> tuple[DiffExpressionSummary, DataQuality]:
    """
    Merge resolved data type calls into a summary and quality.

    ``never_expressed`` lists data types showing the gene is not expressed
    in the condition; they count as NOT_EXPRESSED where they have no
    differential call of their own.

    Rules:
    - OVER and UNDER, or NOT_EXPRESSED and NOT_DIFF_EXPRESSED: STRONG_AMBIGUITY
    - A single state: that state, HIGH quality if no data type had
      conflicting analyses, LOW otherwise
    - OVER or UNDER with NOT_DIFF_EXPRESSED: WEAK_AMBIGUITY
    - OVER with NOT_EXPRESSED: WEAK_AMBIGUITY
    - UNDER with NOT_EXPRESSED: UNDER_EXPRESSED with LOW quality
    - Nothing but NO_DATA, or NOT_EXPRESSED alone: NO_DATA
    """
    states: dict[DataType, DiffCallType] = {}
    for data_type, resolved in per_data_type.items():
        if resolved.data_type is not data_type:
            unexpected(resolved.data_type)
        states[data_type] = resolved.call
    for data_type in never_expressed:
        if states.get(data_type, DiffCallType.NO_DATA) is DiffCallType.NO_DATA:
            states[data_type] = DiffCallType.NOT_EXPRESSED

    calls = set(states.values()) - {DiffCallType.NO_DATA}
    for call in calls:
        if call not in _AGREEMENT and call is not DiffCallType.NOT_EXPRESSED:
            unexpected(call)

    if not calls:
        return DiffExpressionSummary.NO_DATA, DataQuality.NO_DATA

    if {DiffCallType.OVER_EXPRESSED, DiffCallType.UNDER_EXPRESSED} <= calls or {
        DiffCallType.NOT_EXPRESSED,
        DiffCallType.NOT_DIFF_EXPRESSED,
    } <= calls:
        return DiffExpressionSummary.STRONG_AMBIGUITY, DataQuality.NA

    if len(calls) == 1:
        call = next(iter(calls))
        if call is DiffCallType.NOT_EXPRESSED:
            return DiffExpressionSummary.NO_DATA, DataQuality.NO_DATA
        contributing = [r for r in per_data_type.values() if r.call is call]
        quality = (
            DataQuality.HIGH
            if all(r.conflict_count == 0 for r in contributing)
            else DataQuality.LOW
        )
        return _AGREEMENT[call], quality

    if DiffCallType.NOT_DIFF_EXPRESSED in calls:
        return DiffExpressionSummary.WEAK_AMBIGUITY, DataQuality.NA

    if calls == {DiffCallType.OVER_EXPRESSED, DiffCallType.NOT_EXPRESSED}:
        return DiffExpressionSummary.WEAK_AMBIGUITY, DataQuality.NA
    if calls == {DiffCallType.UNDER_EXPRESSED, DiffCallType.NOT_EXPRESSED}:
        # Under-expression where other data show no expression at all
        return DiffExpressionSummary.UNDER_EXPRESSED, DataQuality.LOW
    unexpected(sorted(c.name for c in calls))


def resolve_diff_expression(
    results: Iterable[DiffAnalysisResult],
    settings: Optional[DiffExpressionSettings] = None,
    never_expressed: Optional[NeverExpressedIndex] = None,
) -> list[DiffExpressionCall]:
    """
    Compute differential expression calls from analysis results.

    Results are grouped per (gene, condition, comparison factor), resolved
    per data type by weighted vote, then merged across data types. Calls are
    not propagated through the ontologies.

    Args:
        results: DiffAnalysisResult records
        settings: Voting settings (defaults if None)
        never_expressed: Optional mapping (gene_id, condition) -> data types
            reporting absence of expression

    Returns:
        DiffExpressionCall list sorted by gene, condition and comparison factor
    """
    settings = settings or DiffExpressionSettings()
    never_expressed = never_expressed or {}

    grouped: dict[
        tuple[str, Condition, ComparisonFactor], dict[DataType, list[DiffAnalysisResult]]
    ] = defaultdict(lambda: defaultdict(list))
    result_count = 0
    for result in results:
        grouped[(result.gene_id, result.condition, result.comparison_factor)][
            result.data_type
        ].append(result)
        result_count += 1

    logger.info(
        "diff_expression_resolution_start",
        result_count=result_count,
        group_count=len(grouped),
        tie_policy=settings.tie_policy.value,
    )

    calls = []
    for (gene_id, condition, factor), by_type in sorted(
        grouped.items(),
        key=lambda item: (item[0][0], item[0][1].sort_key(), item[0][2].name),
    ):
        per_data_type = {
            data_type: resolve_data_type(type_results, settings)
            for data_type, type_results in sorted(by_type.items(), key=lambda kv: kv[0].name)
        }
        summary, quality = merge_data_types(
            per_data_type,
            never_expressed.get((gene_id, condition), frozenset()),
        )
        calls.append(
            DiffExpressionCall(
                gene_id=gene_id,
                condition=condition,
                comparison_factor=factor,
                summary=summary,
                quality=quality,
                per_data_type=per_data_type,
            )
        )

    summary_counts = Counter(c.summary.name for c in calls)
    logger.info(
        "diff_expression_resolution_complete",
        call_count=len(calls),
        **{name.lower(): count for name, count in sorted(summary_counts.items())},
    )
    return calls
