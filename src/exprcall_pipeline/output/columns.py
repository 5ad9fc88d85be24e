"""Column names and order of exported call files.

Downstream consumers parse these files by header, so names, order and the
enumerated cell values must stay stable across releases.
"""

from exprcall_pipeline.evidence.models import DataType
from exprcall_pipeline.homology.models import CountCategory
from exprcall_pipeline.presence.models import ExpressionSummary

GENE_ID = "Gene ID"
GENE_NAME = "Gene name"
ANAT_ENTITY_ID = "Anatomical entity ID"
ANAT_ENTITY_NAME = "Anatomical entity name"
STAGE_ID = "Developmental stage ID"
STAGE_NAME = "Developmental stage name"

EXPRESSION = "Expression"
DIFF_EXPRESSION = "Differential expression"
CALL_QUALITY = "Call quality"
INCLUDING_OBSERVED_DATA = "Including observed data"

OBSERVED_YES = "yes"
OBSERVED_NO = "no"

OMA_ID = "OMA ID"
ANAT_ENTITY_IDS = "Anatomical entity IDs"
ANAT_ENTITY_NAMES = "Anatomical entity names"
GENE_IDS = "Gene IDs"
GENE_NAMES = "Gene names"
LATIN_SPECIES_NAME = "Latin species name"
TAXON_ID = "Taxon ID"
TAXON_NAME = "Taxon name"
CIO_ID = "Anatomy homology CIO ID"
CIO_NAME = "Anatomy homology CIO name"
TRUSTED = "Trusted"

# Separator of multiple values inside one cell
MULTI_VALUE_SEPARATOR = "|"

# Data type column blocks, in file order
EXPRESSION_DATA_TYPES = (
    DataType.AFFYMETRIX,
    DataType.EST,
    DataType.IN_SITU,
    DataType.RNA_SEQ,
)
DIFF_EXPRESSION_DATA_TYPES = (
    DataType.AFFYMETRIX,
    DataType.RNA_SEQ,
)

# Data type names in headers, where they differ from the cell values
_HEADER_LABELS = {
    DataType.IN_SITU: "In situ hybridization",
}


def _header_label(data_type: DataType) -> str:
    return _HEADER_LABELS.get(data_type, data_type.value)


def data_state_column(data_type: DataType) -> str:
    return f"{_header_label(data_type)} data"


def data_quality_column(data_type: DataType) -> str:
    return f"{_header_label(data_type)} call quality"


def observed_data_column(data_type: DataType) -> str:
    label = _header_label(data_type)
    if data_type is DataType.IN_SITU:
        label = label.lower()
    return f"Including {label} observed data"


def best_p_value_column(data_type: DataType) -> str:
    return f"Best p-value using {data_type.value}"


def support_count_column(data_type: DataType) -> str:
    return f"Number of analysis using {data_type.value} data where the same call is found"


def conflict_count_column(data_type: DataType) -> str:
    return f"Number of analysis using {data_type.value} data where a different call is found"


# Typed columns of differential expression files
P_VALUE_COLUMNS = frozenset(best_p_value_column(dt) for dt in DIFF_EXPRESSION_DATA_TYPES)
ANALYSIS_COUNT_COLUMNS = frozenset(
    column
    for dt in DIFF_EXPRESSION_DATA_TYPES
    for column in (support_count_column(dt), conflict_count_column(dt))
)


CONDITION_COLUMNS = [
    GENE_ID,
    GENE_NAME,
    ANAT_ENTITY_ID,
    ANAT_ENTITY_NAME,
    STAGE_ID,
    STAGE_NAME,
]

COMPLETE_EXPRESSION_COLUMNS = CONDITION_COLUMNS + [
    EXPRESSION,
    CALL_QUALITY,
    INCLUDING_OBSERVED_DATA,
] + [
    column
    for data_type in EXPRESSION_DATA_TYPES
    for column in (
        data_state_column(data_type),
        data_quality_column(data_type),
        observed_data_column(data_type),
    )
]

COMPLETE_DIFF_EXPRESSION_COLUMNS = CONDITION_COLUMNS + [
    DIFF_EXPRESSION,
    CALL_QUALITY,
] + [
    column
    for data_type in DIFF_EXPRESSION_DATA_TYPES
    for column in (
        data_state_column(data_type),
        data_quality_column(data_type),
        best_p_value_column(data_type),
        support_count_column(data_type),
        conflict_count_column(data_type),
    )
]

# Per-species count column templates of multi-species files
SPECIES_COUNT_TEMPLATES = {
    CountCategory.OVER_EXPRESSED: "Over-expressed gene count for {}",
    CountCategory.UNDER_EXPRESSED: "Under-expressed gene count for {}",
    CountCategory.NOT_DIFF_EXPRESSED: "Not diff. expressed gene count for {}",
    CountCategory.PRESENT: "Present gene count for {}",
    CountCategory.ABSENT: "Absent gene count for {}",
    CountCategory.NA: "NA gene count for {}",
}

DIFF_COUNT_CATEGORIES = (
    CountCategory.OVER_EXPRESSED,
    CountCategory.UNDER_EXPRESSED,
    CountCategory.NOT_DIFF_EXPRESSED,
    CountCategory.NA,
)
EXPRESSION_COUNT_CATEGORIES = (
    CountCategory.PRESENT,
    CountCategory.ABSENT,
    CountCategory.NA,
)


def species_count_column(category: CountCategory, latin_name: str) -> str:
    return SPECIES_COUNT_TEMPLATES[category].format(latin_name)


def multi_species_columns(categories, latin_names) -> list[str]:
    return [
        OMA_ID,
        ANAT_ENTITY_IDS,
        ANAT_ENTITY_NAMES,
        STAGE_ID,
        STAGE_NAME,
    ] + [
        species_count_column(category, latin_name)
        for latin_name in latin_names
        for category in categories
    ] + [
        GENE_IDS,
        GENE_NAMES,
    ]


HOMOLOGY_GROUP_COLUMNS = [
    ANAT_ENTITY_IDS,
    ANAT_ENTITY_NAMES,
    TAXON_ID,
    TAXON_NAME,
    CIO_ID,
    CIO_NAME,
    TRUSTED,
]

# Multi-gene comparison of one species
SCORE = "Score"
MULTI_GENE_SUMMARY_COLUMNS = {
    ExpressionSummary.PRESENT: "Genes with presence of expression",
    ExpressionSummary.ABSENT: "Genes with absence of expression",
    ExpressionSummary.LOW_AMBIGUITY: "Genes with low ambiguity",
    ExpressionSummary.HIGH_AMBIGUITY: "Genes with high ambiguity",
}
GENES_WITH_NO_DATA = "Genes with no data"


def gene_count_column(gene_column: str) -> str:
    return gene_column.replace("Genes with", "Gene count with", 1)


_MULTI_GENE_SET_COLUMNS = [*MULTI_GENE_SUMMARY_COLUMNS.values(), GENES_WITH_NO_DATA]
MULTI_GENE_COUNT_COLUMNS = [gene_count_column(name) for name in _MULTI_GENE_SET_COLUMNS]

MULTI_GENE_COLUMNS = [
    ANAT_ENTITY_ID,
    ANAT_ENTITY_NAME,
    STAGE_ID,
    STAGE_NAME,
    SCORE,
] + _MULTI_GENE_SET_COLUMNS + MULTI_GENE_COUNT_COLUMNS
