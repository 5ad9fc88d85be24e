"""Unit tests for output generation: column contract, frame builders and writers."""

import polars as pl
import pytest
import yaml

from exprcall_pipeline.diffexpr import resolve_diff_expression
from exprcall_pipeline.evidence import (
    ComparisonFactor,
    Condition,
    DataQuality,
    DataType,
    DataTypeObservation,
    DetectionFlag,
    DiffAnalysisResult,
    DiffCallType,
)
from exprcall_pipeline.homology import CountCategory, MultiSpeciesCallCounts
from exprcall_pipeline.output import (
    diff_calls_to_frame,
    expression_calls_to_frame,
    homology_groups_to_frame,
    multi_species_counts_to_frame,
    write_call_file,
)
from exprcall_pipeline.output import columns as col
from exprcall_pipeline.presence import aggregate_expression_calls

BRAIN = "UBERON:0000955"
MIDBRAIN = "UBERON:0001891"
ADULT = "UBERON:0000113"
GENE = "ENSG00000139618"


@pytest.fixture
def expression_calls(anat_ontology, stage_ontology):
    """Calls from Affymetrix PRESENT at midbrain and RNA-Seq ABSENT at brain."""
    observations = [
        DataTypeObservation(
            gene_id=GENE,
            condition=Condition(MIDBRAIN, ADULT, 9606),
            data_type=DataType.AFFYMETRIX,
            detection_flag=DetectionFlag.PRESENT,
            quality=DataQuality.HIGH,
        ),
        DataTypeObservation(
            gene_id=GENE,
            condition=Condition(BRAIN, ADULT, 9606),
            data_type=DataType.RNA_SEQ,
            detection_flag=DetectionFlag.ABSENT,
            quality=DataQuality.LOW,
        ),
    ]
    return aggregate_expression_calls(observations, anat_ontology, stage_ontology)


@pytest.fixture
def diff_calls():
    results = [
        DiffAnalysisResult(
            analysis_id=analysis_id,
            gene_id=GENE,
            condition=Condition(BRAIN, ADULT, 9606),
            data_type=DataType.AFFYMETRIX,
            comparison_factor=ComparisonFactor.ANATOMY,
            call=call,
            p_value=p_value,
            conditions_compared=5,
        )
        for analysis_id, call, p_value in [
            ("A1", DiffCallType.OVER_EXPRESSED, 0.01),
            ("A2", DiffCallType.OVER_EXPRESSED, 0.04),
            ("A3", DiffCallType.NOT_DIFF_EXPRESSED, 0.5),
        ]
    ]
    return resolve_diff_expression(results)


# ============================================================================
# Column contract
# ============================================================================

def test_expression_column_order():
    """Single-species complete expression file has 21 columns."""
    assert len(col.COMPLETE_EXPRESSION_COLUMNS) == 21
    assert col.COMPLETE_EXPRESSION_COLUMNS[:9] == [
        "Gene ID",
        "Gene name",
        "Anatomical entity ID",
        "Anatomical entity name",
        "Developmental stage ID",
        "Developmental stage name",
        "Expression",
        "Call quality",
        "Including observed data",
    ]
    assert col.COMPLETE_EXPRESSION_COLUMNS[9:12] == [
        "Affymetrix data",
        "Affymetrix call quality",
        "Including Affymetrix observed data",
    ]


def test_diff_column_order():
    """Complete differential expression file has 18 columns."""
    assert len(col.COMPLETE_DIFF_EXPRESSION_COLUMNS) == 18
    assert col.COMPLETE_DIFF_EXPRESSION_COLUMNS[6:8] == ["Differential expression", "Call quality"]
    assert col.COMPLETE_DIFF_EXPRESSION_COLUMNS[-5:] == [
        "RNA-Seq data",
        "RNA-Seq call quality",
        "Best p-value using RNA-Seq",
        "Number of analysis using RNA-Seq data where the same call is found",
        "Number of analysis using RNA-Seq data where a different call is found",
    ]


def test_in_situ_columns_use_full_technique_name():
    assert col.COMPLETE_EXPRESSION_COLUMNS[15:18] == [
        "In situ hybridization data",
        "In situ hybridization call quality",
        "Including in situ hybridization observed data",
    ]


def test_multi_species_columns():
    names = col.multi_species_columns(col.DIFF_COUNT_CATEGORIES, ["Homo sapiens", "Mus musculus"])

    assert names[:5] == [
        "OMA ID",
        "Anatomical entity IDs",
        "Anatomical entity names",
        "Developmental stage ID",
        "Developmental stage name",
    ]
    assert names[5] == "Over-expressed gene count for Homo sapiens"
    assert names[9] == "Over-expressed gene count for Mus musculus"
    assert names[-2:] == ["Gene IDs", "Gene names"]
    assert len(names) == 5 + 2 * 4 + 2


# ============================================================================
# Frame builders
# ============================================================================

def test_expression_calls_to_frame(expression_calls, genes, anat_ontology, stage_ontology):
    df = expression_calls_to_frame(expression_calls, genes, anat_ontology, stage_ontology)

    assert df.columns == col.COMPLETE_EXPRESSION_COLUMNS
    assert df.height == len(expression_calls)

    brain = df.filter(
        (pl.col(col.ANAT_ENTITY_ID) == BRAIN) & (pl.col(col.STAGE_ID) == ADULT)
    ).row(0, named=True)
    assert brain[col.GENE_NAME] == "BRCA2"
    assert brain[col.ANAT_ENTITY_NAME] == "brain"
    assert brain[col.EXPRESSION] == "low ambiguity"
    assert brain[col.CALL_QUALITY] == "NA"
    assert brain[col.INCLUDING_OBSERVED_DATA] == "yes"
    assert brain["Affymetrix data"] == "present"
    assert brain["Including Affymetrix observed data"] == "no"
    assert brain["RNA-Seq data"] == "absent"
    assert brain["RNA-Seq call quality"] == "poor quality"
    assert brain["EST data"] == "no data"


def test_diff_calls_to_frame(diff_calls, genes, anat_ontology, stage_ontology):
    df = diff_calls_to_frame(diff_calls, genes, anat_ontology, stage_ontology)

    assert df.columns == col.COMPLETE_DIFF_EXPRESSION_COLUMNS
    row = df.row(0, named=True)
    assert row[col.DIFF_EXPRESSION] == "over-expression"
    assert row[col.CALL_QUALITY] == "poor quality"
    assert row["Best p-value using Affymetrix"] == 0.01
    assert row["Number of analysis using Affymetrix data where the same call is found"] == 2
    assert row["Number of analysis using Affymetrix data where a different call is found"] == 1
    assert df.schema["Best p-value using Affymetrix"] == pl.Float64
    assert df.schema[
        "Number of analysis using RNA-Seq data where the same call is found"
    ] == pl.Int64


def test_diff_frame_leaves_missing_data_type_null(diff_calls, genes):
    """A data type without analyses has no p-value and no counts."""
    row = diff_calls_to_frame(diff_calls, genes).row(0, named=True)

    assert row["RNA-Seq data"] == "no data"
    assert row["RNA-Seq call quality"] == "no data"
    assert row["Best p-value using RNA-Seq"] is None
    assert row["Number of analysis using RNA-Seq data where the same call is found"] is None
    assert row["Number of analysis using RNA-Seq data where a different call is found"] is None


def test_empty_frames_keep_schema(genes):
    assert expression_calls_to_frame([], genes).columns == col.COMPLETE_EXPRESSION_COLUMNS
    assert diff_calls_to_frame([], genes).height == 0


def test_multi_species_counts_to_frame(species, genes, anat_ontology, stage_ontology):
    human, chimp, mouse = species[0], species[1], species[2]
    record = MultiSpeciesCallCounts(
        oma_group_id="OMA:100",
        anat_entity_ids=(BRAIN,),
        dev_stage_id=ADULT,
        comparison_factor=ComparisonFactor.ANATOMY,
        counts={9606: {CountCategory.OVER_EXPRESSED: 1}, 10090: {CountCategory.NA: 1}},
        gene_ids=("ENSG00000139618", "ENSMUSG00000041147"),
    )
    df = multi_species_counts_to_frame(
        [record], [human, mouse, chimp], col.DIFF_COUNT_CATEGORIES,
        genes, anat_ontology, stage_ontology,
    )

    row = df.row(0, named=True)
    assert row[col.ANAT_ENTITY_NAMES] == "brain"
    assert row["Over-expressed gene count for Homo sapiens"] == 1
    assert row["NA gene count for Mus musculus"] == 1
    assert row["Over-expressed gene count for Pan troglodytes"] == 0
    assert row[col.GENE_NAMES] == "BRCA2|Brca2"
    assert df.schema["NA gene count for Mus musculus"] == pl.Int64


def test_homology_groups_to_frame(resolver, anat_ontology, taxonomy):
    analysis = resolver.analyze([9606, 10090])
    df = homology_groups_to_frame(analysis.homology_groups, anat_ontology, taxonomy)

    assert df.columns == col.HOMOLOGY_GROUP_COLUMNS
    brain = df.filter(pl.col(col.ANAT_ENTITY_IDS) == BRAIN).row(0, named=True)
    assert brain[col.TAXON_NAME] == "Euteleostomi"
    assert brain[col.CIO_ID] == "CIO:0000029"
    assert brain[col.TRUSTED] == "yes"


# ============================================================================
# Writers
# ============================================================================

def test_write_call_file_creates_files(tmp_path, expression_calls, genes):
    df = expression_calls_to_frame(expression_calls, genes)
    paths = write_call_file(df, tmp_path / "out", "expression_calls", summary_column=col.EXPRESSION)

    assert paths["tsv"].exists()
    assert paths["parquet"].exists()
    assert paths["provenance"].exists()
    assert paths["tsv"].name == "expression_calls.tsv"


def test_write_call_file_tsv_and_parquet_readable(tmp_path, expression_calls, genes):
    df = expression_calls_to_frame(expression_calls, genes)
    paths = write_call_file(df, tmp_path, "expression_calls")

    tsv = pl.read_csv(paths["tsv"], separator="\t", infer_schema_length=0)
    assert tsv.columns == col.COMPLETE_EXPRESSION_COLUMNS
    assert tsv.height == df.height

    parquet = pl.read_parquet(paths["parquet"])
    assert parquet.equals(df)


def test_write_call_file_provenance_yaml(tmp_path, expression_calls, genes):
    df = expression_calls_to_frame(expression_calls, genes)
    paths = write_call_file(
        df,
        tmp_path,
        "expression_calls",
        summary_column=col.EXPRESSION,
        metadata={"config_hash": "abc123"},
    )

    with open(paths["provenance"]) as f:
        provenance = yaml.safe_load(f)

    assert provenance["statistics"]["row_count"] == df.height
    distribution = provenance["statistics"]["distribution"]
    assert sum(distribution.values()) == df.height
    assert distribution["low ambiguity"] == 2
    assert provenance["metadata"]["config_hash"] == "abc123"
    assert provenance["column_names"] == col.COMPLETE_EXPRESSION_COLUMNS


def test_write_call_file_accepts_lazyframe(tmp_path, expression_calls, genes):
    df = expression_calls_to_frame(expression_calls, genes)
    paths = write_call_file(df.lazy(), tmp_path, "lazy")

    assert pl.read_parquet(paths["parquet"]).height == df.height
