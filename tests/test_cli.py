"""Integration tests for the CLI commands using CliRunner.

Tests:
- --help and info
- calls: exported files, checkpoint skip, --force, --no-propagation,
  re-run when settings change
- compare: multi-gene comparison of one species
- diff: voting with never-expressed evidence, development factor
- homology: LCA resolution, entity partition, multi-species files
- Error handling for unknown species
"""

import polars as pl
import pytest
import yaml
from click.testing import CliRunner

from exprcall_pipeline.cli.main import cli
from exprcall_pipeline.output import columns as col

BRAIN = "UBERON:0000955"
TESTIS = "UBERON:0000473"
HEART = "UBERON:0000948"
MIDBRAIN = "UBERON:0001891"


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def invoke(runner, config_path):
    def _invoke(*args):
        return runner.invoke(cli, ["--config", str(config_path), *args])
    return _invoke


def test_help(runner):
    result = runner.invoke(cli, ["--help"])

    assert result.exit_code == 0
    for command in ("calls", "compare", "diff", "homology", "info"):
        assert command in result.output


def test_info(invoke):
    result = invoke("info")

    assert result.exit_code == 0
    assert "Config Hash:" in result.output
    assert "15.0" in result.output
    assert "Tie Policy: best_p_value" in result.output


# ============================================================================
# calls
# ============================================================================

def test_calls_writes_outputs(invoke, tmp_path):
    result = invoke("calls")

    assert result.exit_code == 0, result.output
    assert "Expression calls complete!" in result.output

    output_dir = tmp_path / "output"
    tsv = output_dir / "expression_calls.tsv"
    assert tsv.exists()
    assert (output_dir / "expression_calls.parquet").exists()
    assert (output_dir / "expression_calls.provenance.yaml").exists()
    assert (output_dir / "expression_calls.provenance.json").exists()

    df = pl.read_csv(tsv, separator="\t", infer_schema_length=0)
    assert df.columns == col.COMPLETE_EXPRESSION_COLUMNS
    brain = df.filter(
        (pl.col(col.GENE_ID) == "ENSG00000139618")
        & (pl.col(col.ANAT_ENTITY_ID) == BRAIN)
        & (pl.col(col.STAGE_ID) == "UBERON:0000113")
    )
    assert brain[col.EXPRESSION].to_list() == ["low ambiguity"]


def test_calls_checkpoint_skip_and_force(invoke):
    """Second run reuses the checkpoint unless --force is given."""
    first = invoke("calls")
    assert first.exit_code == 0

    second = invoke("calls")
    assert second.exit_code == 0
    assert "checkpoint exists" in second.output
    assert "Loading snapshot" not in second.output

    forced = invoke("calls", "--force")
    assert forced.exit_code == 0
    assert "Loading snapshot" in forced.output


def test_calls_no_propagation(invoke, tmp_path):
    result = invoke("calls", "--no-propagation")
    assert result.exit_code == 0, result.output

    df = pl.read_parquet(tmp_path / "output" / "expression_calls.parquet")
    assert df.height == 4
    assert set(df[col.INCLUDING_OBSERVED_DATA].to_list()) == {"yes"}


def test_calls_recomputed_when_settings_change(invoke, tmp_path):
    """A checkpoint computed with other settings is not reused."""
    assert invoke("calls").exit_code == 0

    result = invoke("calls", "--no-propagation")

    assert result.exit_code == 0, result.output
    assert "computed with different settings" in result.output
    assert "Loading snapshot" in result.output
    df = pl.read_parquet(tmp_path / "output" / "expression_calls.parquet")
    assert df.height == 4

    again = invoke("calls", "--no-propagation")
    assert "checkpoint exists" in again.output


def test_info_lists_checkpoints(invoke):
    invoke("calls", "--no-propagation")

    result = invoke("info")

    assert result.exit_code == 0, result.output
    assert "Checkpoints:" in result.output
    assert "expression_calls: 4 rows, Presence/absence expression calls" in result.output


def test_calls_records_provenance(invoke, tmp_path):
    invoke("calls")

    with open(tmp_path / "output" / "expression_calls.provenance.yaml") as f:
        provenance = yaml.safe_load(f)

    steps = [s["step_name"] for s in provenance["metadata"]["processing_steps"]]
    assert steps == ["load_snapshot", "aggregate_expression_calls"]
    assert provenance["metadata"]["release_versions"]["release"] == "15.0"


# ============================================================================
# diff
# ============================================================================

def test_diff_anatomy(invoke, tmp_path):
    result = invoke("diff", "--factor", "anatomy")

    assert result.exit_code == 0, result.output
    df = pl.read_parquet(tmp_path / "output" / "diff_expression_anatomy.parquet")
    assert df.columns == col.COMPLETE_DIFF_EXPRESSION_COLUMNS
    assert df[col.GENE_ID].to_list() == ["ENSG00000139618", "ENSMUSG00000041147"]

    human, mouse = df.to_dicts()
    # Affymetrix over-expression against RNA-Seq absence
    assert human[col.DIFF_EXPRESSION] == "weak ambiguity"
    assert human["Number of analysis using Affymetrix data where the same call is found"] == 2
    assert mouse[col.DIFF_EXPRESSION] == "under-expression"
    assert mouse[col.CALL_QUALITY] == "high quality"


def test_diff_development(invoke, tmp_path):
    result = invoke("diff", "--factor", "development", "--tie-policy", "raise")

    assert result.exit_code == 0, result.output
    df = pl.read_parquet(tmp_path / "output" / "diff_expression_development.parquet")
    assert df.height == 1
    assert df[col.DIFF_EXPRESSION][0] == "over-expression"


def test_diff_checkpoint_per_factor(invoke):
    invoke("diff", "--factor", "anatomy")
    result = invoke("diff", "--factor", "development")

    assert "checkpoint exists" not in result.output


def test_diff_recomputed_when_tie_policy_changes(invoke):
    invoke("diff", "--factor", "anatomy")

    result = invoke("diff", "--factor", "anatomy", "--tie-policy", "prefer_not_diff")

    assert result.exit_code == 0, result.output
    assert "computed with different settings" in result.output
    assert "Loading snapshot" in result.output


# ============================================================================
# compare
# ============================================================================

def test_compare_genes(invoke, tmp_path):
    result = invoke("compare", "--gene", "ENSG00000139618", "--gene", "ENSG00000141510")

    assert result.exit_code == 0, result.output
    assert "Multi-gene comparison complete!" in result.output
    df = pl.read_parquet(tmp_path / "output" / "multi_gene_expression_9606.parquet")
    assert df.columns == col.MULTI_GENE_COLUMNS
    assert df[col.ANAT_ENTITY_ID].to_list() == [HEART, MIDBRAIN, BRAIN]
    brain = df.row(2, named=True)
    assert brain["Genes with low ambiguity"] == "ENSG00000139618"
    assert brain["Genes with no data"] == "ENSG00000141510"


def test_compare_rejects_several_species(invoke):
    result = invoke("compare", "--gene", "ENSG00000139618", "--gene", "ENSMUSG00000041147")

    assert result.exit_code == 1
    assert "several species" in result.output


# ============================================================================
# homology
# ============================================================================

def test_homology_partition(invoke, tmp_path):
    result = invoke(
        "homology",
        "--species", "9606", "--species", "10090", "--species", "9598",
        "--anat-entity", BRAIN,
        "--anat-entity", TESTIS,
        "--anat-entity", "UBERON:9999999",
    )

    assert result.exit_code == 0, result.output
    assert "Least common ancestor: Euteleostomi (117571)" in result.output
    assert f"Anatomical entities with homology (1): {BRAIN}" in result.output
    assert f"Anatomical entities without homology (1): {TESTIS}" in result.output
    assert "Anatomical entities not found (1): UBERON:9999999" in result.output

    groups = pl.read_csv(
        tmp_path / "output" / "homology_groups_117571.tsv", separator="\t", infer_schema_length=0
    )
    assert groups[col.ANAT_ENTITY_IDS].to_list() == [BRAIN]


def test_homology_with_expression(invoke, tmp_path):
    result = invoke("homology", "--species", "9606", "--species", "10090", "--with-expression")

    assert result.exit_code == 0, result.output
    output_dir = tmp_path / "output"
    diff_df = pl.read_parquet(output_dir / "multi_species_diff_expression_anatomy_117571.parquet")
    assert "Under-expressed gene count for Mus musculus" in diff_df.columns
    assert (output_dir / "multi_species_expression_117571.tsv").exists()


def test_homology_unknown_species_fails(invoke):
    result = invoke("homology", "--species", "12345")

    assert result.exit_code == 1
    assert "Homology command failed" in result.output


def test_missing_config_rejected(runner, tmp_path):
    result = runner.invoke(cli, ["--config", str(tmp_path / "missing.yaml"), "info"])
    assert result.exit_code != 0
