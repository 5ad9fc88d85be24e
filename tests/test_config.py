"""Tests for configuration loading and validation."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from exprcall_pipeline.config import load_config, load_config_with_overrides
from exprcall_pipeline.config.schema import EngineConfig, TieBreakPolicy

DEFAULT_CONFIG = Path(__file__).parent.parent / "config" / "default.yaml"

MINIMAL_CONFIG = """
snapshot_dir: {snapshot_dir}
output_dir: {output_dir}
duckdb_path: {duckdb_path}
release:
  release: "15.0"
"""


@pytest.fixture
def minimal_config(tmp_path):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(MINIMAL_CONFIG.format(
        snapshot_dir=tmp_path / "snapshot",
        output_dir=tmp_path / "output",
        duckdb_path=tmp_path / "test.duckdb",
    ))
    return config_path


def test_load_valid_config():
    """Test loading valid default configuration."""
    config = load_config(DEFAULT_CONFIG)

    assert isinstance(config, EngineConfig)
    assert config.release.release == "15.0"
    assert config.release.oma_version == "Jul2022"
    assert config.propagation.propagate_calls is True
    assert config.diff_expression.tie_policy is TieBreakPolicy.BEST_P_VALUE
    assert config.diff_expression.p_value_floor == 1e-300
    assert config.homology.ancestors_max_steps is None


def test_section_defaults(minimal_config):
    """Sections left out of the YAML take their defaults."""
    config = load_config(minimal_config)

    assert config.release.anatomy_ontology_version == "unknown"
    assert config.propagation.propagate_calls is True
    assert config.diff_expression.tie_tolerance == 0.0
    assert config.diff_expression.use_absence_calls is True
    assert config.homology.only_trusted is False
    assert config.homology.strict_taxon_consistency is False


def test_invalid_config_missing_field(tmp_path):
    """Test that missing required field raises ValidationError."""
    invalid_config = tmp_path / "invalid.yaml"
    invalid_config.write_text("""
output_dir: {output_dir}
duckdb_path: data/exprcall.duckdb
release:
  release: "15.0"
""".format(output_dir=tmp_path / "output"))

    with pytest.raises(ValidationError) as exc_info:
        load_config(invalid_config)

    assert "snapshot_dir" in str(exc_info.value)


def test_missing_release_rejected(tmp_path):
    invalid_config = tmp_path / "invalid.yaml"
    invalid_config.write_text("""
snapshot_dir: data/snapshot
output_dir: {output_dir}
duckdb_path: data/exprcall.duckdb
release:
  oma_version: Jul2022
""".format(output_dir=tmp_path / "output"))

    with pytest.raises(ValidationError):
        load_config(invalid_config)


@pytest.mark.parametrize("section, key, value", [
    ("diff_expression", "tie_tolerance", 1.5),
    ("diff_expression", "p_value_floor", 0.0),
    ("diff_expression", "tie_policy", "coin_flip"),
    ("homology", "ancestors_max_steps", 0),
])
def test_invalid_settings(minimal_config, section, key, value):
    """Out-of-range settings raise ValidationError."""
    with pytest.raises(ValidationError):
        load_config_with_overrides(minimal_config, {f"{section}.{key}": value})


def test_missing_config_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "missing.yaml")


def test_overrides_dotted_keys(minimal_config):
    config = load_config_with_overrides(minimal_config, {
        "diff_expression.tie_policy": "prefer_not_diff",
        "propagation.propagate_calls": False,
        "homology.only_trusted": True,
    })

    assert config.diff_expression.tie_policy is TieBreakPolicy.PREFER_NOT_DIFF
    assert config.propagation.propagate_calls is False
    assert config.homology.only_trusted is True


def test_overrides_skip_none_values(minimal_config):
    """None means the CLI flag was not given."""
    config = load_config_with_overrides(minimal_config, {"diff_expression.tie_policy": None})
    assert config.diff_expression.tie_policy is TieBreakPolicy.BEST_P_VALUE


def test_overrides_unknown_section(minimal_config):
    with pytest.raises(KeyError):
        load_config_with_overrides(minimal_config, {"voting.tie_policy": "raise"})


def test_config_hash_deterministic(minimal_config):
    """Test that same config produces same hash, different config produces different hash."""
    config1 = load_config(minimal_config)
    config2 = load_config(minimal_config)
    assert config1.config_hash() == config2.config_hash()
    assert len(config1.config_hash()) == 64

    changed = load_config_with_overrides(minimal_config, {"diff_expression.tie_tolerance": 0.1})
    assert changed.config_hash() != config1.config_hash()


def test_config_creates_output_directory(tmp_path):
    """Test that loading config creates the output directory."""
    output_dir = tmp_path / "nested" / "output"
    config_path = tmp_path / "config.yaml"
    config_path.write_text(MINIMAL_CONFIG.format(
        snapshot_dir=tmp_path / "snapshot",
        output_dir=output_dir,
        duckdb_path=tmp_path / "test.duckdb",
    ))
    assert not output_dir.exists()

    load_config(config_path)

    assert output_dir.exists()
