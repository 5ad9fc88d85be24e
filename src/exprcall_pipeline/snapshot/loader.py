"""Load an immutable release snapshot from a directory of TSV files."""

from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Hashable, Optional, Type, TypeVar

import polars as pl
import structlog
from pydantic import ValidationError

from exprcall_pipeline.config.schema import HomologySettings
from exprcall_pipeline.evidence.models import (
    ComparisonFactor,
    Condition,
    DataPropagation,
    DataQuality,
    DataType,
    DataTypeObservation,
    DetectionFlag,
    DiffAnalysisResult,
    DiffCallType,
    Gene,
    Species,
)
from exprcall_pipeline.exceptions import SnapshotFormatError
from exprcall_pipeline.homology.analysis import ComparabilityResolver
from exprcall_pipeline.homology.models import (
    AnatEntitySimilarity,
    CIOConfidence,
    OMAGroup,
)
from exprcall_pipeline.ontology import AnatEntity, DevStage, Ontology, Taxon

logger = structlog.get_logger()

EnumT = TypeVar("EnumT", bound=Enum)

SNAPSHOT_FILES = {
    "taxa": "taxa.tsv",
    "taxon_relations": "taxon_relations.tsv",
    "species": "species.tsv",
    "anat_entities": "anat_entities.tsv",
    "anat_relations": "anat_relations.tsv",
    "dev_stages": "dev_stages.tsv",
    "stage_relations": "stage_relations.tsv",
    "genes": "genes.tsv",
    "observations": "observations.tsv",
    "diff_results": "diff_results.tsv",
    "anat_similarities": "anat_similarities.tsv",
    "oma_groups": "oma_groups.tsv",
    "anat_entity_species": "anat_entity_species.tsv",
}

REQUIRED_FILES = ("taxa", "species", "anat_entities", "dev_stages", "genes")

REQUIRED_COLUMNS = {
    "taxa": ["taxon_id", "scientific_name"],
    "taxon_relations": ["taxon_id", "parent_taxon_id"],
    "species": ["species_id", "scientific_name"],
    "anat_entities": ["anat_entity_id", "name"],
    "anat_relations": ["anat_entity_id", "parent_anat_entity_id"],
    "dev_stages": ["dev_stage_id", "name"],
    "stage_relations": ["dev_stage_id", "parent_dev_stage_id"],
    "genes": ["gene_id", "name", "species_id"],
    "observations": [
        "gene_id", "anat_entity_id", "dev_stage_id", "species_id",
        "data_type", "detection_flag", "quality",
    ],
    "diff_results": [
        "analysis_id", "gene_id", "anat_entity_id", "dev_stage_id", "species_id",
        "data_type", "comparison_factor", "call", "p_value", "conditions_compared",
    ],
    "anat_similarities": ["similarity_id", "anat_entity_ids", "taxon_id", "cio_id"],
    "oma_groups": ["oma_group_id", "taxon_id", "gene_id"],
    "anat_entity_species": ["anat_entity_id", "species_id"],
}


@dataclass(frozen=True)
class Snapshot:
    """All reference data and evidence of one release, loaded once."""

    taxonomy: Ontology
    anat_ontology: Ontology
    stage_ontology: Ontology
    species: dict[int, Species] = field(hash=False)
    genes: dict[str, Gene] = field(hash=False)
    observations: tuple[DataTypeObservation, ...] = ()
    diff_results: tuple[DiffAnalysisResult, ...] = ()
    similarities: tuple[AnatEntitySimilarity, ...] = ()
    oma_groups: tuple[OMAGroup, ...] = ()
    anat_entity_species: dict[str, frozenset[int]] = field(default_factory=dict, hash=False)

    def comparability_resolver(
        self, settings: Optional[HomologySettings] = None
    ) -> ComparabilityResolver:
        return ComparabilityResolver(
            taxonomy=self.taxonomy,
            anat_ontology=self.anat_ontology,
            species=self.species.values(),
            similarities=self.similarities,
            oma_groups=self.oma_groups,
            genes=self.genes,
            anat_entity_species=self.anat_entity_species,
            settings=settings,
        )


def parse_enum(enum_cls: Type[EnumT], raw: Optional[str], context: str) -> EnumT:
    """Parse an enumerated cell given either as member name or exported value."""
    if raw is not None:
        text = raw.strip()
        member = enum_cls.__members__.get(text.upper().replace("-", "_").replace(" ", "_"))
        if member is not None:
            return member
        for candidate in enum_cls:
            if isinstance(candidate.value, str) and candidate.value == text:
                return candidate
    raise SnapshotFormatError(f"{context}: invalid {enum_cls.__name__} value {raw!r}")


def _parse_int(raw: Optional[str], context: str) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise SnapshotFormatError(f"{context}: expected an integer, got {raw!r}") from None


def _optional_int(raw: Optional[str], context: str) -> Optional[int]:
    if raw is None or raw.strip() == "":
        return None
    return _parse_int(raw, context)


def read_snapshot_table(snapshot_dir: Path, key: str) -> Optional[pl.DataFrame]:
    """
    Read one snapshot table with all columns as strings.

    Returns:
        DataFrame, or None if an optional file is missing

    Raises:
        FileNotFoundError: If a required file is missing
        SnapshotFormatError: If required columns are missing
    """
    path = Path(snapshot_dir) / SNAPSHOT_FILES[key]
    if not path.exists():
        if key in REQUIRED_FILES:
            raise FileNotFoundError(f"Snapshot file not found: {path}")
        logger.debug("snapshot_file_missing", file=path.name)
        return None

    df = pl.read_csv(
        path,
        separator="\t",
        has_header=True,
        infer_schema_length=0,
        null_values=[""],
    )
    missing = [c for c in REQUIRED_COLUMNS[key] if c not in df.columns]
    if missing:
        raise SnapshotFormatError(f"{path.name}: missing columns {missing}")

    logger.info("snapshot_table_loaded", file=path.name, row_count=df.height)
    return df


def _rows(df: Optional[pl.DataFrame]) -> list[dict]:
    return [] if df is None else df.to_dicts()


def _load_ontology(
    snapshot_dir: Path,
    nodes_key: str,
    relations_key: str,
    name: str,
    parse_id: Callable[[Optional[str], str], Hashable],
    make_element: Callable[[dict, str], object],
) -> Ontology:
    child_column, parent_column = REQUIRED_COLUMNS[relations_key]
    relations = []
    for i, row in enumerate(_rows(read_snapshot_table(snapshot_dir, relations_key)), start=2):
        context = f"{SNAPSHOT_FILES[relations_key]}:{i}"
        relations.append(
            (parse_id(row[child_column], context), parse_id(row[parent_column], context))
        )
    elements = [
        make_element(row, f"{SNAPSHOT_FILES[nodes_key]}:{i}")
        for i, row in enumerate(_rows(read_snapshot_table(snapshot_dir, nodes_key)), start=2)
    ]
    return Ontology(elements, relations, name=name)


def _taxon(row: dict, context: str) -> Taxon:
    return Taxon(
        id=_parse_int(row["taxon_id"], context),
        scientific_name=row["scientific_name"],
        common_name=row.get("common_name") or "",
    )


def _anat_entity(row: dict, context: str) -> AnatEntity:
    return AnatEntity(row["anat_entity_id"], row["name"], row.get("description") or "")


def _dev_stage(row: dict, context: str) -> DevStage:
    return DevStage(row["dev_stage_id"], row["name"], row.get("description") or "")


def _string_id(raw: Optional[str], context: str) -> str:
    if raw is None:
        raise SnapshotFormatError(f"{context}: missing identifier")
    return raw


def _condition(row: dict, context: str) -> Condition:
    return Condition(
        anat_entity_id=row["anat_entity_id"],
        dev_stage_id=row["dev_stage_id"],
        species_id=_optional_int(row.get("species_id"), context),
    )


def _load_observations(snapshot_dir: Path) -> tuple[DataTypeObservation, ...]:
    observations = []
    for i, row in enumerate(_rows(read_snapshot_table(snapshot_dir, "observations")), start=2):
        context = f"observations.tsv:{i}"
        observed = row.get("observed")
        try:
            observations.append(
                DataTypeObservation(
                    gene_id=row["gene_id"],
                    condition=_condition(row, context),
                    data_type=parse_enum(DataType, row["data_type"], context),
                    detection_flag=parse_enum(DetectionFlag, row["detection_flag"], context),
                    quality=parse_enum(DataQuality, row["quality"], context),
                    observed=(
                        parse_enum(DataPropagation, observed, context)
                        if observed
                        else DataPropagation.DIRECT
                    ),
                )
            )
        except ValidationError as e:
            raise SnapshotFormatError(f"{context}: {e}") from e
    return tuple(observations)


def _load_diff_results(snapshot_dir: Path) -> tuple[DiffAnalysisResult, ...]:
    results = []
    for i, row in enumerate(_rows(read_snapshot_table(snapshot_dir, "diff_results")), start=2):
        context = f"diff_results.tsv:{i}"
        try:
            results.append(
                DiffAnalysisResult(
                    analysis_id=row["analysis_id"],
                    gene_id=row["gene_id"],
                    condition=_condition(row, context),
                    data_type=parse_enum(DataType, row["data_type"], context),
                    comparison_factor=parse_enum(ComparisonFactor, row["comparison_factor"], context),
                    call=parse_enum(DiffCallType, row["call"], context),
                    p_value=row["p_value"] if row["p_value"] is not None else 1.0,
                    conditions_compared=_parse_int(row["conditions_compared"], context),
                )
            )
        except ValidationError as e:
            raise SnapshotFormatError(f"{context}: {e}") from e
    return tuple(results)


def _load_similarities(snapshot_dir: Path) -> tuple[AnatEntitySimilarity, ...]:
    similarities = []
    for i, row in enumerate(_rows(read_snapshot_table(snapshot_dir, "anat_similarities")), start=2):
        context = f"anat_similarities.tsv:{i}"
        try:
            confidence = CIOConfidence.from_cio_id(row["cio_id"])
        except ValueError as e:
            raise SnapshotFormatError(f"{context}: {e}") from e
        similarities.append(
            AnatEntitySimilarity(
                similarity_id=row["similarity_id"],
                anat_entity_ids=frozenset(
                    a.strip() for a in row["anat_entity_ids"].split("|") if a.strip()
                ),
                taxon_id=_parse_int(row["taxon_id"], context),
                confidence=confidence,
            )
        )
    return tuple(similarities)


def _load_oma_groups(snapshot_dir: Path) -> tuple[OMAGroup, ...]:
    members: dict[tuple[str, int], set[str]] = defaultdict(set)
    for i, row in enumerate(_rows(read_snapshot_table(snapshot_dir, "oma_groups")), start=2):
        context = f"oma_groups.tsv:{i}"
        members[(row["oma_group_id"], _parse_int(row["taxon_id"], context))].add(row["gene_id"])
    return tuple(
        OMAGroup(oma_group_id, taxon_id, frozenset(gene_ids))
        for (oma_group_id, taxon_id), gene_ids in sorted(members.items())
    )


def load_snapshot(snapshot_dir: Path | str) -> Snapshot:
    """
    Load all snapshot tables and build the ontologies.

    Args:
        snapshot_dir: Directory holding the TSV files listed in SNAPSHOT_FILES

    Returns:
        Snapshot

    Raises:
        FileNotFoundError: If a required file is missing
        SnapshotFormatError: On missing columns or invalid values
    """
    snapshot_dir = Path(snapshot_dir)
    logger.info("snapshot_load_start", snapshot_dir=str(snapshot_dir))

    taxonomy = _load_ontology(
        snapshot_dir, "taxa", "taxon_relations", "taxonomy", _parse_int, _taxon
    )
    anat_ontology = _load_ontology(
        snapshot_dir, "anat_entities", "anat_relations", "anatomy", _string_id, _anat_entity
    )
    stage_ontology = _load_ontology(
        snapshot_dir, "dev_stages", "stage_relations", "stages", _string_id, _dev_stage
    )

    species = {}
    for i, row in enumerate(_rows(read_snapshot_table(snapshot_dir, "species")), start=2):
        context = f"species.tsv:{i}"
        s = Species(
            species_id=_parse_int(row["species_id"], context),
            scientific_name=row["scientific_name"],
            common_name=row.get("common_name") or "",
            genome_version=row.get("genome_version") or "",
            genome_source=row.get("genome_source") or "",
            taxon_id=_optional_int(row.get("taxon_id"), context),
        )
        species[s.species_id] = s

    genes = {}
    for i, row in enumerate(_rows(read_snapshot_table(snapshot_dir, "genes")), start=2):
        context = f"genes.tsv:{i}"
        genes[row["gene_id"]] = Gene(
            gene_id=row["gene_id"],
            name=row["name"] or "",
            species_id=_parse_int(row["species_id"], context),
        )

    constraints: dict[str, set[int]] = defaultdict(set)
    for i, row in enumerate(_rows(read_snapshot_table(snapshot_dir, "anat_entity_species")), start=2):
        constraints[row["anat_entity_id"]].add(
            _parse_int(row["species_id"], f"anat_entity_species.tsv:{i}")
        )

    snapshot = Snapshot(
        taxonomy=taxonomy,
        anat_ontology=anat_ontology,
        stage_ontology=stage_ontology,
        species=species,
        genes=genes,
        observations=_load_observations(snapshot_dir),
        diff_results=_load_diff_results(snapshot_dir),
        similarities=_load_similarities(snapshot_dir),
        oma_groups=_load_oma_groups(snapshot_dir),
        anat_entity_species={k: frozenset(v) for k, v in constraints.items()},
    )

    logger.info(
        "snapshot_load_complete",
        taxon_count=len(taxonomy),
        anat_entity_count=len(anat_ontology),
        dev_stage_count=len(stage_ontology),
        species_count=len(species),
        gene_count=len(genes),
        observation_count=len(snapshot.observations),
        diff_result_count=len(snapshot.diff_results),
        similarity_count=len(snapshot.similarities),
        oma_group_count=len(snapshot.oma_groups),
    )
    return snapshot
