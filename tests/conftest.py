"""Shared fixtures: a small taxonomy, anatomy, stage ontology and release snapshot."""

import pytest

from exprcall_pipeline.evidence import Gene, Species
from exprcall_pipeline.homology import (
    AnatEntitySimilarity,
    CIOConfidence,
    ComparabilityResolver,
    OMAGroup,
)
from exprcall_pipeline.ontology import AnatEntity, DevStage, Ontology, Taxon

HUMAN = 9606
CHIMP = 9598
MOUSE = 10090
FLY = 7227
ARABIDOPSIS = 3702

BILATERIA = 33213
EUTELEOSTOMI = 117571
HOMININAE = 207598
MURINAE = 39107
PROTOSTOMIA = 33317
VIRIDIPLANTAE = 33090

ANAT_ROOT = "UBERON:0001062"
BRAIN = "UBERON:0000955"
FOREBRAIN = "UBERON:0001890"
MIDBRAIN = "UBERON:0001891"
HEART = "UBERON:0000948"
TESTIS = "UBERON:0000473"

LIFE_CYCLE = "UBERON:0000104"
POST_EMBRYONIC = "UBERON:0000092"
ADULT = "UBERON:0000113"
EMBRYO = "UBERON:0000068"

TAXA = [
    (BILATERIA, "Bilateria", None),
    (EUTELEOSTOMI, "Euteleostomi", BILATERIA),
    (HOMININAE, "Homininae", EUTELEOSTOMI),
    (HUMAN, "Homo sapiens", HOMININAE),
    (CHIMP, "Pan troglodytes", HOMININAE),
    (MURINAE, "Murinae", EUTELEOSTOMI),
    (MOUSE, "Mus musculus", MURINAE),
    (PROTOSTOMIA, "Protostomia", BILATERIA),
    (FLY, "Drosophila melanogaster", PROTOSTOMIA),
    (VIRIDIPLANTAE, "Viridiplantae", None),
    (ARABIDOPSIS, "Arabidopsis thaliana", VIRIDIPLANTAE),
]

ANAT_ENTITIES = [
    (ANAT_ROOT, "anatomical entity", None),
    (BRAIN, "brain", ANAT_ROOT),
    (FOREBRAIN, "forebrain", BRAIN),
    (MIDBRAIN, "midbrain", BRAIN),
    (HEART, "heart", ANAT_ROOT),
    (TESTIS, "testis", ANAT_ROOT),
]

DEV_STAGES = [
    (LIFE_CYCLE, "life cycle", None),
    (POST_EMBRYONIC, "post-embryonic stage", LIFE_CYCLE),
    (ADULT, "post-juvenile adult stage", POST_EMBRYONIC),
    (EMBRYO, "embryo stage", LIFE_CYCLE),
]

GENES = [
    ("ENSG00000139618", "BRCA2", HUMAN),
    ("ENSPTRG00000005766", "BRCA2", CHIMP),
    ("ENSMUSG00000041147", "Brca2", MOUSE),
    ("ENSG00000141510", "TP53", HUMAN),
    ("ENSMUSG00000059552", "Trp53", MOUSE),
]


def _relations(rows):
    return [(node, parent) for node, _, parent in rows if parent is not None]


@pytest.fixture
def taxonomy():
    """Taxonomy with two disconnected roots (animals, plants)."""
    return Ontology(
        [Taxon(taxon_id, name) for taxon_id, name, _ in TAXA],
        _relations(TAXA),
        name="taxonomy",
    )


@pytest.fixture
def anat_ontology():
    return Ontology(
        [AnatEntity(anat_id, name) for anat_id, name, _ in ANAT_ENTITIES],
        _relations(ANAT_ENTITIES),
        name="anatomy",
    )


@pytest.fixture
def stage_ontology():
    return Ontology(
        [DevStage(stage_id, name) for stage_id, name, _ in DEV_STAGES],
        _relations(DEV_STAGES),
        name="stages",
    )


@pytest.fixture
def species():
    return [
        Species(HUMAN, "Homo sapiens", "human", "GRCh38", "Ensembl"),
        Species(CHIMP, "Pan troglodytes", "chimpanzee", "Pan_tro_3.0", "Ensembl"),
        Species(MOUSE, "Mus musculus", "mouse", "GRCm39", "Ensembl"),
        Species(FLY, "Drosophila melanogaster", "fruit fly", "BDGP6", "Ensembl"),
        Species(ARABIDOPSIS, "Arabidopsis thaliana", "thale cress", "TAIR10", "Ensembl Plants"),
    ]


@pytest.fixture
def genes():
    return {gene_id: Gene(gene_id, name, species_id) for gene_id, name, species_id in GENES}


@pytest.fixture
def similarities():
    """Brain homologous in Euteleostomi, heart in Bilateria, testis only in Homininae."""
    return [
        AnatEntitySimilarity("SIM:1", frozenset({BRAIN}), EUTELEOSTOMI, CIOConfidence.HIGH),
        AnatEntitySimilarity("SIM:2", frozenset({HEART}), BILATERIA, CIOConfidence.MEDIUM),
        AnatEntitySimilarity("SIM:3", frozenset({TESTIS}), HOMININAE, CIOConfidence.HIGH),
        AnatEntitySimilarity("SIM:4", frozenset({FOREBRAIN}), EUTELEOSTOMI, CIOConfidence.REJECTED),
    ]


@pytest.fixture
def oma_groups():
    return [
        OMAGroup(
            "OMA:100",
            EUTELEOSTOMI,
            frozenset({"ENSG00000139618", "ENSPTRG00000005766", "ENSMUSG00000041147"}),
        ),
        OMAGroup(
            "OMA:200",
            EUTELEOSTOMI,
            frozenset({"ENSG00000141510", "ENSMUSG00000059552"}),
        ),
    ]


@pytest.fixture
def resolver(taxonomy, anat_ontology, species, similarities, oma_groups, genes):
    return ComparabilityResolver(
        taxonomy=taxonomy,
        anat_ontology=anat_ontology,
        species=species,
        similarities=similarities,
        oma_groups=oma_groups,
        genes=genes,
    )


def _write_tsv(path, header, rows):
    lines = ["\t".join(header)]
    lines += ["\t".join("" if v is None else str(v) for v in row) for row in rows]
    path.write_text("\n".join(lines) + "\n")


@pytest.fixture
def snapshot_dir(tmp_path):
    """Release snapshot directory matching the in-memory fixtures."""
    snapshot = tmp_path / "snapshot"
    snapshot.mkdir()

    _write_tsv(snapshot / "taxa.tsv", ["taxon_id", "scientific_name"],
               [(t, name) for t, name, _ in TAXA])
    _write_tsv(snapshot / "taxon_relations.tsv", ["taxon_id", "parent_taxon_id"],
               _relations(TAXA))
    _write_tsv(snapshot / "species.tsv",
               ["species_id", "scientific_name", "common_name", "genome_version", "genome_source"],
               [
                   (HUMAN, "Homo sapiens", "human", "GRCh38", "Ensembl"),
                   (CHIMP, "Pan troglodytes", "chimpanzee", "Pan_tro_3.0", "Ensembl"),
                   (MOUSE, "Mus musculus", "mouse", "GRCm39", "Ensembl"),
               ])
    _write_tsv(snapshot / "anat_entities.tsv", ["anat_entity_id", "name"],
               [(a, name) for a, name, _ in ANAT_ENTITIES])
    _write_tsv(snapshot / "anat_relations.tsv", ["anat_entity_id", "parent_anat_entity_id"],
               _relations(ANAT_ENTITIES))
    _write_tsv(snapshot / "dev_stages.tsv", ["dev_stage_id", "name"],
               [(s, name) for s, name, _ in DEV_STAGES])
    _write_tsv(snapshot / "stage_relations.tsv", ["dev_stage_id", "parent_dev_stage_id"],
               _relations(DEV_STAGES))
    _write_tsv(snapshot / "genes.tsv", ["gene_id", "name", "species_id"], GENES)

    _write_tsv(snapshot / "observations.tsv",
               ["gene_id", "anat_entity_id", "dev_stage_id", "species_id",
                "data_type", "detection_flag", "quality"],
               [
                   ("ENSG00000139618", MIDBRAIN, ADULT, HUMAN, "Affymetrix", "present", "high quality"),
                   ("ENSG00000139618", BRAIN, ADULT, HUMAN, "RNA-Seq", "absent", "high quality"),
                   ("ENSG00000141510", HEART, ADULT, HUMAN, "RNA_SEQ", "PRESENT", "LOW"),
                   ("ENSMUSG00000041147", BRAIN, ADULT, MOUSE, "EST", "present", "poor quality"),
               ])
    _write_tsv(snapshot / "diff_results.tsv",
               ["analysis_id", "gene_id", "anat_entity_id", "dev_stage_id", "species_id",
                "data_type", "comparison_factor", "call", "p_value", "conditions_compared"],
               [
                   ("A1", "ENSG00000139618", BRAIN, ADULT, HUMAN,
                    "Affymetrix", "anatomy", "over-expression", "0.01", "5"),
                   ("A2", "ENSG00000139618", BRAIN, ADULT, HUMAN,
                    "Affymetrix", "anatomy", "over-expression", "0.04", "5"),
                   ("A3", "ENSG00000139618", BRAIN, ADULT, HUMAN,
                    "Affymetrix", "anatomy", "no diff expression", "0.5", "5"),
                   ("A4", "ENSMUSG00000041147", BRAIN, ADULT, MOUSE,
                    "RNA-Seq", "anatomy", "under-expression", "0.001", "4"),
                   ("A5", "ENSMUSG00000041147", BRAIN, EMBRYO, MOUSE,
                    "RNA-Seq", "development", "over-expression", "0.02", "3"),
               ])
    _write_tsv(snapshot / "anat_similarities.tsv",
               ["similarity_id", "anat_entity_ids", "taxon_id", "cio_id"],
               [
                   ("SIM:1", BRAIN, EUTELEOSTOMI, "CIO:0000029"),
                   ("SIM:2", HEART, BILATERIA, "CIO:0000030"),
                   ("SIM:3", TESTIS, HOMININAE, "CIO:0000029"),
               ])
    _write_tsv(snapshot / "oma_groups.tsv", ["oma_group_id", "taxon_id", "gene_id"],
               [
                   ("OMA:100", EUTELEOSTOMI, "ENSG00000139618"),
                   ("OMA:100", EUTELEOSTOMI, "ENSPTRG00000005766"),
                   ("OMA:100", EUTELEOSTOMI, "ENSMUSG00000041147"),
               ])
    return snapshot


@pytest.fixture
def config_path(tmp_path, snapshot_dir):
    """Engine config YAML pointing at the fixture snapshot."""
    path = tmp_path / "config.yaml"
    path.write_text(f"""
snapshot_dir: {snapshot_dir}
output_dir: {tmp_path / "output"}
duckdb_path: {tmp_path / "exprcall.duckdb"}
release:
  release: "15.0"
  anatomy_ontology_version: "2022-08-19"
propagation:
  propagate_calls: true
diff_expression:
  tie_policy: best_p_value
homology:
  only_trusted: false
""")
    return path
