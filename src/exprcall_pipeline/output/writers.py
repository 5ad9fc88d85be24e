"""Tabular export of calls: TSV + Parquet with YAML provenance sidecar."""

from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Mapping, Optional

import polars as pl
import yaml

from exprcall_pipeline.diffexpr.models import DiffExpressionCall
from exprcall_pipeline.evidence.models import (
    DataPropagation,
    DataQuality,
    DetectionFlag,
    DiffCallType,
    Gene,
    Species,
)
from exprcall_pipeline.homology.models import HomologyGroup, MultiSpeciesCallCounts
from exprcall_pipeline.ontology import Ontology
from exprcall_pipeline.output import columns as col
from exprcall_pipeline.presence.models import ExpressionCall
from exprcall_pipeline.presence.multi_gene import MultiGeneExprAnalysis


def _element_name(ontology: Optional[Ontology], element_id) -> str:
    if ontology is None or element_id not in ontology:
        return ""
    return ontology.get_element(element_id).name


def _gene_name(genes: Mapping[str, Gene], gene_id: str) -> str:
    gene = genes.get(gene_id)
    return gene.name if gene is not None else ""


def _observed(observed: DataPropagation) -> str:
    return col.OBSERVED_YES if observed is DataPropagation.DIRECT else col.OBSERVED_NO


def _condition_cells(call, genes, anat_ontology, stage_ontology) -> list:
    condition = call.condition
    return [
        call.gene_id,
        _gene_name(genes, call.gene_id),
        condition.anat_entity_id,
        _element_name(anat_ontology, condition.anat_entity_id),
        condition.dev_stage_id,
        _element_name(stage_ontology, condition.dev_stage_id),
    ]


def expression_calls_to_frame(
    calls: Iterable[ExpressionCall],
    genes: Mapping[str, Gene],
    anat_ontology: Optional[Ontology] = None,
    stage_ontology: Optional[Ontology] = None,
) -> pl.DataFrame:
    """Build the complete single-species expression table (one row per call)."""
    rows = []
    for call in calls:
        row = _condition_cells(call, genes, anat_ontology, stage_ontology)
        row += [call.summary.value, call.quality.value, _observed(call.observed)]
        for data_type in col.EXPRESSION_DATA_TYPES:
            obs = call.per_data_type.get(data_type)
            if obs is None:
                row += [DetectionFlag.NO_DATA.value, DataQuality.NO_DATA.value, col.OBSERVED_NO]
            else:
                row += [obs.detection_flag.value, obs.quality.value, _observed(obs.observed)]
        rows.append(row)

    return pl.DataFrame(
        rows,
        schema={name: pl.Utf8 for name in col.COMPLETE_EXPRESSION_COLUMNS},
        orient="row",
    )


def diff_calls_to_frame(
    calls: Iterable[DiffExpressionCall],
    genes: Mapping[str, Gene],
    anat_ontology: Optional[Ontology] = None,
    stage_ontology: Optional[Ontology] = None,
) -> pl.DataFrame:
    """Build the complete differential expression table (one row per call)."""
    rows = []
    for call in calls:
        row = _condition_cells(call, genes, anat_ontology, stage_ontology)
        row += [call.summary.value, call.quality.value]
        for data_type in col.DIFF_EXPRESSION_DATA_TYPES:
            resolved = call.per_data_type.get(data_type)
            if resolved is None or resolved.call is DiffCallType.NO_DATA:
                # p-value and counts stay null without data
                row += [DiffCallType.NO_DATA.value, DataQuality.NO_DATA.value, None, None, None]
            else:
                row += [
                    resolved.call.value,
                    resolved.quality.value,
                    resolved.best_p_value,
                    resolved.support_count,
                    resolved.conflict_count,
                ]
        rows.append(row)

    schema = {}
    for name in col.COMPLETE_DIFF_EXPRESSION_COLUMNS:
        if name in col.P_VALUE_COLUMNS:
            schema[name] = pl.Float64
        elif name in col.ANALYSIS_COUNT_COLUMNS:
            schema[name] = pl.Int64
        else:
            schema[name] = pl.Utf8
    return pl.DataFrame(rows, schema=schema, orient="row")


def multi_species_counts_to_frame(
    records: Iterable[MultiSpeciesCallCounts],
    species: Iterable[Species],
    categories,
    genes: Mapping[str, Gene],
    anat_ontology: Optional[Ontology] = None,
    stage_ontology: Optional[Ontology] = None,
) -> pl.DataFrame:
    """
    Build a multi-species comparison table.

    Per-species count columns are emitted for every requested species, in
    the given order; species without data in a record get zero counts.
    """
    species = list(species)
    names = col.multi_species_columns(categories, [s.latin_name for s in species])
    sep = col.MULTI_VALUE_SEPARATOR

    rows = []
    for record in records:
        row = [
            record.oma_group_id,
            sep.join(record.anat_entity_ids),
            sep.join(_element_name(anat_ontology, a) for a in record.anat_entity_ids),
            record.dev_stage_id,
            _element_name(stage_ontology, record.dev_stage_id),
        ]
        for s in species:
            row += [record.count(s.species_id, category) for category in categories]
        row += [
            sep.join(record.gene_ids),
            sep.join(_gene_name(genes, g) for g in record.gene_ids),
        ]
        rows.append(row)

    count_names = {
        col.species_count_column(category, s.latin_name)
        for s in species
        for category in categories
    }
    schema = {name: pl.Int64 if name in count_names else pl.Utf8 for name in names}
    return pl.DataFrame(rows, schema=schema, orient="row")


def homology_groups_to_frame(
    groups: Iterable[HomologyGroup],
    anat_ontology: Optional[Ontology] = None,
    taxonomy: Optional[Ontology] = None,
) -> pl.DataFrame:
    """One row per annotation of each selected homology group."""
    sep = col.MULTI_VALUE_SEPARATOR
    rows = []
    for group in groups:
        anat_ids = group.sort_key()
        for annotation in group.annotations:
            rows.append([
                sep.join(anat_ids),
                sep.join(_element_name(anat_ontology, a) for a in anat_ids),
                str(annotation.taxon_id),
                _element_name(taxonomy, annotation.taxon_id),
                annotation.cio_id,
                annotation.confidence.label,
                col.OBSERVED_YES if annotation.trusted else col.OBSERVED_NO,
            ])
    return pl.DataFrame(
        rows,
        schema={name: pl.Utf8 for name in col.HOMOLOGY_GROUP_COLUMNS},
        orient="row",
    )


def multi_gene_analysis_to_frame(
    analysis: MultiGeneExprAnalysis,
    anat_ontology: Optional[Ontology] = None,
    stage_ontology: Optional[Ontology] = None,
) -> pl.DataFrame:
    """One row per condition, ranked by score then by count of expressing genes."""
    sep = col.MULTI_VALUE_SEPARATOR
    rows = []
    for condition, counts in analysis.ranked_conditions():
        gene_sets = [counts.genes_with(summary) for summary in col.MULTI_GENE_SUMMARY_COLUMNS]
        gene_sets.append(counts.genes_with_no_data)
        rows.append(
            [
                condition.anat_entity_id,
                _element_name(anat_ontology, condition.anat_entity_id),
                condition.dev_stage_id,
                _element_name(stage_ontology, condition.dev_stage_id),
                counts.score,
            ]
            + [sep.join(sorted(gene_ids)) for gene_ids in gene_sets]
            + [len(gene_ids) for gene_ids in gene_sets]
        )

    schema = {}
    for name in col.MULTI_GENE_COLUMNS:
        if name == col.SCORE:
            schema[name] = pl.Float64
        elif name in col.MULTI_GENE_COUNT_COLUMNS:
            schema[name] = pl.Int64
        else:
            schema[name] = pl.Utf8
    return pl.DataFrame(rows, schema=schema, orient="row")


def write_call_file(
    df: pl.DataFrame | pl.LazyFrame,
    output_dir: Path,
    filename_base: str,
    summary_column: Optional[str] = None,
    metadata: Optional[dict] = None,
) -> dict:
    """
    Write a call table to TSV and Parquet formats with provenance sidecar.

    Args:
        df: Polars DataFrame or LazyFrame in export column order
        output_dir: Directory to write output files (created if doesn't exist)
        filename_base: Base filename without extension
        summary_column: Column whose value distribution is recorded in the
            provenance statistics (e.g. "Expression")
        metadata: Extra provenance entries (config hash, release, ...)

    Returns:
        Dictionary with output file paths:
        {
            "tsv": Path to TSV file,
            "parquet": Path to Parquet file,
            "provenance": Path to YAML provenance sidecar
        }

    Notes:
        - Rows are written in the order given; engine outputs are already
          sorted deterministically
        - Parquet uses snappy compression
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    if isinstance(df, pl.LazyFrame):
        df = df.collect()

    tsv_path = output_dir / f"{filename_base}.tsv"
    parquet_path = output_dir / f"{filename_base}.parquet"
    provenance_path = output_dir / f"{filename_base}.provenance.yaml"

    df.write_csv(tsv_path, separator="\t", include_header=True)
    df.write_parquet(parquet_path, compression="snappy", use_pyarrow=True)

    statistics = {"row_count": df.height}
    if summary_column is not None and summary_column in df.columns:
        distribution = Counter(df[summary_column].to_list())
        statistics["distribution"] = dict(sorted(distribution.items()))

    provenance = {
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "output_files": [tsv_path.name, parquet_path.name],
        "statistics": statistics,
        "column_count": len(df.columns),
        "column_names": df.columns,
    }
    if metadata:
        provenance["metadata"] = metadata

    with open(provenance_path, "w") as f:
        yaml.dump(provenance, f, default_flow_style=False, sort_keys=False)

    return {
        "tsv": tsv_path,
        "parquet": parquet_path,
        "provenance": provenance_path,
    }
