"""Output generation: export tables with a stable column contract."""

from exprcall_pipeline.output.writers import (
    diff_calls_to_frame,
    expression_calls_to_frame,
    homology_groups_to_frame,
    multi_gene_analysis_to_frame,
    multi_species_counts_to_frame,
    write_call_file,
)

__all__ = [
    "diff_calls_to_frame",
    "expression_calls_to_frame",
    "homology_groups_to_frame",
    "multi_gene_analysis_to_frame",
    "multi_species_counts_to_frame",
    "write_call_file",
]
