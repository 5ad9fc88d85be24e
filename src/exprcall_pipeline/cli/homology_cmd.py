"""Homology command: cross-species comparison of expression calls."""

import logging
import sys

import click

from exprcall_pipeline.config.loader import load_config_with_overrides
from exprcall_pipeline.diffexpr import resolve_diff_expression
from exprcall_pipeline.evidence.models import ComparisonFactor
from exprcall_pipeline.output import columns as col
from exprcall_pipeline.output import (
    homology_groups_to_frame,
    multi_species_counts_to_frame,
    write_call_file,
)
from exprcall_pipeline.persistence import ProvenanceTracker
from exprcall_pipeline.presence import aggregate_expression_calls, never_expressed_index
from exprcall_pipeline.snapshot import load_snapshot

logger = logging.getLogger(__name__)


def _echo_ids(title: str, ids) -> None:
    ids = sorted(ids, key=str)
    click.echo(f"{title} ({len(ids)}): {', '.join(str(i) for i in ids) if ids else '-'}")


@click.command('homology')
@click.option(
    '--species',
    'species_ids',
    type=int,
    multiple=True,
    required=True,
    help='NCBI taxonomy ID of a species to compare (repeatable)'
)
@click.option(
    '--anat-entity',
    'anat_entity_ids',
    multiple=True,
    help='Anatomical entity ID to compare (repeatable, default: all)'
)
@click.option(
    '--gene',
    'gene_ids',
    multiple=True,
    help='Restrict counts to this gene (repeatable, default: all)'
)
@click.option(
    '--factor',
    type=click.Choice([f.value for f in ComparisonFactor]),
    default=ComparisonFactor.ANATOMY.value,
    show_default=True,
    help='Comparison axis of the differential expression calls to count'
)
@click.option(
    '--with-expression',
    is_flag=True,
    help='Also count presence/absence calls per species'
)
@click.option(
    '--only-trusted',
    is_flag=True,
    help='Keep only high and medium confidence homology annotations'
)
@click.option(
    '--strict',
    is_flag=True,
    help='Fail on homology annotations whose taxa are not a single lineage'
)
@click.pass_context
def homology(ctx, species_ids, anat_entity_ids, gene_ids, factor, with_expression,
             only_trusted, strict):
    """Compare expression of orthologous genes in homologous organs.

    Resolves the least common ancestor taxon of the requested species,
    selects the homology annotations and orthology groups valid at that
    taxon and counts the calls of each species per group.

    Examples:

        exprcall-pipeline homology --species 9606 --species 10090 --anat-entity UBERON:0000955

        exprcall-pipeline homology --species 9606 --species 7955 --only-trusted --with-expression
    """
    config_path = ctx.obj['config_path']
    factor = ComparisonFactor(factor)

    click.echo(click.style("=== Cross-Species Comparison ===", bold=True))
    click.echo()

    try:
        config = load_config_with_overrides(config_path, {
            'homology.only_trusted': only_trusted or None,
            'homology.strict_taxon_consistency': strict or None,
        })
        provenance = ProvenanceTracker.from_config(config)

        click.echo("Loading snapshot...")
        snapshot = load_snapshot(config.snapshot_dir)

        expression_calls = aggregate_expression_calls(
            snapshot.observations,
            snapshot.anat_ontology,
            snapshot.stage_ontology,
            propagate=config.propagation.propagate_calls,
        )
        never_expressed = (
            never_expressed_index(expression_calls)
            if config.diff_expression.use_absence_calls else None
        )
        diff_calls = resolve_diff_expression(
            [r for r in snapshot.diff_results if r.comparison_factor is factor],
            config.diff_expression,
            never_expressed,
        )

        click.echo("Resolving comparability...")
        resolver = snapshot.comparability_resolver(config.homology)
        analysis = resolver.analyze(
            species_ids,
            anat_entity_ids=anat_entity_ids or None,
            gene_ids=gene_ids or None,
            diff_calls=diff_calls,
            expression_calls=expression_calls if with_expression else None,
        )
        lca = snapshot.taxonomy.get_element(analysis.lca_taxon_id)
        provenance.record_step('comparability', {
            'species_ids': list(species_ids),
            'anat_entity_ids': list(anat_entity_ids),
            'lca_taxon_id': analysis.lca_taxon_id,
            'homology_group_count': len(analysis.homology_groups),
            'oma_group_count': len(analysis.oma_groups),
        })

        click.echo(click.style(
            f"Least common ancestor: {lca.name} ({analysis.lca_taxon_id})",
            fg='green'
        ))
        _echo_ids("Species not found", analysis.requested_species_ids_not_found)
        if anat_entity_ids:
            _echo_ids("Anatomical entities with homology", analysis.grouped_anat_entity_ids)
            _echo_ids("Anatomical entities without homology", analysis.anat_entity_ids_without_similarity)
            _echo_ids("Anatomical entities not found", analysis.requested_anat_entity_ids_not_found)
        if gene_ids:
            _echo_ids("Genes not found", analysis.requested_gene_ids_not_found)

        metadata = provenance.create_metadata()
        groups_df = homology_groups_to_frame(
            analysis.homology_groups, snapshot.anat_ontology, snapshot.taxonomy
        )
        groups_paths = write_call_file(
            groups_df,
            config.output_dir,
            f"homology_groups_{analysis.lca_taxon_id}",
            summary_column=col.CIO_NAME,
            metadata=metadata,
        )

        diff_counts = [c for c in analysis.multi_species_counts if c.comparison_factor is factor]
        diff_df = multi_species_counts_to_frame(
            diff_counts,
            analysis.species,
            col.DIFF_COUNT_CATEGORIES,
            snapshot.genes,
            snapshot.anat_ontology,
            snapshot.stage_ontology,
        )
        diff_paths = write_call_file(
            diff_df,
            config.output_dir,
            f"multi_species_diff_expression_{factor.value}_{analysis.lca_taxon_id}",
            metadata=metadata,
        )

        click.echo()
        click.echo(click.style("=== Summary ===", bold=True))
        click.echo(f"Homology groups: {len(analysis.homology_groups)}")
        click.echo(f"Orthology groups: {len(analysis.oma_groups)}")
        click.echo(f"Differential expression rows: {diff_df.height}")
        click.echo(f"Homology groups TSV: {groups_paths['tsv']}")
        click.echo(f"Differential expression TSV: {diff_paths['tsv']}")

        if with_expression:
            expression_counts = [
                c for c in analysis.multi_species_counts if c.comparison_factor is None
            ]
            expression_df = multi_species_counts_to_frame(
                expression_counts,
                analysis.species,
                col.EXPRESSION_COUNT_CATEGORIES,
                snapshot.genes,
                snapshot.anat_ontology,
                snapshot.stage_ontology,
            )
            expression_paths = write_call_file(
                expression_df,
                config.output_dir,
                f"multi_species_expression_{analysis.lca_taxon_id}",
                metadata=metadata,
            )
            click.echo(f"Expression rows: {expression_df.height}")
            click.echo(f"Expression TSV: {expression_paths['tsv']}")

        click.echo()
        click.echo(click.style("Cross-species comparison complete!", fg='green', bold=True))

    except Exception as e:
        click.echo(click.style(f"Homology command failed: {e}", fg='red'), err=True)
        logger.exception("Homology command failed")
        sys.exit(1)
