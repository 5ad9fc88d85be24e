"""Compare command: expression of a gene set of one species, condition by condition."""

import logging
import sys

import click

from exprcall_pipeline.config.loader import load_config_with_overrides
from exprcall_pipeline.exceptions import InvariantViolationError
from exprcall_pipeline.output import columns as col
from exprcall_pipeline.output import multi_gene_analysis_to_frame, write_call_file
from exprcall_pipeline.persistence import ProvenanceTracker
from exprcall_pipeline.presence import aggregate_expression_calls, analyze_multi_gene
from exprcall_pipeline.snapshot import load_snapshot

logger = logging.getLogger(__name__)


@click.command('compare')
@click.option(
    '--gene',
    'gene_ids',
    multiple=True,
    required=True,
    help='Gene ID to compare (repeatable, genes of a single species)'
)
@click.option(
    '--no-propagation',
    is_flag=True,
    help='Only use conditions with raw data (no ontology propagation)'
)
@click.pass_context
def compare(ctx, gene_ids, no_propagation):
    """Compare presence/absence of expression of several genes.

    For each condition where at least one of the genes has observed data,
    lists the genes with presence, absence or ambiguous expression and the
    genes without data. Conditions are ranked by how well the genes agree.

    Examples:

        exprcall-pipeline compare --gene ENSG00000139618 --gene ENSG00000141510
    """
    config_path = ctx.obj['config_path']

    click.echo(click.style("=== Multi-Gene Expression Comparison ===", bold=True))
    click.echo()

    try:
        overrides = {'propagation.propagate_calls': False} if no_propagation else {}
        config = load_config_with_overrides(config_path, overrides)
        provenance = ProvenanceTracker.from_config(config)

        click.echo("Loading snapshot...")
        snapshot = load_snapshot(config.snapshot_dir)

        requested = tuple(dict.fromkeys(gene_ids))
        unknown = [g for g in requested if g not in snapshot.genes]
        if unknown:
            click.echo(click.style(f"Genes not found: {', '.join(unknown)}", fg='yellow'))
        known = [g for g in requested if g in snapshot.genes]
        species_ids = {snapshot.genes[g].species_id for g in known}
        if not known:
            raise InvariantViolationError("None of the requested genes is known")
        if len(species_ids) > 1:
            raise InvariantViolationError(
                f"Genes belong to several species: {sorted(species_ids)}"
            )
        species_id = species_ids.pop()
        provenance.record_step('load_snapshot', {
            'gene_ids': known,
            'species_id': species_id,
        })

        expression_calls = aggregate_expression_calls(
            [o for o in snapshot.observations if o.gene_id in known],
            snapshot.anat_ontology,
            snapshot.stage_ontology,
            propagate=config.propagation.propagate_calls,
        )
        analysis = analyze_multi_gene(expression_calls, known)
        provenance.record_step('analyze_multi_gene', {
            'condition_count': len(analysis.cond_to_counts),
            'propagate': config.propagation.propagate_calls,
        })

        df = multi_gene_analysis_to_frame(
            analysis, snapshot.anat_ontology, snapshot.stage_ontology
        )
        paths = write_call_file(
            df,
            config.output_dir,
            f"multi_gene_expression_{species_id}",
            metadata=provenance.create_metadata(),
        )

        click.echo()
        click.echo(click.style("=== Summary ===", bold=True))
        click.echo(f"Genes compared: {len(known)}")
        click.echo(f"Conditions with observed data: {df.height}")
        if df.height:
            best = df.row(0, named=True)
            click.echo(
                f"Best agreement: {best[col.ANAT_ENTITY_NAME] or best[col.ANAT_ENTITY_ID]} "
                f"at {best[col.STAGE_NAME] or best[col.STAGE_ID]}"
            )
        click.echo(f"TSV: {paths['tsv']}")
        click.echo()
        click.echo(click.style("Multi-gene comparison complete!", fg='green', bold=True))

    except Exception as e:
        click.echo(click.style(f"Compare command failed: {e}", fg='red'), err=True)
        logger.exception("Compare command failed")
        sys.exit(1)
