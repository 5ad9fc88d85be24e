"""Calls command: presence/absence expression calls for all genes.

Loads the release snapshot, merges per-data-type observations, propagates
them through the anatomy and stage ontologies and exports the complete
expression file.
"""

import logging
import sys
from collections import Counter

import click

from exprcall_pipeline.config.loader import load_config_with_overrides
from exprcall_pipeline.output import columns as col
from exprcall_pipeline.output import expression_calls_to_frame, write_call_file
from exprcall_pipeline.persistence import ProvenanceTracker, ResultStore
from exprcall_pipeline.presence import aggregate_expression_calls, filter_expression_calls
from exprcall_pipeline.snapshot import load_snapshot

logger = logging.getLogger(__name__)

EXPRESSION_TABLE_NAME = "expression_calls"


def echo_distribution(title: str, distribution: dict) -> None:
    click.echo(f"{title}:")
    for value, count in sorted(distribution.items()):
        click.echo(f"  {value}: {count}")


def checkpoint_description(label: str, config, **options) -> str:
    """Checkpoint description naming the settings a table was computed with."""
    settings = [f"config {config.config_hash()[:16]}"]
    settings += [f"{key}={value}" for key, value in sorted(options.items())]
    return f"{label} [{', '.join(settings)}]"


def reuse_checkpoint(store, table_name: str, description: str, force: bool) -> bool:
    """
    Decide whether a stored table can be reused instead of re-computing it.

    A checkpoint saved with other settings is reported and re-computed.
    """
    if force:
        return False
    if store.has_checkpoint(table_name, description):
        click.echo(click.style(
            f"{table_name} checkpoint exists. Skipping processing (use --force to re-run).",
            fg='yellow'
        ))
        return True
    if store.has_checkpoint(table_name):
        click.echo(click.style(
            f"{table_name} checkpoint was computed with different settings. Re-computing.",
            fg='yellow'
        ))
    return False


@click.command('calls')
@click.option(
    '--force',
    is_flag=True,
    help='Re-compute calls even if the expression_calls checkpoint exists'
)
@click.option(
    '--no-propagation',
    is_flag=True,
    help='Only report conditions with raw data (no ontology propagation)'
)
@click.option(
    '--observed-only',
    is_flag=True,
    help='Export only calls observed at their condition'
)
@click.pass_context
def calls(ctx, force, no_propagation, observed_only):
    """Compute presence/absence expression calls.

    PRESENT calls propagate to ancestor anatomical entities and stages,
    ABSENT calls to descendant anatomical entities at the same stage.
    Conflicting data types yield low or high ambiguity calls.

    Supports checkpoint-restart: skips processing if the expression_calls
    table exists and was computed with the same settings
    (use --force to re-run).

    Examples:

        exprcall-pipeline calls

        exprcall-pipeline calls --force --no-propagation
    """
    config_path = ctx.obj['config_path']

    click.echo(click.style("=== Presence/Absence Expression Calls ===", bold=True))
    click.echo()

    store = None
    try:
        overrides = {'propagation.propagate_calls': False} if no_propagation else {}
        config = load_config_with_overrides(config_path, overrides)
        click.echo(click.style(f"Config loaded: {config_path}", fg='green'))

        store = ResultStore.from_config(config)
        provenance = ProvenanceTracker.from_config(config)

        description = checkpoint_description(
            "Presence/absence expression calls", config, observed_only=observed_only
        )
        if reuse_checkpoint(store, EXPRESSION_TABLE_NAME, description, force):
            df = store.load_dataframe(EXPRESSION_TABLE_NAME)
            if df is not None:
                click.echo(f"Total calls: {df.height}")
                echo_distribution("Expression", Counter(df[col.EXPRESSION].to_list()))
            return

        click.echo("Loading snapshot...")
        snapshot = load_snapshot(config.snapshot_dir)
        click.echo(click.style(
            f"  {len(snapshot.observations)} observations, {len(snapshot.genes)} genes",
            fg='green'
        ))
        provenance.record_step('load_snapshot', {
            'observation_count': len(snapshot.observations),
            'gene_count': len(snapshot.genes),
        })

        click.echo("Aggregating calls...")
        expression_calls = aggregate_expression_calls(
            snapshot.observations,
            snapshot.anat_ontology,
            snapshot.stage_ontology,
            propagate=config.propagation.propagate_calls,
        )
        if observed_only:
            expression_calls = filter_expression_calls(expression_calls, observed_only=True)
        distribution = Counter(c.summary.value for c in expression_calls)
        provenance.record_step('aggregate_expression_calls', {
            'call_count': len(expression_calls),
            'propagate': config.propagation.propagate_calls,
            'observed_only': observed_only,
            'distribution': dict(sorted(distribution.items())),
        })

        df = expression_calls_to_frame(
            expression_calls,
            snapshot.genes,
            snapshot.anat_ontology,
            snapshot.stage_ontology,
        )
        store.save_dataframe(df, EXPRESSION_TABLE_NAME, description)

        paths = write_call_file(
            df,
            config.output_dir,
            EXPRESSION_TABLE_NAME,
            summary_column=col.EXPRESSION,
            metadata=provenance.create_metadata(),
        )
        provenance.save_to_store(store)
        sidecar_path = provenance.save_sidecar(config.output_dir / EXPRESSION_TABLE_NAME)

        click.echo()
        click.echo(click.style("=== Summary ===", bold=True))
        click.echo(f"Total calls: {len(expression_calls)}")
        echo_distribution("Expression", distribution)
        click.echo(f"TSV: {paths['tsv']}")
        click.echo(f"Parquet: {paths['parquet']}")
        click.echo(f"Provenance: {sidecar_path}")
        click.echo()
        click.echo(click.style("Expression calls complete!", fg='green', bold=True))

    except Exception as e:
        click.echo(click.style(f"Calls command failed: {e}", fg='red'), err=True)
        logger.exception("Calls command failed")
        sys.exit(1)
    finally:
        if store is not None:
            store.close()
