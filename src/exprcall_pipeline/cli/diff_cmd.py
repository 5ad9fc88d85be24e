"""Diff command: differential expression calls along anatomy or development."""

import logging
import sys
from collections import Counter

import click

from exprcall_pipeline.cli.calls_cmd import (
    checkpoint_description,
    echo_distribution,
    reuse_checkpoint,
)
from exprcall_pipeline.config.loader import load_config_with_overrides
from exprcall_pipeline.config.schema import TieBreakPolicy
from exprcall_pipeline.diffexpr import resolve_diff_expression
from exprcall_pipeline.evidence.models import ComparisonFactor
from exprcall_pipeline.output import columns as col
from exprcall_pipeline.output import diff_calls_to_frame, write_call_file
from exprcall_pipeline.persistence import ProvenanceTracker, ResultStore
from exprcall_pipeline.presence import aggregate_expression_calls, never_expressed_index
from exprcall_pipeline.snapshot import load_snapshot

logger = logging.getLogger(__name__)


def diff_table_name(factor: ComparisonFactor) -> str:
    return f"diff_expression_{factor.value}"


@click.command('diff')
@click.option(
    '--factor',
    type=click.Choice([f.value for f in ComparisonFactor]),
    default=ComparisonFactor.ANATOMY.value,
    show_default=True,
    help='Comparison axis of the analyses to resolve'
)
@click.option(
    '--tie-policy',
    type=click.Choice([p.value for p in TieBreakPolicy]),
    default=None,
    help='Override the configured resolution of tied votes'
)
@click.option(
    '--force',
    is_flag=True,
    help='Re-compute calls even if the checkpoint exists'
)
@click.pass_context
def diff(ctx, factor, tie_policy, force):
    """Compute differential expression calls.

    Analyses of the same gene, condition and data type vote with weight
    conditions compared / p-value; data types are then merged, reporting
    weak or strong ambiguity on conflict. When enabled in the config,
    presence/absence ABSENT calls count as "never expressed" evidence.

    Examples:

        exprcall-pipeline diff --factor anatomy

        exprcall-pipeline diff --factor development --tie-policy raise
    """
    config_path = ctx.obj['config_path']
    factor = ComparisonFactor(factor)
    table_name = diff_table_name(factor)

    click.echo(click.style(f"=== Differential Expression Calls ({factor.value}) ===", bold=True))
    click.echo()

    store = None
    try:
        config = load_config_with_overrides(
            config_path, {'diff_expression.tie_policy': tie_policy}
        )
        store = ResultStore.from_config(config)
        provenance = ProvenanceTracker.from_config(config)

        description = checkpoint_description(
            f"Differential expression calls ({factor.value})", config
        )
        if reuse_checkpoint(store, table_name, description, force):
            df = store.load_dataframe(table_name)
            if df is not None:
                click.echo(f"Total calls: {df.height}")
                echo_distribution("Differential expression", Counter(df[col.DIFF_EXPRESSION].to_list()))
            return

        click.echo("Loading snapshot...")
        snapshot = load_snapshot(config.snapshot_dir)
        results = [r for r in snapshot.diff_results if r.comparison_factor is factor]
        click.echo(click.style(f"  {len(results)} analysis results", fg='green'))

        never_expressed = None
        if config.diff_expression.use_absence_calls:
            click.echo("Computing presence/absence calls for never-expressed evidence...")
            expression_calls = aggregate_expression_calls(
                snapshot.observations,
                snapshot.anat_ontology,
                snapshot.stage_ontology,
                propagate=config.propagation.propagate_calls,
            )
            never_expressed = never_expressed_index(expression_calls)

        click.echo("Resolving votes...")
        diff_calls = resolve_diff_expression(results, config.diff_expression, never_expressed)
        distribution = Counter(c.summary.value for c in diff_calls)
        provenance.record_step('resolve_diff_expression', {
            'comparison_factor': factor.value,
            'result_count': len(results),
            'call_count': len(diff_calls),
            'tie_policy': config.diff_expression.tie_policy.value,
            'distribution': dict(sorted(distribution.items())),
        })

        df = diff_calls_to_frame(
            diff_calls,
            snapshot.genes,
            snapshot.anat_ontology,
            snapshot.stage_ontology,
        )
        store.save_dataframe(df, table_name, description)
        paths = write_call_file(
            df,
            config.output_dir,
            table_name,
            summary_column=col.DIFF_EXPRESSION,
            metadata=provenance.create_metadata(),
        )
        provenance.save_to_store(store)
        sidecar_path = provenance.save_sidecar(config.output_dir / table_name)

        click.echo()
        click.echo(click.style("=== Summary ===", bold=True))
        click.echo(f"Total calls: {len(diff_calls)}")
        echo_distribution("Differential expression", distribution)
        click.echo(f"TSV: {paths['tsv']}")
        click.echo(f"Provenance: {sidecar_path}")
        click.echo()
        click.echo(click.style("Differential expression calls complete!", fg='green', bold=True))

    except Exception as e:
        click.echo(click.style(f"Diff command failed: {e}", fg='red'), err=True)
        logger.exception("Diff command failed")
        sys.exit(1)
    finally:
        if store is not None:
            store.close()
