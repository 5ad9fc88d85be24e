"""Main CLI entry point for exprcall-pipeline.

Provides command group with global options and subcommands for engine operations.
"""

import logging
from pathlib import Path

import click

from exprcall_pipeline import __version__
from exprcall_pipeline.config.loader import load_config
from exprcall_pipeline.cli.calls_cmd import calls
from exprcall_pipeline.cli.compare_cmd import compare
from exprcall_pipeline.cli.diff_cmd import diff
from exprcall_pipeline.cli.homology_cmd import homology
from exprcall_pipeline.persistence import ResultStore


logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)


@click.group()
@click.option(
    '--config',
    type=click.Path(exists=True, path_type=Path),
    default='config/default.yaml',
    help='Path to engine configuration YAML file'
)
@click.option(
    '--verbose',
    is_flag=True,
    help='Enable verbose logging (DEBUG level)'
)
@click.pass_context
def cli(ctx, config, verbose):
    """Exprcall-pipeline: gene expression calls from multi-source evidence.

    Aggregates per-data-type observations into presence/absence calls,
    resolves differential expression votes and compares calls across
    species through anatomical homology and gene orthology.
    """
    ctx.ensure_object(dict)
    ctx.obj['config_path'] = config
    ctx.obj['verbose'] = verbose

    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logging.debug("Verbose logging enabled")


@cli.command()
@click.pass_context
def info(ctx):
    """Display engine information and configuration summary."""
    config_path = ctx.obj['config_path']

    click.echo(f"Exprcall Pipeline v{__version__}")
    click.echo(f"Config: {config_path}")
    click.echo()

    try:
        config = load_config(config_path)

        config_hash = config.config_hash()
        click.echo(f"Config Hash: {config_hash[:16]}...")
        click.echo()

        click.echo(click.style("Release:", bold=True))
        click.echo(f"  Release:          {config.release.release}")
        click.echo(f"  Anatomy Ontology: {config.release.anatomy_ontology_version}")
        click.echo(f"  Stage Ontology:   {config.release.stage_ontology_version}")
        click.echo(f"  OMA:              {config.release.oma_version}")
        click.echo()

        click.echo(click.style("Paths:", bold=True))
        click.echo(f"  Snapshot Directory: {config.snapshot_dir}")
        click.echo(f"  Output Directory: {config.output_dir}")
        click.echo(f"  DuckDB Path: {config.duckdb_path}")
        click.echo()

        click.echo(click.style("Settings:", bold=True))
        click.echo(f"  Propagate Calls: {config.propagation.propagate_calls}")
        click.echo(f"  Tie Policy: {config.diff_expression.tie_policy.value}")
        click.echo(f"  Tie Tolerance: {config.diff_expression.tie_tolerance}")
        click.echo(f"  Use Absence Calls: {config.diff_expression.use_absence_calls}")
        click.echo(f"  Only Trusted Homology: {config.homology.only_trusted}")
        click.echo(f"  Strict Taxon Consistency: {config.homology.strict_taxon_consistency}")

        if config.duckdb_path.exists():
            click.echo()
            click.echo(click.style("Checkpoints:", bold=True))
            with ResultStore.from_config(config) as store:
                checkpoints = store.list_checkpoints()
            if not checkpoints:
                click.echo("  (none)")
            for checkpoint in checkpoints:
                click.echo(
                    f"  {checkpoint['table_name']}: {checkpoint['row_count']} rows, "
                    f"{checkpoint['description']} ({checkpoint['created_at']})"
                )

    except Exception as e:
        click.echo(click.style(f"Error loading config: {e}", fg='red'), err=True)
        ctx.exit(1)


cli.add_command(calls)
cli.add_command(compare)
cli.add_command(diff)
cli.add_command(homology)


if __name__ == '__main__':
    cli()
