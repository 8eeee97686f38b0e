#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
Command-line interface for ChainWeaver.

This module provides the main CLI entry point and all subcommands for
the ChainWeaver chain contraction engine.
"""

import importlib.metadata
import logging
import sys
import click
from pathlib import Path
import yaml

from .version import __version__
from .config.parser import ConfigParser
from .config.schema import load_config, save_config_template, validate_config
from .graph_core.data_structures import find_integrity_violations
from .graph_core.errors import ChainWeaverError, ConvergenceNotReached
from .io.snapshot_io import read_snapshot, write_fasta, write_snapshot
from .utils.bsp_runner import EXECUTORS, StageTimeout
from .utils.checkpoints import CheckpointManager
from .utils.round_controller import CompressionConfig, ControllerState, RoundController


def _setup_logging(verbose: bool, quiet: bool, level: str = 'INFO', log_file=None):
    """Configure the root logger for a CLI run."""
    if verbose:
        log_level = logging.DEBUG
    elif quiet:
        log_level = logging.ERROR
    else:
        log_level = getattr(logging, str(level).upper(), logging.INFO)

    handlers = [logging.StreamHandler()]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
        force=True,
    )


@click.group()
@click.version_option(version=__version__)
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose output')
@click.option('--quiet', '-q', is_flag=True, help='Suppress non-error output')
@click.pass_context
def main(ctx, verbose, quiet):
    """
    ChainWeaver: distributed chain contraction for overlap graphs

    Repeatedly merges unambiguous linear runs of a bidirected sequence graph
    in bulk-synchronous, partition-parallel rounds until no merge is left.
    """
    ctx.ensure_object(dict)
    ctx.obj['VERBOSE'] = verbose
    ctx.obj['QUIET'] = quiet


# ============================================================================
# Configuration Management Commands
# ============================================================================

@main.group()
def config():
    """Configuration management commands."""
    pass


@config.command('init')
@click.option('--output', '-o', type=click.Path(), default='chainweaver_config.yaml',
              help='Output configuration file path')
@click.option('--template', '-t',
              type=click.Choice(['default', 'parallel', 'debug']),
              default='default', help='Configuration template type')
def config_init(output, template):
    """Generate a template configuration file with all available parameters."""
    click.echo(f"Generating {template} configuration template: {output}")

    try:
        save_config_template(Path(output), template=template)
    except (OSError, ValueError) as e:
        click.echo(f"✗ Error creating configuration: {e}", err=True)
        sys.exit(1)

    click.echo(f"✓ Configuration file created: {output}")
    click.echo("\nThe configuration file includes:")
    click.echo("  • Compression settings (seed, round budget, overlap)")
    click.echo("  • Execution settings (executor, workers, partitions)")
    click.echo("  • Snapshot retention and logging")
    click.echo("\nEdit this file and pass it with: chainweaver compress --config <file>")


@config.command('validate')
@click.argument('config_file', type=click.Path(exists=True))
def config_validate(config_file):
    """Validate a configuration file."""
    click.echo(f"Validating configuration file: {config_file}")

    try:
        config = load_config(Path(config_file))
    except yaml.YAMLError as e:
        click.echo(f"✗ Error validating configuration: {e}", err=True)
        sys.exit(1)

    errors = validate_config(config)
    if errors:
        click.echo("\n✗ Configuration validation failed:")
        for error in errors:
            click.echo(f"  • {error}", err=True)
        sys.exit(1)

    click.echo("✓ Configuration is valid")
    click.echo("\nKey Settings:")
    click.echo(f"  Seed: {config['compression']['seed']}")
    click.echo(f"  Max rounds: {config['compression']['max_rounds'] or 'unlimited'}")
    click.echo(f"  Executor: {config['execution']['executor']} "
               f"({config['execution']['num_partitions']} partitions)")


@config.command('show')
@click.argument('config_file', type=click.Path(exists=True))
@click.option('--format', '-f', type=click.Choice(['yaml', 'summary']), default='summary',
              help='Output format')
def config_show(config_file, format):
    """Display configuration settings."""
    try:
        config = load_config(Path(config_file))
    except yaml.YAMLError as e:
        click.echo(f"✗ Error reading configuration: {e}", err=True)
        sys.exit(1)

    if format == 'yaml':
        click.echo(yaml.dump(config, default_flow_style=False, sort_keys=False))
        return

    click.echo(f"Configuration from: {config_file}")
    click.echo("=" * 60)

    compression = config['compression']
    click.echo("\nCompression:")
    click.echo(f"  Seed: {compression['seed']}")
    click.echo(f"  Max rounds: {compression['max_rounds'] or 'unlimited'}")
    click.echo(f"  Overlap: {compression['overlap']}")
    click.echo(f"  Fail on budget: {compression['fail_on_budget']}")

    execution = config['execution']
    click.echo("\nExecution:")
    click.echo(f"  Executor: {execution['executor']}")
    click.echo(f"  Workers: {execution['workers'] or 'auto'}")
    click.echo(f"  Partitions: {execution['num_partitions']}")

    snapshots = config['snapshots']
    click.echo("\nSnapshots:")
    click.echo(f"  Work dir: {snapshots['work_dir'] or '<output>.rounds'}")
    click.echo(f"  Keep last: {snapshots['keep_last'] or 'all'}")


# ============================================================================
# Compression
# ============================================================================

def _publish(result, output: Path):
    """Copy the final snapshot of a run to ``output``."""
    if result.rounds:
        checkpoint = Path(result.snapshot_path)
        return CheckpointManager(checkpoint.parent).restore(checkpoint.name, output)

    snapshot = read_snapshot(result.snapshot_path)
    return write_snapshot(output, snapshot.partitions, snapshot.manifest)


@main.command()
@click.option('--input', '-i', 'input_path', required=True, type=click.Path(exists=True),
              help='Input snapshot (directory or .jsonl[.gz] node file)')
@click.option('--output', '-o', required=True, type=click.Path(),
              help='Output snapshot directory')
@click.option('--config', '-c', 'config_file', type=click.Path(exists=True),
              help='Configuration file (YAML)')
@click.option('--seed', type=click.IntRange(min=0), default=None,
              help='Seed for the per-round coin flips')
@click.option('--max-rounds', type=click.IntRange(min=1), default=None,
              help='Round budget (default: run to a fixpoint)')
@click.option('--partitions', '-p', type=click.IntRange(min=1), default=None,
              help='Number of shuffle partitions')
@click.option('--workers', '-t', type=click.IntRange(min=1), default=None,
              help='Worker count for thread/process executors')
@click.option('--executor', type=click.Choice(EXECUTORS), default=None,
              help='Executor for map and reduce phases')
@click.option('--overlap', type=click.IntRange(min=0), default=None,
              help='Bases shared by adjacent fragments')
@click.option('--work-dir', type=click.Path(), default=None,
              help='Directory for per-round checkpoints (default: <output>.rounds)')
@click.option('--resume', is_flag=True, default=False,
              help='Resume from the latest checkpoint in the work directory')
@click.option('--validate-input', is_flag=True, default=False,
              help='Check edge symmetry of the input before round 1')
@click.option('--fail-on-budget', is_flag=True, default=False,
              help='Exit with an error if the round budget runs out')
@click.pass_context
def compress(ctx, input_path, output, config_file, seed, max_rounds, partitions, workers,
             executor, overlap, work_dir, resume, validate_input, fail_on_budget):
    """
    Contract unambiguous chains until no merge is left.

    Examples:
        # Run to a fixpoint with the default serial executor
        chainweaver compress -i graph.jsonl.gz -o compressed/

        # Four worker processes, fixed seed, resume after an interruption
        chainweaver compress -i graph.jsonl.gz -o compressed/ \\
            --executor process -t 4 --seed 7 --resume
    """
    try:
        parser = ConfigParser(config_file)
        parser.merge_cli_overrides({
            'compression.seed': seed,
            'compression.max_rounds': max_rounds,
            'compression.overlap': overlap,
            'compression.fail_on_budget': fail_on_budget or None,
            'execution.executor': executor,
            'execution.workers': workers,
            'execution.num_partitions': partitions,
            'snapshots.work_dir': work_dir,
            'snapshots.validate_input': validate_input or None,
        })
        parser.validate()
    except (ChainWeaverError, OSError) as e:
        click.echo(f"✗ Configuration error: {e}", err=True)
        sys.exit(1)

    logging_config = parser.get('output.logging', {}) or {}
    _setup_logging(ctx.obj['VERBOSE'], ctx.obj['QUIET'],
                   level=logging_config.get('level', 'INFO'),
                   log_file=logging_config.get('log_file'))

    output = Path(output)
    work_dir = Path(parser.get('snapshots.work_dir') or f"{output}.rounds")
    compression_config = CompressionConfig.from_config(parser.to_dict())

    if not ctx.obj['QUIET']:
        click.echo(f"{'='*60}")
        click.echo("ChainWeaver Chain Compression")
        click.echo(f"{'='*60}")
        click.echo(f"Input: {input_path}")
        click.echo(f"Output: {output}")
        click.echo(f"Work dir: {work_dir}")
        click.echo(f"Seed: {compression_config.seed}")
        click.echo(f"Executor: {compression_config.executor} "
                   f"({compression_config.num_partitions} partitions)")
        click.echo(f"{'='*60}\n")

    controller = RoundController(compression_config, work_dir)
    try:
        result = controller.run(input_path, resume=resume)
    except ConvergenceNotReached as e:
        click.echo(f"✗ {e}", err=True)
        sys.exit(1)
    except (ChainWeaverError, StageTimeout, OSError) as e:
        click.echo(f"✗ Error during compression: {e}", err=True)
        sys.exit(1)

    published = _publish(result, output)

    if not ctx.obj['QUIET']:
        for round_result in result.rounds:
            click.echo(f"  {round_result.summary()}")
        click.echo(f"\n✓ Snapshot written to: {published}")
        click.echo(f"  Rounds run: {len(result.rounds)}")
        click.echo(f"  Merges applied: {result.total_merges}")
        if result.final_node_count is not None:
            click.echo(f"  Final node count: {result.final_node_count}")

    if result.state is not ControllerState.CONVERGED:
        click.echo(f"✗ {result.error}", err=True)
        sys.exit(1)


# ============================================================================
# Snapshot Commands
# ============================================================================

@main.command()
@click.argument('snapshot', type=click.Path(exists=True))
@click.option('--max-errors', type=int, default=20, help='Maximum violations to print')
def validate(snapshot, max_errors):
    """
    Check a snapshot against the graph invariants.

    Every edge must have its complementary mirror, every referenced node
    must exist and node ids must be unique.
    """
    click.echo(f"Validating snapshot: {snapshot}")

    try:
        loaded = read_snapshot(snapshot)
    except ChainWeaverError as e:
        click.echo(f"✗ Unreadable snapshot: {e}", err=True)
        sys.exit(1)

    errors = find_integrity_violations(loaded.nodes())
    click.echo(f"  Round: {loaded.manifest.round}")
    click.echo(f"  Nodes: {loaded.node_count}")
    click.echo(f"  Partitions: {len(loaded.partitions)}")

    if errors:
        click.echo(f"\n✗ {len(errors)} invariant violation(s):")
        for error in errors[:max_errors]:
            click.echo(f"  • {error}", err=True)
        sys.exit(1)

    click.echo("✓ Snapshot is consistent")


@main.command()
@click.argument('snapshot', type=click.Path(exists=True))
@click.option('--output', '-o', required=True, type=click.Path(),
              help='Output FASTA file (.gz for compressed)')
@click.option('--min-length', type=click.IntRange(min=0), default=0,
              help='Skip sequences shorter than this')
@click.option('--line-width', type=click.IntRange(min=0), default=80,
              help='Bases per line (0 = no wrapping)')
def export(snapshot, output, min_length, line_width):
    """Write the node sequences of a snapshot as FASTA."""
    try:
        loaded = read_snapshot(snapshot)
    except ChainWeaverError as e:
        click.echo(f"✗ Unreadable snapshot: {e}", err=True)
        sys.exit(1)

    nodes = sorted(loaded.nodes(), key=lambda n: n.node_id)
    count = write_fasta(nodes, output, min_length=min_length, line_width=line_width)
    click.echo(f"✓ Wrote {count} sequences to: {output}")


# ============================================================================
# Checkpoint Management Commands
# ============================================================================

@main.group()
def checkpoints():
    """Manage per-round checkpoints."""
    pass


@checkpoints.command('list')
@click.option('--dir', '-d', 'checkpoint_dir', type=click.Path(exists=True),
              required=True, help='Checkpoint directory')
def checkpoints_list(checkpoint_dir):
    """List available checkpoints."""
    manager = CheckpointManager(Path(checkpoint_dir))
    entries = manager.list_checkpoints()

    click.echo(f"Checkpoints in: {checkpoint_dir}")
    if not entries:
        click.echo("  (none)")
        return

    for entry in entries:
        merges = entry.get('extra', {}).get('round_result', {}).get('merges')
        merged = f", {merges} merges" if merges is not None else ""
        click.echo(f"  {entry['id']}: round {entry['round']}, {entry['node_count']} nodes{merged}")


@checkpoints.command('prune')
@click.option('--dir', '-d', 'checkpoint_dir', type=click.Path(exists=True),
              required=True, help='Checkpoint directory')
@click.option('--keep-last', type=click.IntRange(min=1), default=1,
              help='Number of newest checkpoints to keep')
def checkpoints_prune(checkpoint_dir, keep_last):
    """Remove all but the newest checkpoints."""
    manager = CheckpointManager(Path(checkpoint_dir))
    before = len(manager.list_checkpoints())
    manager.prune(keep_last)
    after = len(manager.list_checkpoints())
    click.echo(f"✓ Removed {before - after} checkpoint(s), {after} kept")


# ============================================================================
# Utility Commands
# ============================================================================

@main.command()
def version():
    """Show version information."""
    click.echo(f"ChainWeaver v{__version__}")
    click.echo("\nDependencies:")

    for label, dist in (('NumPy', 'numpy'), ('PyYAML', 'PyYAML'), ('Click', 'click')):
        try:
            click.echo(f"  {label}: {importlib.metadata.version(dist)}")
        except importlib.metadata.PackageNotFoundError:
            click.echo(f"  {label}: not installed")


if __name__ == '__main__':
    main()
