"""
Command Line Interface
======================

``fontresolver`` resolves font names, inspects tiers and metrics, checks
licenses and manages the resolution cache.
"""

import json
import logging
import sys
from pathlib import Path

import click

from .batch.processor import ConsoleProgressCallback
from .core.config import ResolverConfig
from .core.exceptions import FontResolverError
from .core.models import ResolutionResult, ScoredCandidate
from .resolution.engine import FontResolver

logger = logging.getLogger(__name__)


def _make_resolver(ctx: click.Context) -> FontResolver:
    try:
        return FontResolver(ctx.obj["config"])
    except FontResolverError as e:
        _fail(f"Could not start resolver: {e}")


def _fail(message: str) -> None:
    logger.error(message)
    click.echo(f"Error: {message}", err=True)
    sys.exit(1)


def _echo_json(data) -> None:
    click.echo(json.dumps(data, indent=2, sort_keys=True))


def _format_result(result: ResolutionResult) -> str:
    font = result.resolved
    line = (
        f"{result.original_name} -> {font.family} {font.weight}"
        f"{' italic' if font.italic else ''} "
        f"[{result.source.value}, score {result.compatibility_score:.2f}"
    )
    if result.substituted and result.substitution_reason:
        line += f", substituted: {result.substitution_reason.value}"
    line += "]"
    if font.path:
        line += f"\n    path: {font.path}"
    for warning in result.warnings:
        line += f"\n    warning: {warning}"
    return line


def _format_candidate(candidate: ScoredCandidate) -> str:
    font = candidate.descriptor
    return (
        f"  {candidate.score:.3f}  {font.family} {font.weight}"
        f"{' italic' if font.italic else ''} ({candidate.source.value})"
    )


@click.group()
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to resolver configuration YAML file",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.pass_context
def cli(ctx, config_path, verbose):
    """Font resolution engine CLI."""
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    try:
        config = ResolverConfig.from_yaml(config_path) if config_path else ResolverConfig()
    except FontResolverError as e:
        _fail(f"Invalid configuration: {e}")
    ctx.ensure_object(dict)
    ctx.obj["config"] = config


@cli.command()
@click.argument("names", nargs=-1, required=True)
@click.option("--internet", "-i", is_flag=True, help="Query live web providers")
@click.option("--json", "as_json", is_flag=True, help="Print results as JSON")
@click.option("--progress", is_flag=True, help="Print per-name progress while resolving")
@click.pass_context
def resolve(ctx, names, internet, as_json, progress):
    """Resolve one or more font names."""
    callback = ConsoleProgressCallback() if progress else None
    with _make_resolver(ctx) as resolver:
        batch = resolver.resolve_batch(list(names), use_internet=internet, progress_callback=callback)

    if as_json:
        _echo_json(
            [
                {
                    "name": item.name,
                    "success": item.success,
                    "result": item.result.model_dump(mode="json") if item.result else None,
                    "error": item.error,
                }
                for item in batch.results
            ]
        )
    else:
        for item in batch.results:
            if item.success:
                click.echo(_format_result(item.result))
            else:
                click.echo(f"{item.name} -> FAILED ({item.error_type}): {item.error}")

    if batch.failed_items:
        sys.exit(1)


@cli.command()
@click.argument("name")
@click.option("--internet", "-i", is_flag=True, help="Query live web providers")
@click.option("--json", "as_json", is_flag=True, help="Print tiers as JSON")
@click.pass_context
def tiered(ctx, name, internet, as_json):
    """Show exact (>=0.90) and similar (>=0.80) candidates for a name."""
    try:
        with _make_resolver(ctx) as resolver:
            matches = resolver.tiered(name, use_internet=internet)
    except FontResolverError as e:
        _fail(str(e))

    if as_json:
        _echo_json(matches.model_dump(mode="json"))
        return
    click.echo(f"Exact tier ({len(matches.exact_tier)}):")
    for candidate in matches.exact_tier:
        click.echo(_format_candidate(candidate))
    click.echo(f"Similar tier ({len(matches.similar_tier)}):")
    for candidate in matches.similar_tier:
        click.echo(_format_candidate(candidate))


@cli.command()
@click.argument("name")
@click.option("--internet", "-i", is_flag=True, help="Query live web providers")
@click.pass_context
def metrics(ctx, name, internet):
    """Export the metrics of the font a name resolves to, as JSON."""
    try:
        with _make_resolver(ctx) as resolver:
            flat = resolver.export_metrics(name, use_internet=internet)
    except FontResolverError as e:
        _fail(str(e))
    _echo_json(flat)


@cli.command()
@click.argument("name")
@click.option("--limit", "-n", type=click.IntRange(min=1), default=10, help="Maximum results")
@click.pass_context
def similar(ctx, name, limit):
    """List fonts similar to a name, best first."""
    try:
        with _make_resolver(ctx) as resolver:
            candidates = resolver.find_similar(name, limit=limit)
    except FontResolverError as e:
        _fail(str(e))

    if not candidates:
        click.echo(f"No fonts similar to {name}")
        return
    for candidate in candidates:
        click.echo(_format_candidate(candidate))


@cli.command(name="check-license")
@click.argument("name")
@click.option("--json", "as_json", is_flag=True, help="Print the report as JSON")
@click.pass_context
def check_license(ctx, name, as_json):
    """Report the license of the font a name resolves to."""
    try:
        with _make_resolver(ctx) as resolver:
            report = resolver.check_license(name)
    except FontResolverError as e:
        _fail(str(e))

    if as_json:
        _echo_json(report.to_dict())
        return
    info = report.assessment.info
    embedding = {True: "yes", False: "no", None: "unknown"}[info.allows_embedding]
    click.echo(f"{name} -> {report.resolved.family}")
    click.echo(f"  license: {info.name} ({report.assessment.risk.value})")
    click.echo(f"  embedding allowed: {embedding}")
    for warning in report.assessment.warnings:
        click.echo(f"  warning: {warning}")
    if report.alternatives:
        click.echo(f"  free alternatives: {', '.join(report.alternatives)}")


@cli.command(name="build-db")
@click.argument("output", type=click.Path(dir_okay=False, path_type=Path))
@click.pass_context
def build_db(ctx, output):
    """Scan local fonts and write a signature database."""
    try:
        with _make_resolver(ctx) as resolver:
            database = resolver.build_signature_database(output)
    except FontResolverError as e:
        _fail(str(e))
    click.echo(f"Wrote {len(database)} entries to {output}")


@cli.group()
def cache():
    """Manage the resolution cache."""


@cache.command()
@click.option("--json", "as_json", is_flag=True, help="Print statistics as JSON")
@click.pass_context
def stats(ctx, as_json):
    """Show cache statistics."""
    with _make_resolver(ctx) as resolver:
        cache_stats = resolver.cache_stats()
    data = cache_stats.to_dict()
    if as_json:
        _echo_json(data)
        return
    for key, value in data.items():
        click.echo(f"{key}: {value}")


@cache.command()
@click.option("--aggressive", is_flag=True, help="Also remove entries used at most once")
@click.pass_context
def cleanup(ctx, aggressive):
    """Remove stale unpinned entries."""
    with _make_resolver(ctx) as resolver:
        removed = resolver.cleanup_cache(aggressive=aggressive)
    click.echo(f"Removed {removed} entries")


@cache.command()
@click.argument("name")
@click.pass_context
def pin(ctx, name):
    """Pin a cached resolution so it is never evicted."""
    try:
        with _make_resolver(ctx) as resolver:
            resolver.pin(name)
    except FontResolverError as e:
        _fail(str(e))
    click.echo(f"Pinned {name}")


@cache.command()
@click.argument("name")
@click.pass_context
def unpin(ctx, name):
    """Unpin a cached resolution."""
    try:
        with _make_resolver(ctx) as resolver:
            resolver.unpin(name)
    except FontResolverError as e:
        _fail(str(e))
    click.echo(f"Unpinned {name}")


@cache.command()
@click.argument("names", nargs=-1, required=True)
@click.pass_context
def remove(ctx, names):
    """Remove unpinned entries by font name."""
    try:
        with _make_resolver(ctx) as resolver:
            removed = resolver.remove_from_cache(list(names))
    except FontResolverError as e:
        _fail(str(e))
    click.echo(f"Removed {removed} entries")


@cache.command(name="list")
@click.pass_context
def list_pinned(ctx):
    """List pinned entries."""
    with _make_resolver(ctx) as resolver:
        names = resolver.list_pinned()
    if not names:
        click.echo("No pinned entries")
    for name in names:
        click.echo(name)


@cache.command()
@click.option("--limit", "-n", type=click.IntRange(min=1), default=None, help="Maximum results")
@click.pass_context
def suggest(ctx, limit):
    """Suggest entries to remove, least used first."""
    with _make_resolver(ctx) as resolver:
        names = resolver.suggest_cache_removal(limit)
    if not names:
        click.echo("Nothing to suggest")
    for name in names:
        click.echo(name)


if __name__ == "__main__":
    cli()
