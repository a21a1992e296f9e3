"""CLI main entry point."""

import json
import sys
from datetime import datetime, timezone
from pathlib import Path

import click
import yaml

from .config import load_config
from .riskanalysis import read_junit_suite, write_job_run_test_failure_summary
from .shared.logging import configure_logging


@click.group()
@click.option("-v", "--verbose", count=True, help="Increase verbosity")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
@click.pass_context
def cli(ctx: click.Context, verbose: int, json_output: bool) -> None:
    """Tenant harness utilities."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["json_output"] = json_output
    configure_logging("debug" if verbose else load_config().log_level, json_output=json_output)


@cli.command()
@click.argument("junit_file", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--artifact-dir",
    type=click.Path(file_okay=False),
    help="Output directory (default: ARTIFACT_DIR or the current directory)",
)
@click.option("--suffix", help="File name suffix (default: current UTC time)")
@click.pass_context
def summarize(ctx: click.Context, junit_file: str, artifact_dir: str | None, suffix: str | None) -> None:
    """Write the failure summary of a JUnit result file."""
    try:
        suite = read_junit_suite(junit_file)
    except (ValueError, SyntaxError) as e:
        click.echo(f"Error: cannot read {junit_file}: {e}", err=True)
        sys.exit(1)

    output_dir = Path(artifact_dir or load_config().artifact_dir or ".")
    output_dir.mkdir(parents=True, exist_ok=True)
    time_suffix = suffix or datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")

    path = write_job_run_test_failure_summary(output_dir, time_suffix, suite)
    if ctx.obj["json_output"]:
        click.echo(json.dumps({"path": str(path)}))
    else:
        click.echo(f"✓ Wrote {path}")


@cli.group()
def config() -> None:
    """Inspect configuration."""
    pass


@config.command("show")
@click.pass_context
def config_show(ctx: click.Context) -> None:
    """Show current configuration and where each value came from."""
    harness_config = load_config()
    values = harness_config.values()

    if ctx.obj["json_output"]:
        sources = {key: harness_config.get_source(key) for key in values}
        click.echo(json.dumps({"values": values, "sources": sources}, indent=2))
        return

    click.echo("Tenant Harness Configuration\n")
    click.echo(yaml.dump(values, default_flow_style=False, sort_keys=False).rstrip())
    click.echo("\nSources:")
    for key in values:
        click.echo(f"  {key}: {harness_config.get_source(key)}")


def main() -> None:
    """Main entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
