import asyncio
import sys

import click
import uvicorn

from crossci.config import config
from crossci.exceptions import ConfigurationError
from crossci.report import format_run
from crossci.runner import Orchestrator, load_workflow, select_jobs
from crossci.web import app


@click.group()
def cli():
    """Cross-platform CI orchestrator."""


@cli.command()
@click.argument('workflow', required=False, type=click.Path(dir_okay=False))
@click.option(
    '--color/--no-color',
    default=None,
    help='Force colored command output on or off (defaults to config)',
)
@click.option('--job', 'jobs', multiple=True, help='Only run the given job (repeatable)')
@click.option(
    '--keep-workdirs/--remove-workdirs',
    default=None,
    help='Keep job directories after the run (defaults to config)',
)
def run(workflow, color, jobs, keep_workdirs):
    """Run every job of WORKFLOW on this machine."""
    color = config.color if color is None else color
    try:
        wf = load_workflow(workflow or config.workflow_file)
        orchestrator = Orchestrator(color=color, keep_workdirs=keep_workdirs)
        result = asyncio.run(orchestrator.submit(select_jobs(wf, jobs), env=wf.env))
    except ConfigurationError as e:
        click.echo(f'Configuration error: {e}', err=True)
        sys.exit(2)
    click.echo(format_run(result, color))
    sys.exit(0 if result.ok else 1)


@cli.command()
def server():
    """Serve the GitHub webhook endpoint."""
    uvicorn.run(app, host=config.host, port=config.port)


if __name__ == '__main__':
    cli()
