"""Command-line entry point for manta-storspan."""

import logging
import sys

import click
from dotenv import load_dotenv

from storspan import __version__
from storspan.cli.utils import validate_address, validate_positive
from storspan.settings import DEFAULT_CONCURRENCY, DEFAULT_PORT

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.argument("ip", callback=validate_address)
@click.argument("nservers", callback=validate_positive)
@click.option(
    "-c",
    "--concurrency",
    type=click.IntRange(min=1),
    default=DEFAULT_CONCURRENCY,
    show_default=True,
    help="Process N objects at a time",
)
@click.option(
    "-o",
    "--output",
    "root",
    type=str,
    default=None,
    help="Put test and final output objects into PATH "
    "(default: /$MANTA_USER/stor/manta-storspan)",
)
@click.option(
    "-p",
    "--port",
    type=click.IntRange(1, 65535),
    default=DEFAULT_PORT,
    show_default=True,
    help="Internal server listens on TCP port PORT",
)
@click.option(
    "--report-timeout",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Abort if a probe gets no job report within SECONDS (default: wait)",
)
@click.option("-v", "--verbose", is_flag=True, help="Log debug output to stderr")
@click.option("--no-rich", is_flag=True, help="Plain output (auto when not a TTY)")
@click.version_option(__version__, prog_name="manta-storspan")
def main(
    ip: str,
    nservers: int,
    concurrency: int,
    root: str | None,
    port: int,
    report_timeout: float | None,
    verbose: bool,
    no_rich: bool,
) -> None:
    """Find every storage server in a Manta deployment.

    Creates test objects in Manta, locates them using a Manta job, and
    repeats the process until at least one object has been created on each
    storage server.  Upon completion there is one object per storage
    server, named after the server's unique identifier.

    IP is an address of this host that is reachable from inside a Manta job;
    the job's tasks report back to an HTTP server on that address.
    NSERVERS is the number of distinct storage servers expected.  The run
    stops when that many have been found, or after 10 * NSERVERS requests.

    MANTA_URL, MANTA_USER and MANTA_KEY_ID must be set as for any other
    Manta command-line client.

    \b
    Examples:
      manta-storspan 203.0.113.7 40
      manta-storspan -c 20 -o /jill/stor/span-run2 203.0.113.7 40
    """
    from pydantic import ValidationError

    from storspan.cli.logging import configure_cli_logging
    from storspan.cli.utils import console, run_async
    from storspan.discovery.config import RunConfig
    from storspan.discovery.engine import run_discovery
    from storspan.discovery.errors import DiscoveryError
    from storspan.manta.client import MantaClient
    from storspan.manta.errors import MantaError
    from storspan.settings import SettingsError, get_default_root

    log_file = configure_cli_logging("storspan", verbose=verbose)
    logger.debug("Logging to %s", log_file)

    use_rich = not no_rich and sys.stdout.isatty()

    def log_print(msg: str, style: str = "") -> None:
        if use_rich:
            console.print(msg, style=style or None, markup=False, highlight=False)
        else:
            click.echo(msg)

    try:
        config = RunConfig(
            address=ip,
            expected_nodes=nservers,
            root=root or get_default_root(),
            concurrency=concurrency,
            port=port,
            report_timeout=report_timeout,
        )
    except ValidationError as e:
        raise click.UsageError(str(e)) from e

    try:
        manta = MantaClient.from_env()
    except (SettingsError, MantaError) as e:
        raise click.ClickException(str(e)) from e

    async def _run():
        async with manta:
            return await run_discovery(config, manta, echo=log_print)

    try:
        result = run_async(_run())
    except (DiscoveryError, MantaError) as e:
        logger.debug("Run failed", exc_info=True)
        raise click.ClickException(str(e)) from e

    if result.cancel_error:
        log_print(f"warning: {result.cancel_error}", style="yellow")
