"""server-stats - command line entry point."""

import logging

import typer

from serverstats.errors import ServerStatsError
from serverstats.report import ReportConfig, ServerReport

log = logging.getLogger(__name__)

app = typer.Typer(add_completion=False, help="Print a point-in-time server performance report.")


def setup_logging(verbose: bool) -> None:
    """Send diagnostics to stderr so they never mix with the report."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s  %(levelname)-8s  %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


@app.command()
def report(
    no_color: bool = typer.Option(False, "--no-color", help="Disable ANSI colors."),
    top: int = typer.Option(5, "--top", min=1, help="Rows in each process ranking."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log diagnostics to stderr."),
) -> None:
    """Sample CPU, memory, disk and process usage, print them and exit."""
    setup_logging(verbose)
    server_report = ServerReport(ReportConfig(color=not no_color, top_n=top))
    try:
        server_report.run()
    except ServerStatsError as exc:
        log.error("report aborted: %s", exc)
        log.debug("core reader failure", exc_info=True)
        server_report.print_error()
        raise typer.Exit(code=1) from exc


def main() -> None:
    """Entry point for the server-stats command."""
    app()


if __name__ == "__main__":
    main()
