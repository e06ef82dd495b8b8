"""Command-line interface for streaming subscription data."""

import dataclasses
import logging
import sys

import typer

from subscription_transport.config import TransportSettings
from subscription_transport.errors import ConfigurationError
from subscription_transport.reader import SubscriptionDataSourceReader
from subscription_transport.subscription import (
    InvalidSourceEvent,
    SubscriptionDataSource,
    TransportMedium,
)

app = typer.Typer(add_completion=False)


def _parse_header(value: str) -> tuple[str, str]:
    key, sep, header_value = value.partition("=")
    if not sep or not key:
        raise typer.BadParameter(f"Expected key=value, got {value!r}")
    return key, header_value


@app.command()
def main(
    source: str = typer.Argument(
        ...,
        help="Data source locator: file path, URL, or a label for MongoDB sources",
    ),
    medium: TransportMedium = typer.Option(
        TransportMedium.LOCAL_FILE,
        "--medium",
        "-m",
        help="Transport medium the data is read from",
    ),
    header: list[str] = typer.Option(
        [],
        "--header",
        "-H",
        help="Subscription header as key=value (repeatable)",
    ),
    live: bool = typer.Option(
        False,
        "--live",
        help="Read in live mode (REST endpoints are polled)",
    ),
    mongo_host: str | None = typer.Option(
        None,
        help="MongoDB host (default: from environment or localhost)",
    ),
    mongo_port: int | None = typer.Option(
        None,
        help="MongoDB port (default: from environment or 27017)",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging",
    ),
) -> None:
    """Stream the lines of one subscription data source to stdout.

    Examples:
    - Local file: data/daily/000001.zip#000001.csv
    - MongoDB: -m mongodb -H ticker=000001 -H market=sz -H resolution=Daily ...
    """
    # Configure logging
    if verbose:
        logging.basicConfig(level=logging.DEBUG)
    else:
        logging.basicConfig(level=logging.INFO)

    headers = [_parse_header(value) for value in header]

    try:
        settings = TransportSettings.from_env()
        overrides = {
            name: value
            for name, value in (("mongo_host", mongo_host), ("mongo_port", mongo_port))
            if value is not None
        }
        settings = dataclasses.replace(settings, **overrides)

        reader = SubscriptionDataSourceReader(settings, is_live_mode=live)
        invalid: list[InvalidSourceEvent] = []
        reader.add_invalid_source_handler(invalid.append)

        for line in reader.read_lines(SubscriptionDataSource(source, medium, tuple(headers))):
            typer.echo(line)

        if invalid:
            typer.echo(f"Error: Invalid source {source}: {invalid[0].error}", err=True)
            raise typer.Exit(code=1)

    except typer.Exit:
        raise
    except ConfigurationError as e:
        typer.echo(f"Error: Configuration error: {e}", err=True)
        raise typer.Exit(code=1) from None
    except Exception as e:
        typer.echo(f"Error: {e}", err=True)
        if verbose:
            import traceback

            traceback.print_exc(file=sys.stderr)
        raise typer.Exit(code=1) from None


if __name__ == "__main__":
    app()
