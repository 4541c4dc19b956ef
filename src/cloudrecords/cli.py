import asyncio
import json
from typing import Any, Awaitable, Callable, List, Optional

import typer

from cloudrecords.api.codec import record_to_document
from cloudrecords.api.error_handling import AccountUnavailableError, RecordClientError
from cloudrecords.config.settings import Settings
from cloudrecords.core.dependencies import DependencyContainer
from cloudrecords.core.models import Comparator, Query, Record, RecordID

EXIT_FAILURE = 1
EXIT_ACCOUNT_UNAVAILABLE = 2

app = typer.Typer(
    name="cloudrecords",
    help="CLI tool to query and change records through the account-gated client.",
    add_completion=False,
)


def parse_value(raw: str) -> Any:
    """Interpret a command-line value as JSON when possible, else as a string."""
    try:
        return json.loads(raw)
    except ValueError:
        return raw


def parse_assignments(assignments: Optional[List[str]], option: str) -> dict:
    parsed = {}
    for assignment in assignments or []:
        key, sep, raw = assignment.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"expected key=value, got '{assignment}'", param_hint=option)
        parsed[key.strip()] = parse_value(raw)
    return parsed


def echo_record(record: Record) -> None:
    typer.echo(json.dumps(record_to_document(record), ensure_ascii=False, sort_keys=True))


def run_with_client(action: Callable[[Any], Awaitable[None]], show_progress: bool = False) -> None:
    """Build the client from the environment, run *action* with it and map errors to exit codes."""

    async def runner():
        container = DependencyContainer(Settings.from_env(), show_progress=show_progress)
        try:
            await action(container.client)
        finally:
            await container.aclose()

    try:
        asyncio.run(runner())
    except AccountUnavailableError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=EXIT_ACCOUNT_UNAVAILABLE)
    except RecordClientError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=EXIT_FAILURE)
    except ValueError as e:
        typer.secho(f"Configuration error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=EXIT_FAILURE)


@app.command()
def status():
    """
    Show the status of the configured cloud account.
    """

    async def action(client):
        account_status = await client.account_status()
        typer.echo(account_status.value)

    run_with_client(action)


@app.command()
def query(
    record_type: str = typer.Argument(..., help="Record type to query."),
    filters: Optional[List[str]] = typer.Option(
        None, "--filter", "-f", help="Equality filter as field=value. Repeat to AND several filters."
    ),
    sort: Optional[str] = typer.Option(None, "--sort", "-s", help="Field to sort by."),
    descending: bool = typer.Option(False, "--desc", help="Sort in descending order."),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", min=1, help="Maximum number of records."),
    zone: Optional[str] = typer.Option(None, "--zone", help="Zone to query instead of the default zone."),
):
    """
    Print the records matching a query, one JSON document per line.
    """
    record_query = Query(record_type, results_limit=limit)
    if zone:
        record_query.zone_name = zone
    for field_name, value in parse_assignments(filters, "--filter").items():
        record_query.where(field_name, Comparator.EQUALS, value)
    if sort:
        record_query.order_by(sort, ascending=not descending)

    async def action(client):
        for record in await client.fetch_records(record_query):
            echo_record(record)

    run_with_client(action, show_progress=True)


@app.command()
def save(
    record_type: str = typer.Argument(..., help="Type of the new record."),
    fields: Optional[List[str]] = typer.Option(None, "--field", "-f", help="Field as key=value. Repeatable."),
    name: Optional[str] = typer.Option(None, "--name", help="Record name; generated when omitted."),
):
    """
    Create a record and print it as saved by the server.
    """
    record = Record(record_type, fields=parse_assignments(fields, "--field"))
    if name:
        record.record_id = RecordID(name)

    async def action(client):
        echo_record(await client.save_record(record))

    run_with_client(action)


@app.command()
def update(
    record_name: str = typer.Argument(..., help="Name of the record to overwrite."),
    record_type: str = typer.Argument(..., help="Type of the record."),
    fields: Optional[List[str]] = typer.Option(None, "--field", "-f", help="Field as key=value. Repeatable."),
):
    """
    Overwrite every field of a record; fields not given are removed.
    """
    record = Record(record_type, record_id=RecordID(record_name), fields=parse_assignments(fields, "--field"))

    async def action(client):
        echo_record(await client.update_record(record))

    run_with_client(action)


@app.command()
def delete(record_names: List[str] = typer.Argument(..., help="Names of the records to delete.")):
    """
    Delete records by name.
    """
    record_ids = [RecordID(record_name) for record_name in record_names]

    async def action(client):
        await client.update_records(records_to_delete=record_ids)
        typer.secho(f"Deleted {len(record_ids)} record(s).", fg=typer.colors.GREEN)

    run_with_client(action)


def main():
    app()


if __name__ == "__main__":
    main()
