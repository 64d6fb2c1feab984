"""CLI for inspecting and exercising a BrAPI mapping configuration.

Provides commands to list mappings and enabled calls, validate mappings
against the loaded BrAPI definitions, run a call end to end, and clear
cached deferred searches.

Usage:
    brapi-mapper mappings
    brapi-mapper calls
    brapi-mapper validate
    brapi-mapper call GET /brapi/v2/germplasm --query germplasmName=IR64
    brapi-mapper call POST /brapi/v2/search/germplasm --body '{"germplasmNames": ["IR64"]}' --wait
    brapi-mapper --config other.toml clear-searches

Commands:
    mappings        - List datatype mappings
    calls           - List enabled calls per version
    validate        - Validate mappings against BrAPI definitions
    call            - Run one call and print the JSON response
    clear-searches  - Forget every cached deferred search
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any
from urllib.parse import parse_qsl

from rich.console import Console
from rich.table import Table

from brapi_mapper.config.loader import load_brapi_config, load_definitions, load_mappings
from brapi_mapper.config.models import BrapiSettings
from brapi_mapper.errors import NotFoundError
from brapi_mapper.factory import ConfigNotFoundError, build_service, resolve_config_path
from brapi_mapper.mapping.registry import MappingRegistry
from brapi_mapper.schema.comparator import validate_mapping
from brapi_mapper.schema.models import DefinitionTable
from brapi_mapper.service import SEARCH_ID_PARAMETER, BrapiService

console = Console()


# ============================================================================
# Argument helpers
# ============================================================================


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _load_settings(args: argparse.Namespace) -> BrapiSettings | None:
    """Load settings, printing the error and returning None on failure."""
    try:
        path = resolve_config_path(args.config, args.env_prefix)
        return load_brapi_config(path)
    except (ConfigNotFoundError, FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return None


def _parse_query(path: str, pairs: list[str]) -> dict[str, Any]:
    """Collect query parameters from ``path?k=v`` and ``--query k=v``.

    A key given more than once becomes a list.

    Example:
        >>> _parse_query("/brapi/v2/germplasm?page=1", ["germplasmName=IR64"])
        {'page': '1', 'germplasmName': 'IR64'}
    """
    items = parse_qsl(path.split("?", 1)[1]) if "?" in path else []
    for pair in pairs:
        if "=" not in pair:
            raise ValueError(f"Query parameter must be KEY=VALUE: {pair}")
        key, value = pair.split("=", 1)
        items.append((key, value))

    query: dict[str, Any] = {}
    for key, value in items:
        if key in query:
            existing = query[key]
            query[key] = [*existing, value] if isinstance(existing, list) else [existing, value]
        else:
            query[key] = value
    return query


def _read_body(value: str | None) -> str | None:
    """Return the body text; ``@file.json`` reads it from a file."""
    if value and value.startswith("@"):
        return Path(value[1:]).read_text()
    return value


# ============================================================================
# Async command implementations
# ============================================================================


async def _run_call(service: BrapiService, args: argparse.Namespace) -> int:
    try:
        request = service.route(args.path, args.method)
        query = _parse_query(args.path, args.query)
        body = _read_body(args.body)
    except (NotFoundError, ValueError, OSError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    roles = args.role or ["anonymous"]
    request = request.model_copy(
        update={"query_params": query, "body": body, "roles": roles}
    )
    response = await service.handle(request)
    ran = await service.run_deferred()

    search_id = (response.body.get("result") or {}).get(SEARCH_ID_PARAMETER)
    if args.wait and response.status_code == 202 and search_id:
        console.print(f"[dim]Search {search_id} accepted, {ran} deferred task(s) ran[/dim]")
        poll = service.route(f"{args.path.split('?', 1)[0].rstrip('/')}/{search_id}", "get")
        poll = poll.model_copy(update={"query_params": query, "roles": roles})
        response = await service.handle(poll)

    style = "green" if response.status_code < 400 else "red"
    console.print(f"[{style}]HTTP {response.status_code}[/{style}]")
    console.print_json(data=response.body)
    return 0 if response.status_code < 400 else 1


async def _async_call(args: argparse.Namespace) -> int:
    """Async implementation for call command.

    Args:
        args: Parsed arguments with method, path, query, body, role, wait.

    Returns:
        0 when the call succeeded (status < 400), 1 otherwise.
    """
    settings = _load_settings(args)
    if settings is None:
        return 1
    try:
        service = build_service(settings=settings)
    except (FileNotFoundError, ValueError, ImportError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    try:
        return await _run_call(service, args)
    finally:
        await service.close()


async def _async_clear_searches(args: argparse.Namespace) -> int:
    """Async implementation for clear-searches command.

    Returns:
        0 on success, 1 if the configuration cannot be loaded.
    """
    settings = _load_settings(args)
    if settings is None:
        return 1
    try:
        service = build_service(settings=settings)
    except (FileNotFoundError, ValueError, ImportError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    try:
        removed = await service.clear_searches()
    finally:
        await service.close()
    console.print(f"[green]Cleared {removed} cached search(es)[/green]")
    return 0


# ============================================================================
# Command wrappers
# ============================================================================


def cmd_mappings(args: argparse.Namespace) -> int:
    """List datatype mappings.

    Reads only local files (config and mapping JSON) -- no store calls.

    Returns:
        0 on success, 1 if the configuration cannot be loaded.
    """
    settings = _load_settings(args)
    if settings is None:
        return 1
    try:
        registry = MappingRegistry(load_mappings(settings.mappings))
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    table = Table(title="Datatype Mappings", show_header=True, header_style="bold")
    table.add_column("Mapping")
    table.add_column("Content target")
    table.add_column("Identifier")
    table.add_column("Rules", justify="right")

    for mapping in registry.all():
        identifier = mapping.brapi_identifier
        if not mapping.has_identifier_rule():
            identifier = f"[yellow]{identifier} (unmapped)[/yellow]"
        table.add_row(
            f"[cyan]{mapping.id}[/cyan]",
            mapping.content_target,
            identifier,
            str(len(mapping.field_rules)),
        )

    console.print(table)
    console.print(f"\n{len(registry)} mapping(s)")
    return 0


def cmd_calls(args: argparse.Namespace) -> int:
    """List enabled calls per version.

    Returns:
        0 on success, 1 if the configuration cannot be loaded.
    """
    settings = _load_settings(args)
    if settings is None:
        return 1

    table = Table(title="Enabled Calls", show_header=True, header_style="bold")
    table.add_column("Version")
    table.add_column("Call")
    table.add_column("Methods")
    table.add_column("Deferred")
    table.add_column("Filtering")
    table.add_column("Roles")

    for version, calls in sorted(settings.calls.items()):
        release = settings.releases.get(version, "[red]disabled[/red]")
        for call, setting in sorted(calls.items()):
            roles = "; ".join(
                f"{method.value.upper()}: {', '.join(sorted(names))}"
                for method, names in sorted(setting.roles.items(), key=lambda item: item[0].value)
            )
            table.add_row(
                f"{version} ({release})",
                call,
                ", ".join(sorted(m.value.upper() for m in setting.methods)),
                "[green]yes[/green]" if setting.deferred else "no",
                setting.filtering,
                roles or "[dim]default[/dim]",
            )

    console.print(table)
    return 0


def cmd_validate(args: argparse.Namespace) -> int:
    """Validate every mapping against its BrAPI definition.

    Returns:
        0 if all mappings are valid, 1 otherwise.
    """
    settings = _load_settings(args)
    if settings is None:
        return 1
    try:
        definitions = DefinitionTable(load_definitions(settings.definitions))
        registry = MappingRegistry(load_mappings(settings.mappings))
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    failures = 0
    for mapping in registry.all():
        mapping_id = mapping.mapping_id
        try:
            definition = definitions.get(mapping_id.version, mapping_id.release)
        except NotFoundError as e:
            console.print(f"[bold red]x[/bold red] {mapping.id}: {e.message}")
            failures += 1
            continue

        result = validate_mapping(mapping, definition, registry)
        if result.valid:
            console.print(f"[bold green]v[/bold green] {result.format_report()}")
        else:
            console.print(f"[bold red]x[/bold red] {result.format_report()}")
            failures += 1

    if failures:
        console.print(f"\n[red]{failures} of {len(registry)} mapping(s) failed validation[/red]")
        return 1
    console.print(f"\n[green]All {len(registry)} mapping(s) valid[/green]")
    return 0


def cmd_call(args: argparse.Namespace) -> int:
    """Run one BrAPI call.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return asyncio.run(_async_call(args))


def cmd_clear_searches(args: argparse.Namespace) -> int:
    """Clear cached deferred searches.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return asyncio.run(_async_clear_searches(args))


# ============================================================================
# Entry point
# ============================================================================


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Parses command line arguments and dispatches to appropriate handler.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    parser = argparse.ArgumentParser(
        prog="brapi-mapper",
        description="BrAPI object mapping and query translation toolkit",
    )

    # Global options
    parser.add_argument(
        "--config",
        "-c",
        default=None,
        help="Path to brapi.toml (default: $BRAPI_CONFIG or ./brapi.toml)",
    )
    parser.add_argument(
        "--env-prefix",
        default="",
        help=(
            "Prefix for environment variable lookup "
            "(e.g., --env-prefix APP_ reads APP_BRAPI_CONFIG)"
        ),
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        help="Logging level (default: WARNING)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # mappings command
    p_mappings = subparsers.add_parser("mappings", help="List datatype mappings")
    p_mappings.set_defaults(func=cmd_mappings)

    # calls command
    p_calls = subparsers.add_parser("calls", help="List enabled calls per version")
    p_calls.set_defaults(func=cmd_calls)

    # validate command
    p_validate = subparsers.add_parser(
        "validate",
        help="Validate mappings against BrAPI definitions",
    )
    p_validate.set_defaults(func=cmd_validate)

    # call command
    p_call = subparsers.add_parser("call", help="Run one call and print the JSON response")
    p_call.add_argument("method", help="HTTP method (GET, POST, PUT, DELETE)")
    p_call.add_argument("path", help="Call path, e.g. /brapi/v2/germplasm/12")
    p_call.add_argument(
        "--query",
        "-q",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Query parameter (repeatable)",
    )
    p_call.add_argument(
        "--body",
        "-b",
        default=None,
        help="JSON body, or @file.json to read it from a file",
    )
    p_call.add_argument(
        "--role",
        "-r",
        action="append",
        default=[],
        help="Caller role (repeatable, default: anonymous)",
    )
    p_call.add_argument(
        "--wait",
        action="store_true",
        help="For deferred searches, poll the result after running the search",
    )
    p_call.set_defaults(func=cmd_call)

    # clear-searches command
    p_clear = subparsers.add_parser(
        "clear-searches",
        help="Forget every cached deferred search",
    )
    p_clear.set_defaults(func=cmd_clear_searches)

    args = parser.parse_args(argv)
    _setup_logging(args.log_level)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
