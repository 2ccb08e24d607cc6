"""Solskin command-line interface.

Commands:
    solskin run                               Run the controller in the foreground.
    solskin status [--json]                   Query controller status via REST API.
    solskin evaluate FILE [--checks LIST]     Evaluate a JSON manifest offline.
    solskin version                           Print version and exit.

``status`` calls the REST API at http://localhost:8080 (configurable via
``--api-url``). ``evaluate`` exits 1 when the manifest would be suppressed.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

import click
import httpx

from solskin import __version__
from solskin.config import parse_checks
from solskin.models.compliance import ComplianceResult
from solskin.models.resources import ResourceKind, WatchedResource
from solskin.policy.evaluator import ComplianceEvaluator

_DEFAULT_API_URL = "http://localhost:8080"

_MODE_COLORS: dict[str, str] = {
    "none": "white",
    "log": "yellow",
    "suppress": "red",
}


def _styled_check(passed: bool) -> str:
    if passed:
        return click.style("PASS", fg="green", bold=True)
    return click.style("FAIL", fg="red", bold=True)


# ---------------------------------------------------------------------------
# HTTP helpers
# ---------------------------------------------------------------------------


def _get(api_url: str, path: str) -> dict[str, object]:
    """Perform a GET request and return the parsed JSON body.

    Raises click.ClickException on connection errors or non-2xx responses.
    """
    url = api_url.rstrip("/") + path
    try:
        with httpx.Client(timeout=30.0) as client:
            response = client.get(url)
        response.raise_for_status()
        return response.json()  # type: ignore[no-any-return]
    except httpx.ConnectError as err:
        raise click.ClickException(f"Cannot connect to Solskin API at {api_url}. Is the controller running?") from err
    except httpx.HTTPStatusError as exc:
        raise click.ClickException(_error_message(exc.response)) from exc


def _error_message(response: httpx.Response) -> str:
    try:
        data: dict[str, object] = response.json()
        return f"{data.get('error', 'ERROR')}: {data.get('detail', 'Unknown error')}"
    except ValueError:
        return f"HTTP {response.status_code}: {response.text[:200]}"


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.option(
    "--api-url",
    default=_DEFAULT_API_URL,
    envvar="SOLSKIN_API_URL",
    show_default=True,
    help="Solskin REST API base URL.",
)
@click.pass_context
def cli(ctx: click.Context, api_url: str) -> None:
    """Solskin: operability policy enforcement for Kubernetes workloads."""
    ctx.ensure_object(dict)
    ctx.obj["api_url"] = api_url


@cli.command("version")
def cmd_version() -> None:
    """Print the Solskin version and exit."""
    click.echo(f"solskin {__version__}")


@cli.command("run")
def cmd_run() -> None:
    """Run the controller until SIGINT or SIGTERM."""
    from solskin.app import main

    asyncio.run(main())


# ---------------------------------------------------------------------------
# solskin status
# ---------------------------------------------------------------------------


@cli.command("status")
@click.option(
    "--json",
    "output_json",
    is_flag=True,
    default=False,
    help="Print raw JSON response.",
)
@click.pass_context
def cmd_status(ctx: click.Context, output_json: bool) -> None:
    """Show the running controller's mode, checks, cache and queue."""
    data = _get(ctx.obj["api_url"], "/api/v1/status")

    if output_json:
        click.echo(json.dumps(data, indent=2))
        return

    _print_status(data)


def _print_status(data: dict[str, object]) -> None:
    mode = str(data.get("mode", "unknown"))
    click.echo(
        click.style("Solskin ", bold=True)
        + str(data.get("version", "?"))
        + "  mode: "
        + click.style(mode, fg=_MODE_COLORS.get(mode, "white"), bold=True)
    )
    cluster_id = data.get("cluster_id")
    if cluster_id:
        click.echo(f"  cluster:       {cluster_id}")
    checks: list[str] = data.get("enabled_checks", [])  # type: ignore[assignment]
    click.echo(f"  checks:        {', '.join(checks) if checks else '(none)'}")
    watchers: list[str] = data.get("watchers", [])  # type: ignore[assignment]
    click.echo(f"  watching:      {', '.join(watchers) if watchers else '(none)'}")
    click.echo(f"  cache entries: {data.get('state_cache_entries', 0)}")
    click.echo(f"  queue depth:   {data.get('queue_depth', 0)}")


# ---------------------------------------------------------------------------
# solskin evaluate
# ---------------------------------------------------------------------------


@cli.command("evaluate")
@click.argument("manifest", type=click.File("r"))
@click.option(
    "--checks",
    default="",
    metavar="LIST",
    help="Comma-separated checks to run. Omit for all checks.",
)
@click.option(
    "--json",
    "output_json",
    is_flag=True,
    default=False,
    help="Print the result as JSON.",
)
def cmd_evaluate(manifest: Any, checks: str, output_json: bool) -> None:
    """Evaluate a JSON workload manifest (``-`` for stdin) without a cluster.

    Exits 1 when the workload would be suppressed.
    """
    try:
        raw = json.load(manifest)
    except json.JSONDecodeError as exc:
        raise click.ClickException(f"manifest is not valid JSON: {exc}") from exc
    if not isinstance(raw, dict):
        raise click.ClickException("manifest must be a JSON object")

    try:
        kind = ResourceKind.from_api_kind(str(raw.get("kind", "")))
        selected = parse_checks(checks, source="--checks")
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc

    resource = WatchedResource.from_raw(kind, raw)
    result = ComplianceEvaluator(selected).evaluate_resource(resource)

    if output_json:
        click.echo(json.dumps(_result_dict(resource, result), indent=2))
    else:
        _print_result(resource, result)

    if result.suppress:
        raise SystemExit(1)


def _result_dict(resource: WatchedResource, result: ComplianceResult) -> dict[str, object]:
    return {
        "resource": resource.label,
        "checks": {check.value: passed for check, passed in result.checks.items()},
        "failing": [check.value for check in result.failing],
        "suppress": result.suppress,
    }


def _print_result(resource: WatchedResource, result: ComplianceResult) -> None:
    click.echo(click.style(resource.label, bold=True))
    for check, passed in result.checks.items():
        padding = max(0, 14 - len(check.value)) * " "
        click.echo(f"  {check.value}{padding} {_styled_check(passed)}")
    if result.suppress:
        click.echo(click.style("Would be suppressed.", fg="red"))
    else:
        click.echo(click.style("Compliant.", fg="green"))
