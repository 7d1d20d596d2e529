import logging
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional

import typer
from rich.console import Console

from . import __version__
from .config import Settings, describe_profiles
from .errors import InvalidQuery, MissingMatchers, PromCliError
from .normalize import ResultKind, normalize_result, query_kind
from .prometheus import PrometheusClient
from .render import (
    Column,
    RenderTarget,
    format_json,
    format_key_values,
    format_table,
    matrix_columns,
    render,
    target_columns,
    vector_columns,
)
from .timeexpr import capture_now, parse_time_expression
from .util import setup_logging
from .validate import validate_range, validate_window

app = typer.Typer(add_completion=False, no_args_is_help=True, help="Prometheus CLI - Query Prometheus from terminal")
config_app = typer.Typer(add_completion=False, help="Show Prometheus server configuration")
app.add_typer(config_app, name="config")

err_console = Console(stderr=True, markup=False, highlight=False, emoji=False, soft_wrap=True)

logger = logging.getLogger(__name__)

LARGE_RESULT_SET_THRESHOLD = 1500

JSON_HELP = "Output as JSON"
START_HELP = "Start time (RFC3339 or relative: 1h, 30m, now)"
END_HELP = "End time (RFC3339 or relative: 1h, 30m, now)"


@dataclass
class State:
    config_path: Optional[Path] = None
    profile: Optional[str] = None


def build_client(settings: Settings) -> PrometheusClient:
    return PrometheusClient(
        base_url=settings.require_server(),
        timeout_seconds=settings.timeout_seconds,
        bearer_token=settings.bearer_token,
        basic_auth=settings.basic_auth,
    )


def _settings(ctx: typer.Context) -> Settings:
    state: State = ctx.obj or State()
    return Settings.load(state.config_path, state.profile)


def _out(text: str) -> None:
    # plain echo: rich would trim trailing padding on wide table lines
    typer.echo(text)


def _warn(text: str) -> None:
    err_console.print(f"Warning: {text}", style="yellow")


@contextmanager
def _errors() -> Iterator[None]:
    try:
        yield
    except PromCliError as e:
        err_console.print(f"Error: {e.message}", style="red")
        if e.hint:
            err_console.print("")
            err_console.print(e.hint)
        raise typer.Exit(e.exit_code) from e


def _eval_time(text: str, now: int) -> int:
    s = text.strip()
    if s.isascii() and s.isdigit():
        return int(s)
    return parse_time_expression(s, now).timestamp


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to config.toml"),
    profile: Optional[str] = typer.Option(None, "--profile", "-P", help="Profile from config.toml"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging on stderr"),
    version: bool = typer.Option(False, "--version", help="Show version"),
):
    if version:
        _out(f"prom-cli {__version__}")
        raise typer.Exit()

    setup_logging(verbose, err_console)
    ctx.obj = State(config_path=config, profile=profile)

    if ctx.invoked_subcommand is None:
        _out(ctx.get_help())
        raise typer.Exit()


@app.command()
def query(
    ctx: typer.Context,
    expression: str = typer.Argument(..., help="PromQL expression"),
    time: Optional[str] = typer.Option(None, "--time", "-t", help="Evaluation time (Unix, RFC3339 or relative)"),
    json_out: bool = typer.Option(False, "--json", "-j", help=JSON_HELP),
):
    """Execute an instant PromQL query."""
    now = capture_now()
    with _errors():
        if not expression.strip():
            raise InvalidQuery("PromQL expression must not be empty.")
        ts = _eval_time(time, now) if time else None
        client = build_client(_settings(ctx))
        data = client.query_instant(expression, ts)
        kind = query_kind(data)
        rows = normalize_result(data, kind)

    if json_out:
        _out(render(rows, RenderTarget.JSON))
    elif kind is ResultKind.SCALAR:
        _out(f"scalar: {rows[0].summary.value}")
    elif kind is ResultKind.STRING:
        _out(f'string: "{rows[0].summary.value}"')
    elif kind is ResultKind.MATRIX:
        _out(render(rows, RenderTarget.TABLE, matrix_columns()))
    else:
        _out(render(rows, RenderTarget.TABLE, vector_columns()))


@app.command("query-range")
def query_range(
    ctx: typer.Context,
    expression: str = typer.Argument(..., help="PromQL expression"),
    start: str = typer.Option(..., "--start", "-s", help=START_HELP),
    end: str = typer.Option(..., "--end", "-e", help=END_HELP),
    step: Optional[str] = typer.Option(None, "--step", "-p", help="Resolution step in seconds"),
    json_out: bool = typer.Option(False, "--json", "-j", help="Output as JSON (includes all timestamps and values)"),
):
    """Execute a PromQL range query (table shows a summary, --json has every point)."""
    now = capture_now()
    with _errors():
        check = validate_range(expression, start, end, step, now=now)
        if check.warning:
            _warn(check.warning)
        params = check.params
        logger.debug("range query %s", params)
        client = build_client(_settings(ctx))
        rows = normalize_result(client.query_range(params), ResultKind.MATRIX)

    if json_out:
        _out(render(rows, RenderTarget.JSON))
        return

    if not rows:
        _out(render(rows, RenderTarget.TABLE, matrix_columns()))
        _out(f"Query: {expression}\nTime range: {start} to {end}")
        return

    total_points = sum(r.summary.points for r in rows if r.summary is not None)
    if total_points > LARGE_RESULT_SET_THRESHOLD:
        _warn(
            f"Large result set ({total_points} data points). "
            "Consider using a larger step or shorter time range."
        )

    _out(render(rows, RenderTarget.TABLE, matrix_columns()))
    _out(
        f"\nTime range: {start} to {end} (step: {params.step}s)\n"
        f"Total: {len(rows)} series, {total_points} data points"
    )


@app.command()
def labels(
    ctx: typer.Context,
    label_name: Optional[str] = typer.Argument(None, help="Label name to list values for"),
    start: Optional[str] = typer.Option(None, "--start", "-s", help=START_HELP),
    end: Optional[str] = typer.Option(None, "--end", "-e", help=END_HELP),
    json_out: bool = typer.Option(False, "--json", "-j", help=JSON_HELP),
):
    """List label names, or the values of one label."""
    now = capture_now()
    with _errors():
        window = validate_window(start, end, now=now)
        client = build_client(_settings(ctx))
        if label_name:
            rows = normalize_result(client.label_values(label_name, window), ResultKind.LABEL_VALUES)
        else:
            rows = normalize_result(client.label_names(window), ResultKind.LABEL_NAMES)

    if json_out:
        _out(render(rows, RenderTarget.JSON))
    elif label_name:
        _out(
            render(
                rows,
                RenderTarget.LIST,
                summary=f'Total: {{count}} values for "{label_name}"',
                empty=f'No values found for "{label_name}".',
            )
        )
    else:
        _out(render(rows, RenderTarget.LIST, summary="Total: {count} labels", empty="No labels found."))


@app.command()
def series(
    ctx: typer.Context,
    matchers: Optional[List[str]] = typer.Argument(None, help="Label matchers, e.g. 'up' or '{job=\"prometheus\"}'"),
    start: Optional[str] = typer.Option(None, "--start", "-s", help=START_HELP),
    end: Optional[str] = typer.Option(None, "--end", "-e", help=END_HELP),
    json_out: bool = typer.Option(False, "--json", "-j", help=JSON_HELP),
):
    """List time series matching label selectors."""
    now = capture_now()
    with _errors():
        if not matchers:
            raise MissingMatchers(
                "At least one label matcher is required.",
                hint=(
                    "Usage: prom series <matchers...> [options]\n"
                    "Example: prom series 'up'\n"
                    "Example: prom series '{job=\"prometheus\"}'"
                ),
            )
        window = validate_window(start, end, now=now)
        client = build_client(_settings(ctx))
        rows = normalize_result(client.series(matchers, window), ResultKind.SERIES)

    if json_out:
        _out(render(rows, RenderTarget.JSON))
    else:
        _out(render(rows, RenderTarget.LIST, summary="Total: {count} series", empty="No matching series found."))


@app.command()
def targets(
    ctx: typer.Context,
    json_out: bool = typer.Option(False, "--json", "-j", help=JSON_HELP),
):
    """List scrape targets."""
    now = capture_now()
    with _errors():
        client = build_client(_settings(ctx))
        rows = normalize_result(client.targets(), ResultKind.TARGETS)

    if json_out:
        _out(render(rows, RenderTarget.JSON))
    else:
        _out(render(rows, RenderTarget.TABLE, target_columns(now)))


@app.command()
def status(
    ctx: typer.Context,
    json_out: bool = typer.Option(False, "--json", "-j", help=JSON_HELP),
):
    """Check server health, readiness and build info."""
    with _errors():
        settings = _settings(ctx)
        st = build_client(settings).status()

    if json_out:
        _out(format_json({"serverUrl": settings.server, **st}))
    else:
        pairs = [
            ("Server", settings.server or ""),
            ("Health", "healthy" if st["healthy"] else "unhealthy"),
            ("Ready", "ready" if st["ready"] else "not ready"),
        ]
        info = st.get("buildInfo")
        if info:
            pairs += [
                ("Version", str(info.get("version", ""))),
                ("Build Date", str(info.get("buildDate", ""))),
                ("Go Version", str(info.get("goVersion", ""))),
            ]
        _out(format_key_values(pairs))

    if not st["healthy"] or not st["ready"]:
        raise typer.Exit(2)


@config_app.command("show")
def config_show(ctx: typer.Context):
    """Show the effective configuration (secrets masked)."""
    with _errors():
        s = _settings(ctx)

    pairs = [
        ("Server", s.server or "(not set)"),
        ("Profile", s.profile or "(none)"),
        ("Auth", s.auth_type),
    ]
    if s.auth_type == "basic":
        pairs += [("Username", s.basic_user or ""), ("Password", "*" * 8)]
    elif s.auth_type == "bearer":
        pairs.append(("Token", "*" * 8 + "..."))
    pairs.append(("Timeout", f"{s.timeout_seconds:g}s"))
    _out(format_key_values(pairs))
    _out(f"\nConfig file: {s.config_path}")


@config_app.command("list")
def config_list(ctx: typer.Context):
    """List profiles defined in the config file."""
    with _errors():
        s = _settings(ctx)
        records = describe_profiles(s.config_path, s.profile)

    columns = [
        Column("", lambda r: r["active"]),
        Column("NAME", lambda r: r["name"]),
        Column("URL", lambda r: r["server"]),
        Column("AUTH TYPE", lambda r: r["auth"]),
    ]
    _out(format_table(columns, records, empty="No profiles configured."))
    if records:
        _out(f"\nActive: {s.profile or 'none'}\nTotal: {len(records)} profile{'' if len(records) == 1 else 's'}")
    else:
        _out(f"Add a [profiles.<name>] table to {s.config_path}")
