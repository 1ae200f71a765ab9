"""Main entry point for the marketgraph CLI.

Sets up the Typer CLI application, builds the client from configuration
(Composition Root), defines CLI commands, and renders results with the
rich console display.
"""

import asyncio
import logging
from typing import Any, Coroutine, Dict, List, Optional

import typer
from typing_extensions import Annotated

# --- Core Layer ---
from marketgraph.core.client import MarketplaceClient
from marketgraph.core.query_builder import LIMIT_PREFIX
# --- Domain Layer ---
from marketgraph.domain.errors import MarketplaceError
from marketgraph.domain.interfaces.user_interface import UserInterface
# --- Infrastructure Layer ---
from marketgraph.infrastructure.auth.token_store import FileTokenStore, MemoryTokenStore
from marketgraph.infrastructure.cli.display import ConsoleDisplay
from marketgraph.infrastructure.config.settings import (
    get_api_version,
    get_backoff_policy,
    get_base_url,
    get_client_id,
    get_client_secret,
    get_config,
    get_http_timeout,
    get_limiter_profile,
    get_token_store_path,
    load_configuration,
)
from marketgraph.infrastructure.monitoring.logger_setup import parse_log_level, setup_logging
from marketgraph.infrastructure.resilience.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

# --- Dependency Injection (Manual) ---

_dependencies: Dict[str, Any] = {}


def create_client() -> MarketplaceClient:
    """Builds a MarketplaceClient from configuration.

    Raises:
        ValueError: If no client ID is configured.
    """
    client_id = get_client_id()
    if not client_id:
        raise ValueError("No client ID configured. Set MARKETGRAPH_CLIENT_ID or 'client_id' in config.yaml.")

    token_path = get_token_store_path()
    token_store = FileTokenStore(token_path) if token_path else MemoryTokenStore()
    profile = get_limiter_profile()
    logger.info(f"Creating client (limiter profile={profile}, token store={'file' if token_path else 'memory'}).")
    return MarketplaceClient(
        client_id=client_id,
        client_secret=get_client_secret(),
        token_store=token_store,
        rate_limiter=RateLimiter.for_profile(profile),
        backoff_policy=get_backoff_policy(),
        base_url=get_base_url(),
        version=get_api_version(),
        http_timeout=get_http_timeout(),
    )


def create_dependencies() -> Dict[str, Any]:
    """Loads configuration, configures logging and creates the display.

    The client itself is created per command by `create_client`, because it
    owns an event loop bound resource (the HTTP connection pool).
    """
    load_configuration()
    log_level = parse_log_level(get_config('logging.level'))
    log_file = get_config('logging.file')
    log_format = get_config('logging.format', '%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    setup_logging(log_level=log_level, log_file=log_file, log_format=log_format)
    return {'ui': ConsoleDisplay()}


def get_dependencies() -> Dict[str, Any]:
    if not _dependencies:
        _dependencies.update(create_dependencies())
    return _dependencies


def get_ui() -> UserInterface:
    return get_dependencies()['ui']


# --- Typer App Definition ---
app = typer.Typer(
    name="marketgraph",
    help="marketgraph: query a marketplace integration API and print resource graphs.",
    add_completion=False,
)


# --- Helpers ---

def run_async(coro: Coroutine[Any, Any, None]) -> None:
    """Runs a command coroutine; client errors are displayed and exit with code 1."""
    try:
        asyncio.run(coro)
    except (MarketplaceError, ValueError) as e:
        logger.debug(f"Command failed: {type(e).__name__}: {e}")
        get_ui().display_error(f"{type(e).__name__}: {e}")
        raise typer.Exit(code=1)


def _api_name(name: str) -> str:
    return name.replace("-", "_")


INTEGER_PARAMS = ("page", "perPage")


def _coerce_param(key: str, value: str) -> Any:
    # Pagination and relationship limits must reach the query builder as ints.
    if key in INTEGER_PARAMS or key.startswith(LIMIT_PREFIX):
        try:
            return int(value)
        except ValueError:
            return value
    return value


def _parse_pairs(values: Optional[List[str]], option: str) -> Dict[str, str]:
    """['a=1', 'b=2'] -> {'a': '1', 'b': '2'}."""
    pairs: Dict[str, str] = {}
    for item in values or []:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"Expected KEY=VALUE, got {item!r}", param_hint=option)
        pairs[key.strip()] = value
    return pairs


async def _show(api: str, resource_id: Optional[str], include: List[str], fields: Dict[str, str],
                depth: Optional[int]) -> None:
    params: Dict[str, Any] = {f"fields.{type_}": names for type_, names in fields.items()}
    if resource_id:
        params["id"] = resource_id
    if include:
        params["include"] = include
    async with create_client() as client:
        response = await client.api(_api_name(api)).show(params)
        result = client.denormalize(response, depth=depth)
    get_ui().display_json(result.to_dict()["data"], title=f"{api}.show")


async def _query(api: str, params: Dict[str, Any], depth: Optional[int]) -> None:
    async with create_client() as client:
        response = await client.api(_api_name(api)).query(params)
        result = client.denormalize(response, depth=depth)
    ui = get_ui()
    ui.display_json(result.to_dict()["data"], title=f"{api}.query ({result.kind.value})")
    ui.display_pagination(result.meta)


async def _auth_info() -> None:
    async with create_client() as client:
        info = await client.auth_info()
    get_ui().display_json(dict(info), title="Authentication")


async def _revoke() -> None:
    async with create_client() as client:
        await client.revoke()
    get_ui().display_info("Credential revoked.")


# --- CLI Commands ---

IncludeOption = Annotated[
    Optional[List[str]],
    typer.Option("--include", "-i", help="Relationship path to embed (repeatable), e.g. 'author.profileImage'."),
]
DepthOption = Annotated[
    Optional[int],
    typer.Option("--depth", "-d", min=0, help="Maximum relationship hops to embed (default 1)."),
]


@app.command()
def show(
    api: Annotated[str, typer.Argument(help="API name, e.g. 'listings' or 'users'.")],
    resource_id: Annotated[Optional[str], typer.Argument(metavar="ID", help="Resource ID.")] = None,
    include: IncludeOption = None,
    field: Annotated[
        Optional[List[str]],
        typer.Option("--field", "-f", help="Sparse fieldset TYPE=attr1,attr2 (repeatable)."),
    ] = None,
    depth: DepthOption = None,
):
    """Fetch one resource and print it with its included relationships."""
    fields = _parse_pairs(field, "--field")
    run_async(_show(api, resource_id, include or [], fields, depth))


@app.command()
def query(
    api: Annotated[str, typer.Argument(help="API name, e.g. 'listings' or 'transactions'.")],
    param: Annotated[
        Optional[List[str]],
        typer.Option("--param", "-p", help="Query parameter KEY=VALUE (repeatable)."),
    ] = None,
    page: Annotated[Optional[int], typer.Option("--page", help="Page number (default 1).")] = None,
    per_page: Annotated[Optional[int], typer.Option("--per-page", help="Page size, 1-100 (default 100).")] = None,
    include: IncludeOption = None,
    depth: DepthOption = None,
):
    """Query a resource list and print one page of results."""
    params: Dict[str, Any] = {
        key: _coerce_param(key, value) for key, value in _parse_pairs(param, "--param").items()
    }
    if page is not None:
        params["page"] = page
    if per_page is not None:
        params["perPage"] = per_page
    if include:
        params["include"] = include
    run_async(_query(api, params, depth))


@app.command(name="auth-info")
def auth_info_command():
    """Show the grant type and scopes of the stored credential."""
    run_async(_auth_info())


@app.command()
def revoke():
    """Revoke the stored credential."""
    run_async(_revoke())


@app.callback()
def main_callback():
    """Loads configuration and sets up logging before any command runs."""
    get_dependencies()


# --- Main Execution Guard ---

def cli_entry_point():
    """Function to be called by the script entry point in pyproject.toml."""
    app()


if __name__ == "__main__":
    cli_entry_point()
