"""CLI utilities and shared helpers."""

import ipaddress
from typing import Any

import click
from rich.console import Console

console = Console()


def validate_address(
    ctx: click.Context, param: click.Parameter, value: str
) -> str:
    """Validate that IP is a literal IPv4 or IPv6 address."""
    try:
        ipaddress.ip_address(value)
    except ValueError:
        raise click.BadParameter(f'unsupported address: "{value}"') from None
    return value


def validate_positive(
    ctx: click.Context, param: click.Parameter, value: str
) -> int:
    """Parse a strictly positive integer argument."""
    try:
        number = int(value, 10)
    except ValueError:
        number = 0
    if number <= 0:
        name = (param.name or "value").upper()
        raise click.BadParameter(f'unsupported value for {name}: "{value}"')
    return number


def run_async(coro: Any) -> Any:
    """Run an async coroutine in the current event loop or create one."""
    import asyncio

    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        # No running loop - normal CLI case
        return asyncio.run(coro)

    # Already in async context - shouldn't happen in CLI but handle it
    import nest_asyncio

    nest_asyncio.apply()
    return loop.run_until_complete(coro)
