"""Flask CLI commands walking through the transactional demo scenarios."""

from __future__ import annotations

import logging
from collections.abc import Callable

import click
from flask import current_app
from flask.cli import with_appcontext

from transactor.core.extensions import db
from transactor.models import Guest, Product, User
from transactor.services import DemoService
from transactor.tx import BusinessError

LOGGER = logging.getLogger(__name__)


def _configure_logging(verbose: bool) -> None:
    """Raise logging verbosity for the transaction layer when requested."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.getLogger("transactor").setLevel(level)
    LOGGER.setLevel(level)


def _service() -> DemoService:
    db.create_all()
    return DemoService(db.session, config=current_app.config)


def _run_scenario(name: str, fn: Callable[[], BusinessError | None]) -> BusinessError | None:
    LOGGER.info("Executing demo", extra={"scenario": name})
    erk = fn()
    if erk is not None:
        LOGGER.error("Demo failed: %s", erk, extra={"scenario": name})
    else:
        LOGGER.info("Demo succeeded", extra={"scenario": name})
    return erk


def _echo_outcome(name: str, erk: BusinessError | None) -> None:
    if erk is None:
        click.echo(f"  {name.ljust(24)}  ok")
    else:
        click.echo(f"  {name.ljust(24)}  {erk.reason} ({erk.status_code}): {erk.message}")


@click.group("demo")
@click.option("--verbose", is_flag=True, help="Log begin/commit/rollback decisions.")
@click.pass_context
def demo_cli(ctx: click.Context, verbose: bool) -> None:
    """Demonstrations of business vs. infrastructure failure handling."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    _configure_logging(verbose)


@demo_cli.command("run")
@with_appcontext
def run_command() -> None:
    """Run the success, business-error, create and rollback scenarios."""
    service = _service()
    scenarios: list[tuple[str, Callable[[], BusinessError | None]]] = [
        ("success transaction", service.succeed),
        ("business error", service.fail_validation),
        ("database operations", lambda: service.create_user("Zhang San", 25)),
        ("transaction rollback", lambda: service.create_user_then_reject("Li Si", 30)),
    ]
    click.echo("Demo summary:")
    for name, fn in scenarios:
        _echo_outcome(name, _run_scenario(name, fn))
    click.echo(f"  users after run: {service.count(User)}")


@demo_cli.command("rollback")
@click.option("--name", default="Bob", show_default=True, help="Guest name to insert.")
@with_appcontext
def rollback_command(name: str) -> None:
    """Insert a guest, fail validation, and show that nothing was kept."""
    service = _service()
    erk = _run_scenario("guest rollback", lambda: service.create_guest_then_reject(name))
    _echo_outcome("guest rollback", erk)
    click.echo(f"  guests after rollback: {service.count(Guest)}")


@demo_cli.command("update")
@click.option("--price", default=5000, show_default=True, type=int)
@click.option("--new-price", default=4500, show_default=True, type=int)
@with_appcontext
def update_command(price: int, new_price: int) -> None:
    """Create a product and reprice it in a single transaction."""
    service = _service()
    erk = _run_scenario(
        "create and update",
        lambda: service.create_and_reprice_product("Laptop", price, new_price),
    )
    _echo_outcome("create and update", erk)
    if erk is not None:
        raise click.ClickException(str(erk))
    click.echo(f"  products: {service.count(Product)}")
