"""reposeek credits commands - inspect and seed credit balances."""

import json

import click

from reposeek.cli.utils import load_cli_config, open_database
from reposeek.core.errors import CreditError
from reposeek.pipeline.credits import CreditLedger


@click.group()
def credits_command() -> None:
    """Inspect or grant user credits."""


@credits_command.command("show")
@click.argument("user_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def show_command(ctx: click.Context, user_id: str, as_json: bool) -> None:
    """Show the balance and recent ledger movements of USER_ID."""
    db = open_database(load_cli_config(ctx))
    try:
        ledger = CreditLedger(db)
        try:
            balance = ledger.balance(user_id)
        except CreditError as e:
            raise click.ClickException(e.message) from e
        history = ledger.history(user_id, limit=10)
    finally:
        db.dispose()

    if as_json:
        click.echo(
            json.dumps(
                {
                    "userId": user_id,
                    "credits": balance,
                    "history": [
                        {
                            "amount": t.amount,
                            "reason": t.reason,
                            "projectId": t.project_id,
                            "createdAt": t.created_at.isoformat(),
                        }
                        for t in history
                    ],
                }
            )
        )
        return

    click.echo(f"User: {user_id}")
    click.echo(f"Credits: {balance}")
    if history:
        click.echo("Recent movements:")
        for t in history:
            target = f" ({t.project_id})" if t.project_id else ""
            click.echo(f"  {t.created_at:%Y-%m-%d %H:%M}  {t.amount:+d}  {t.reason}{target}")


@credits_command.command("grant")
@click.argument("user_id")
@click.argument("amount", type=click.IntRange(min=1))
@click.option("--create-user", is_flag=True, help="Create the user if it does not exist")
@click.pass_context
def grant_command(ctx: click.Context, user_id: str, amount: int, create_user: bool) -> None:
    """Add AMOUNT credits to USER_ID."""
    db = open_database(load_cli_config(ctx))
    try:
        try:
            balance = CreditLedger(db).grant(user_id, amount, create_user=create_user)
        except CreditError as e:
            raise click.ClickException(f"{e.message} (use --create-user to create it)") from e
    finally:
        db.dispose()
    click.echo(f"Granted {amount} credits to {user_id}. Balance: {balance}")
