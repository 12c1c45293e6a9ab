# Overview: Flask CLI command groups for bootstrap, inspection and end-of-period reporting.

# backend/stockpos/cli.py
# Commands Legend (run from the backend directory):
# - Set FLASK_APP (PowerShell: $env:FLASK_APP="stockpos"; bash: export FLASK_APP=stockpos).
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init --admin-password "..."
#   Create tables if missing and make sure the admin account exists.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list
# - python -m flask users create --username cashier1 --password "..." --role user
#
# Stock:
# - python -m flask stock list [--low]
#
# Z-reports:
# - python -m flask zreports generate --operator admin
# - python -m flask zreports list

import click
from flask.cli import with_appcontext

from .extensions import db
from .services import auth_service, inventory_service, zreport_service
from .services.zreport_service import NoNewSalesError
from .validation import ValidationError, format_cents


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin-password', prompt=True, hide_input=True, confirmation_prompt=True,
              help='Password for the admin account (only used when it is created)')
@with_appcontext
def init_system(admin_password):
    """Idempotent bootstrap: create tables and the admin account."""
    db.create_all()
    try:
        user, created = auth_service.ensure_admin(admin_password)
    except ValidationError as e:
        raise click.ClickException(str(e))

    if created:
        click.echo(f"PASS Created admin account {user.get('username')!r}")
    else:
        click.echo(f"SKIP Admin account {user.get('username')!r} already exists")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('users')
def users_group():
    """User account commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(auth_service.ROLES)), default=auth_service.ROLE_USER,
              show_default=True, help='Role')
@with_appcontext
def create_user_cli(username, password, role):
    """Create a user account."""
    try:
        user = auth_service.create_user(username, password, role=role)
    except ValidationError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created {role} {user.get('username')!r} (id={user.id})")


@users_group.command('list')
@with_appcontext
def list_users_cli():
    """List all user accounts."""
    users = auth_service.list_users()
    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 70)
    click.echo(f"{'ID':<34} {'Username':<24} {'Role'}")
    click.echo("=" * 70)
    for user in users:
        click.echo(f"{user.id:<34} {user.get('username'):<24} {user.get('role')}")
    click.echo("=" * 70 + "\n")


@click.group('stock')
def stock_group():
    """Stock inspection commands."""


@stock_group.command('list')
@click.option('--low', 'low_only', is_flag=True, help='Only items below their notify threshold')
@with_appcontext
def list_stock_cli(low_only):
    """List stock items sorted by name."""
    items = inventory_service.low_stock_items() if low_only else inventory_service.list_stock()
    if not items:
        click.echo("No stock items found.")
        return

    click.echo("\n" + "=" * 80)
    click.echo(f"{'Name':<30} {'Category':<20} {'Qty':>6} {'Price':>12}  Low")
    click.echo("=" * 80)
    for item in items:
        row = inventory_service.serialize_item(item)
        low = "!" if row["is_low_stock"] else ""
        click.echo(f"{row['name']:<30} {row['category']:<20} {row['quantity']:>6} {row['price']:>12}  {low}")
    click.echo("=" * 80 + "\n")


@click.group('zreports')
def zreports_group():
    """End-of-period Z-report commands."""


@zreports_group.command('generate')
@click.option('--operator', default=auth_service.DEFAULT_ADMIN_USERNAME, show_default=True,
              help='Operator recorded as the report generator')
@with_appcontext
def generate_zreport_cli(operator):
    """Fold all pending sales into a new Z-report."""
    try:
        result = zreport_service.generate_zreport(operator)
    except NoNewSalesError as e:
        click.echo(f"SKIP {e}")
        return
    click.echo(
        f"PASS Z-report {result.report.id} generated with {result.sales_count} sales, "
        f"total {format_cents(result.total_sales_cents)}"
    )


@zreports_group.command('list')
@with_appcontext
def list_zreports_cli():
    """List Z-reports, most recent first."""
    summary = zreport_service.zreport_summary()
    if not summary["zreports"]:
        click.echo("No Z-reports available.")
        return

    click.echo("\n" + "=" * 80)
    click.echo(f"{'ID':<34} {'Generated':<22} {'By':<12} {'Sales':>5} {'Total':>12}")
    click.echo("=" * 80)
    for report in summary["zreports"]:
        click.echo(
            f"{report['id']:<34} {report['generated_at']:<22} {str(report['generated_by']):<12} "
            f"{report['sales_count']:>5} {report['total_sales']:>12}"
        )
    click.echo("=" * 80)
    click.echo(f"Total Z-Report Sales: {summary['total']}\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(zreports_group)
