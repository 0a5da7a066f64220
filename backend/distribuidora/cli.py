# Overview: Flask CLI command groups for bootstrap, inspection, and cash/stock operations.

# backend/distribuidora/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to distribuidora (PowerShell: $env:FLASK_APP="distribuidora").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init [--admin-password "..."]
#   Idempotent: creates tables, the primary warehouse and the admin user.
#
# Users:
# - python -m flask users create --username cajero --password "..." --role cashier
#
# Cash sessions:
# - python -m flask cash open --warehouse-id 1 --amount 100
# - python -m flask cash status --warehouse-id 1
# - python -m flask cash preview --warehouse-id 1 [--counted 250]
#
# Inventory:
# - python -m flask inventory move --product-id 1 --warehouse-id 1 --type IN --quantity 10
# - python -m flask inventory transfer --product-id 1 --from 1 --to 2 --quantity 5
# - python -m flask inventory levels [--warehouse-id 1]

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import LedgerError
from .extensions import db
from .models import User, Warehouse
from .models.auth import ROLE_ADMIN, ROLES
from .models.inventory import MOVEMENT_TYPES
from .services import cash_service, inventory_service, reconciliation_service, transfer_service
from .services.auth_service import create_user


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@click.option('--warehouse-name', default='Bodega Principal', help='Primary warehouse name')
@click.option('--admin-username', default='admin', help='Admin username')
@click.option('--admin-password', default='admin123', help='Admin password')
@with_appcontext
def init_system(warehouse_name, admin_username, admin_password):
    """
    Create tables, the primary warehouse and an admin user.

    SECURITY: Change the admin password immediately in production!
    """
    click.echo("START Initializing system...")
    db.create_all()

    code = current_app.config.get("PRIMARY_WAREHOUSE_CODE", "PRINCIPAL")
    warehouse = db.session.query(Warehouse).filter_by(code=code).first()
    if not warehouse:
        warehouse = Warehouse(code=code, name=warehouse_name, is_primary=True)
        db.session.add(warehouse)
        db.session.commit()
        click.echo(f"PASS Created primary warehouse: {warehouse.name} (ID: {warehouse.id}, Code: {code})")
    else:
        click.echo(f"PASS Using existing warehouse: {warehouse.name} (ID: {warehouse.id})")

    if db.session.query(User).filter_by(username=admin_username).first():
        click.echo(f"WARN  User '{admin_username}' already exists, skipping...")
    else:
        try:
            create_user(admin_username, admin_password, role=ROLE_ADMIN, name="Administrador")
            click.echo(f"PASS Created user: {admin_username} with role '{ROLE_ADMIN}'")
        except LedgerError as e:
            click.echo(f"FAIL Failed to create user '{admin_username}': {e.message}")

    click.echo("DONE System initialized")


@click.group('users')
def users_group():
    """User commands."""


@users_group.command('create')
@click.option('--username', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--role', type=click.Choice(ROLES), default='cashier', show_default=True)
@click.option('--name', default=None)
@with_appcontext
def create_user_command(username, password, role, name):
    try:
        user = create_user(username, password, role=role, name=name)
    except LedgerError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created user: {user.username} (ID: {user.id}) with role '{user.role}'")


@users_group.command('list')
@with_appcontext
def list_users():
    for user in db.session.query(User).order_by(User.id).all():
        status = "active" if user.is_active else "inactive"
        click.echo(f"{user.id:>4}  {user.username:<20} {user.role:<10} {status}")


@click.group('cash')
def cash_group():
    """Cash session commands."""


@cash_group.command('open')
@click.option('--warehouse-id', type=int, required=True)
@click.option('--amount', default='0', help='Opening amount')
@with_appcontext
def open_cash(warehouse_id, amount):
    try:
        session = cash_service.open_session(warehouse_id=warehouse_id, opening_amount=amount)
    except LedgerError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Opened cash session {session.id} with {session.opening_amount}")


@cash_group.command('status')
@click.option('--warehouse-id', type=int, required=True)
@with_appcontext
def cash_status(warehouse_id):
    session = cash_service.get_open_session(warehouse_id)
    if session is None:
        click.echo("No open cash session")
        return
    totals = cash_service.drawer_totals(session)
    click.echo(f"Session {session.id} opened at {session.opened_at:%Y-%m-%d %H:%M} UTC")
    for key, value in totals.items():
        click.echo(f"  {key:<10} {value}")


@cash_group.command('preview')
@click.option('--warehouse-id', type=int, required=True)
@click.option('--counted', default=None, help='Counted cash, to compute the difference')
@with_appcontext
def cash_preview(warehouse_id, counted):
    try:
        summary = reconciliation_service.preview_session(warehouse_id, counted=counted)
    except LedgerError as e:
        raise click.ClickException(e.message)
    for key, value in summary.to_dict().items():
        click.echo(f"  {key:<24} {value}")


@click.group('inventory')
def inventory_group():
    """Stock commands."""


@inventory_group.command('move')
@click.option('--product-id', type=int, required=True)
@click.option('--warehouse-id', type=int, required=True)
@click.option('--type', 'movement_type', type=click.Choice(MOVEMENT_TYPES), required=True)
@click.option('--quantity', required=True)
@click.option('--note', default=None)
@with_appcontext
def move_stock(product_id, warehouse_id, movement_type, quantity, note):
    try:
        movement = inventory_service.apply_movement(
            product_id=product_id,
            warehouse_id=warehouse_id,
            quantity=quantity,
            type=movement_type,
            note=note,
        )
    except LedgerError as e:
        raise click.ClickException(e.message)
    on_hand = inventory_service.get_on_hand(product_id, warehouse_id)
    click.echo(f"PASS Movement {movement.id} ({movement.type} {movement.quantity}); on hand: {on_hand}")


@inventory_group.command('transfer')
@click.option('--product-id', type=int, required=True)
@click.option('--from', 'from_warehouse_id', type=int, required=True)
@click.option('--to', 'to_warehouse_id', type=int, required=True)
@click.option('--quantity', required=True)
@with_appcontext
def transfer_stock(product_id, from_warehouse_id, to_warehouse_id, quantity):
    try:
        movement = transfer_service.transfer_stock(
            product_id=product_id,
            from_warehouse_id=from_warehouse_id,
            to_warehouse_id=to_warehouse_id,
            quantity=quantity,
        )
    except LedgerError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Transfer {movement.reference_id}")


@inventory_group.command('levels')
@click.option('--warehouse-id', type=int, default=None)
@with_appcontext
def stock_levels(warehouse_id):
    for level in inventory_service.get_stock_levels(warehouse_id=warehouse_id):
        flag = " LOW" if level.is_low else ""
        click.echo(
            f"{level.warehouse_id:>4} {level.product_id:>6}  on_hand={level.on_hand:<8} min={level.min_stock}{flag}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(cash_group)
    app.cli.add_command(inventory_group)
