# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/bookstock/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Location registry:
# - python -m flask locations seed
#   Create the default locations (Librairie Al Ouloum, Librairie La Renaissance, Gros). Idempotent.
# - python -m flask locations list
#   List locations with their ids and codes.
# - python -m flask locations add --name "Librairie Centre" --code "centre" --kind library
#   Register an extra location.
#
# Catalog:
# - python -m flask products add --name "Le Petit Prince" --price 45.00 --reference "ISBN-978..."
#   Create a product.
# - python -m flask products list [--search prince]
#   List products with their catalog price.
#
# Movements:
# - python -m flask movements list [--location gros] [--role source] [--status pending]
#   List recent movements with item aggregates.
# - python -m flask movements reconcile
#   Scan every movement; exits 1 if any declared total differs from its items.

import click
from flask.cli import with_appcontext

from .extensions import db
from .money import format_money, parse_money
from .models.locations import LOCATION_KINDS, LOCATION_KIND_LIBRARY
from .services import catalog_service, location_service, movement_service
from .validation import MovementError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


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

    click.echo("PASS Database reset complete. Run 'python -m flask locations seed' to initialize.")


# =============================================================================
# LOCATION COMMANDS
# =============================================================================

@click.group('locations')
def locations_group():
    """Stock location registry commands."""


@locations_group.command('seed')
@with_appcontext
def seed_locations():
    """Create the default locations (skips existing codes)."""
    created = location_service.seed_default_locations()

    for location in created:
        click.echo(f"PASS Created location: {location.name} (ID: {location.id}, Code: {location.code})")

    if not created:
        click.echo("SKIP Default locations already exist")


@locations_group.command('list')
@with_appcontext
def list_locations_cli():
    """List all locations."""
    locations = location_service.list_locations()

    if not locations:
        click.echo("No locations found. Run 'flask locations seed' first.")
        return

    click.echo("\n" + "="*70)
    click.echo(f"{'ID':<5} {'Name':<35} {'Code':<15} {'Kind'}")
    click.echo("="*70)

    for location in locations:
        click.echo(f"{location.id:<5} {location.name:<35} {location.code:<15} {location.kind}")

    click.echo("="*70 + "\n")


@locations_group.command('add')
@click.option('--name', required=True, help='Location name')
@click.option('--code', required=True, help='Short code (unique, matched exactly)')
@click.option('--kind', type=click.Choice(LOCATION_KINDS), default=LOCATION_KIND_LIBRARY, show_default=True)
@with_appcontext
def add_location_cli(name, code, kind):
    """Register a new location."""
    try:
        location = location_service.create_location(name=name, code=code, kind=kind)
    except location_service.LocationError as exc:
        click.echo(f"FAIL {exc}")
        return

    click.echo(f"PASS Created location: {location.name} (ID: {location.id}, Code: {location.code})")


# =============================================================================
# CATALOG COMMANDS
# =============================================================================

@click.group('products')
def products_group():
    """Product catalog commands."""


@products_group.command('add')
@click.option('--name', required=True, help='Product name')
@click.option('--price', help='Catalog price, e.g. 45.00')
@click.option('--reference', help='Reference / ISBN (unique)')
@with_appcontext
def add_product_cli(name, price, reference):
    """Create a product."""
    try:
        amount = parse_money(price) if price is not None else None
    except ValueError as exc:
        click.echo(f"FAIL price: {exc}")
        return

    try:
        product = catalog_service.create_product(name=name, price=amount, reference=reference)
    except catalog_service.CatalogError as exc:
        click.echo(f"FAIL {exc}")
        return

    click.echo(f"PASS Created product: {product.name} (ID: {product.id}, Price: {format_money(product.price) or '-'})")


@products_group.command('list')
@click.option('--search', help='Filter by name or reference')
@click.option('--limit', type=int, default=50, show_default=True)
@with_appcontext
def list_products_cli(search, limit):
    """List products."""
    products = catalog_service.search_products(search, limit=limit)

    if not products:
        click.echo("No products found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<6} {'Name':<40} {'Reference':<20} {'Price'}")
    click.echo("="*80)

    for product in products:
        click.echo(
            f"{product.id:<6} {product.name[:40]:<40} {product.reference or '-':<20} "
            f"{format_money(product.price) or '-'}"
        )

    click.echo("="*80 + "\n")


# =============================================================================
# MOVEMENT COMMANDS
# =============================================================================

@click.group('movements')
def movements_group():
    """Inter-stock movement inspection commands."""


@movements_group.command('list')
@click.option('--location', help='Location code (or numeric id)')
@click.option('--role', type=click.Choice(movement_service.ROLES), default=movement_service.ROLE_ANY, show_default=True)
@click.option('--status', help='pending, confirmed or claimed')
@click.option('--limit', type=int, default=20, show_default=True)
@with_appcontext
def list_movements_cli(location, role, status, limit):
    """
    List recent movements.

    Example:
        flask movements list
        flask movements list --location gros --role source
        flask movements list --location al-ouloum --role destination --status pending
    """
    ref = location
    if ref is not None and ref.isascii() and ref.isdigit():
        ref = int(ref)

    try:
        rows = movement_service.list_movements(location=ref, role=role, status=status, limit=limit)
    except MovementError as exc:
        click.echo(f"FAIL {exc.message}")
        return

    if not rows:
        click.echo("No movements found.")
        return

    click.echo("\n" + "="*110)
    click.echo(
        f"{'ID':<5} {'Number':<16} {'From':<25} {'To':<25} {'Status':<10} {'Items':<6} {'Total':>12}"
    )
    click.echo("="*110)

    for row in rows:
        flag = "" if row.get("reconciled", True) else "  MISMATCH"
        click.echo(
            f"{row['id']:<5} {row['movement_number']:<16} "
            f"{(row['source_location_name'] or '-')[:25]:<25} "
            f"{(row['destination_location_name'] or '-')[:25]:<25} "
            f"{row['status']:<10} {row['item_count']:<6} {row['total_amount']:>12}{flag}"
        )

    click.echo("="*110 + "\n")


@movements_group.command('reconcile')
@with_appcontext
def reconcile_movements_cli():
    """
    Verify every movement total equals the sum of its item totals.

    Exits with status 1 when a mismatch is found.
    """
    mismatches = movement_service.find_reconciliation_mismatches()

    if not mismatches:
        click.echo("PASS All movement totals reconcile")
        return

    for mismatch in mismatches:
        click.echo(
            f"FAIL {mismatch['movement_number']} (ID: {mismatch['movement_id']}): "
            f"declared {mismatch['declared_total']}, items {mismatch['computed_total']}, "
            f"difference {mismatch['difference']}"
        )

    click.echo(f"\n{len(mismatches)} movement(s) do not reconcile")
    click.get_current_context().exit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(locations_group)
    app.cli.add_command(products_group)
    app.cli.add_command(movements_group)
