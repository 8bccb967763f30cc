# Overview: Flask CLI command groups for bootstrap, permission inspection, and stock corrections.

# backend/pharmapos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (use `flask db upgrade` for migration-managed databases).
# - python -m flask system seed-demo [--force]
#   Idempotent demo data: one branch, one user per role, a few products and a customer.
#
# Permission inspection:
# - python -m flask perms list CASHIER
#   List every resource and action a role is granted, with conditions.
# - python -m flask perms check CASHIER settings manage [--user-branch 1 --target-branch 2 --own]
#   Evaluate one permission check and print the decision.
#
# Stock corrections:
# - python -m flask stock apply --product-id 3 --type ADJUSTMENT --quantity 40 --reason "Shelf count"
#   Apply one movement through the inventory ledger.

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import PosError
from .extensions import db
from .models import Branch, Customer, Product, StockMovement, User
from .permissions import Role
from .services.inventory_service import apply_movement
from .services.unit_of_work import request_unit_of_work
from .validation import StockMovementRequest


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db_cli():
    """Create all tables."""
    db.create_all()
    click.echo("PASS Tables created")


DEMO_USERS = [
    ("owner", Role.PRODUCT_OWNER, False),
    ("superadmin", Role.SUPER_ADMIN, True),
    ("manager", Role.MANAGER, True),
    ("pharmacist", Role.PHARMACIST, True),
    ("cashier", Role.CASHIER, True),
]

# name, barcode, cost, selling, stock, min_stock, requires_prescription
DEMO_PRODUCTS = [
    ("Paracetamol 500mg", "8901000000011", 5000, 8500, 120, 20, False),
    ("Amoxicillin 250mg", "8901000000028", 12000, 18000, 40, 10, True),
    ("Vitamin C 1000mg", "8901000000035", 9000, 15000, 8, 10, False),
]


@system_group.command('seed-demo')
@click.option('--force', is_flag=True, help='Seed even when DEMO_SEED_ENABLED is false')
@with_appcontext
def seed_demo_cli(force):
    """Create demo branch, users, products and a customer (idempotent)."""
    if not current_app.config.get("DEMO_SEED_ENABLED") and not force:
        click.echo("FAIL DEMO_SEED_ENABLED is false. Set it or pass --force.")
        return

    branch = db.session.query(Branch).filter_by(code="MAIN").first()
    if not branch:
        branch = Branch(name="Main Branch", code="MAIN", address="1 High Street")
        db.session.add(branch)
        db.session.flush()
        click.echo(f"PASS Created branch: {branch.name} (ID: {branch.id})")
    else:
        click.echo(f"PASS Using existing branch: {branch.name} (ID: {branch.id})")

    for username, role, branch_bound in DEMO_USERS:
        if db.session.query(User).filter_by(username=username).first():
            click.echo(f"WARN  User '{username}' already exists, skipping...")
            continue
        user = User(
            username=username,
            full_name=username.title(),
            role=role,
            branch_id=branch.id if branch_bound else None,
        )
        db.session.add(user)
        db.session.flush()
        click.echo(f"PASS Created user: {username} (ID: {user.id}) with role {role}")

    for name, barcode, cost, selling, stock, min_stock, rx in DEMO_PRODUCTS:
        if db.session.query(Product).filter_by(branch_id=branch.id, barcode=barcode).first():
            continue
        product = Product(
            branch_id=branch.id,
            name=name,
            barcode=barcode,
            cost_price_cents=cost,
            selling_price_cents=selling,
            stock=0,
            min_stock=min_stock,
            requires_prescription=rx,
        )
        db.session.add(product)
        db.session.flush()
        # Opening stock goes through the ledger so history replays to the current level
        db.session.add(StockMovement(
            product_id=product.id,
            branch_id=branch.id,
            type="IN",
            quantity=stock,
            stock_before=0,
            stock_after=stock,
            reason="Opening stock",
        ))
        product.stock = stock
        click.echo(f"PASS Created product: {name} (ID: {product.id}, stock {stock})")

    if not db.session.query(Customer).filter_by(branch_id=branch.id, phone="0300-0000000").first():
        db.session.add(Customer(branch_id=branch.id, name="Walk-in Demo", phone="0300-0000000"))
        click.echo("PASS Created demo customer")

    db.session.commit()
    click.echo("DONE Demo data ready. Send X-User-Id with one of the user IDs above.")


@click.group('perms')
def perms_group():
    """Permission inspection commands."""


def _evaluator():
    return current_app.extensions["permission_evaluator"]


@perms_group.command('list')
@click.argument('role', type=click.Choice(Role.ALL, case_sensitive=False))
@with_appcontext
def list_permissions_cli(role):
    """List every resource and action a role is granted."""
    role = role.upper()
    evaluator = _evaluator()

    click.echo(f"\n{'='*80}")
    click.echo(f"Permissions for role: {role}")
    description = evaluator.role_description(role)
    if description:
        click.echo(description)
    click.echo(f"{'='*80}\n")

    click.echo(f"{'Resource':<22} {'Actions':<45} {'Conditions'}")
    click.echo("-"*80)

    resources = evaluator.accessible_resources(role)
    for resource in resources:
        permission = evaluator.table.permission_for(role, resource)
        conditions = permission.conditions
        flags = []
        if conditions.branch_scoped:
            flags.append("branch")
        if conditions.own_data_only:
            flags.append("own-data")
        if conditions.numeric_limit is not None:
            flags.append(f"limit={conditions.numeric_limit}")
        actions = ",".join(evaluator.allowed_actions(role, resource))
        click.echo(f"{resource:<22} {actions:<45} {' '.join(flags) or '-'}")

    click.echo(f"\n Total: {len(resources)} resources\n")


@perms_group.command('check')
@click.argument('role', type=click.Choice(Role.ALL, case_sensitive=False))
@click.argument('resource')
@click.argument('action')
@click.option('--user-branch', type=int, default=None, help='Caller branch ID')
@click.option('--target-branch', type=int, default=None, help='Branch the request touches')
@click.option('--own', is_flag=True, help='Target is the caller\'s own data')
@with_appcontext
def check_permission_cli(role, resource, action, user_branch, target_branch, own):
    """Evaluate a single permission check."""
    decision = _evaluator().evaluate(role.upper(), resource, action, user_branch, target_branch, own)
    if decision.allowed:
        limit = f" (limit {decision.numeric_limit})" if decision.numeric_limit is not None else ""
        click.echo(f"PASS {role.upper()} may {action} {resource}{limit}")
    else:
        click.echo(f"FAIL {role.upper()} may not {action} {resource}: {decision.reason}")


@click.group('stock')
def stock_group():
    """Stock correction commands."""


@stock_group.command('apply')
@click.option('--product-id', type=int, required=True, help='Product ID')
@click.option('--type', 'movement_type', type=click.Choice(StockMovement.TYPES, case_sensitive=False), required=True)
@click.option('--quantity', type=int, required=True)
@click.option('--reason', default=None, help='Free-text reason stored on the movement')
@click.option('--reference', default=None, help='External reference (delivery note, count sheet)')
@click.option('--actor-id', type=int, default=None, help='User ID recorded as actor')
@with_appcontext
def apply_stock_cli(product_id, movement_type, quantity, reason, reference, actor_id):
    """Apply one stock movement through the inventory ledger."""
    try:
        request = StockMovementRequest(
            product_id=product_id,
            type=movement_type.upper(),
            quantity=quantity,
            reason=reason,
            reference=reference,
        )
        new_stock = apply_movement(request_unit_of_work(), request, actor_id)
    except PosError as e:
        click.echo(f"FAIL {e.kind}: {e.message}")
        raise SystemExit(1)
    click.echo(f"PASS Product {product_id} stock is now {new_stock}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(perms_group)
    app.cli.add_command(stock_group)
