"""Flask CLI command tests."""

from distribuidora.models import User, Warehouse
from distribuidora.services import inventory_service


def test_system_init_is_idempotent(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=['system', 'init', '--admin-password', 'cambiame123'])
    assert result.exit_code == 0
    assert 'DONE System initialized' in result.output

    result = runner.invoke(args=['system', 'init', '--admin-password', 'cambiame123'])
    assert result.exit_code == 0
    assert 'already exists' in result.output

    assert db_session.query(Warehouse).filter_by(code='PRINCIPAL', is_primary=True).count() == 1
    assert db_session.query(User).filter_by(username='admin', role='admin').count() == 1


def test_inventory_move_and_cash_commands(app, db_session, product, warehouse):
    runner = app.test_cli_runner()

    result = runner.invoke(args=[
        'inventory', 'move',
        '--product-id', str(product.id),
        '--warehouse-id', str(warehouse.id),
        '--type', 'IN',
        '--quantity', '9',
    ])
    assert result.exit_code == 0
    assert 'on hand: 9' in result.output
    assert inventory_service.get_on_hand(product.id, warehouse.id) == 9

    result = runner.invoke(args=['cash', 'open', '--warehouse-id', str(warehouse.id), '--amount', '50'])
    assert result.exit_code == 0

    result = runner.invoke(args=['cash', 'open', '--warehouse-id', str(warehouse.id)])
    assert result.exit_code != 0
    assert 'already open' in result.output

    result = runner.invoke(args=['cash', 'preview', '--warehouse-id', str(warehouse.id), '--counted', '50'])
    assert result.exit_code == 0
    assert 'CUADRADO' in result.output


def test_inventory_move_rejects_overdraw(app, db_session, product, warehouse):
    runner = app.test_cli_runner()

    result = runner.invoke(args=[
        'inventory', 'move',
        '--product-id', str(product.id),
        '--warehouse-id', str(warehouse.id),
        '--type', 'OUT',
        '--quantity', '1',
    ])
    assert result.exit_code != 0
    assert 'Insufficient stock' in result.output
