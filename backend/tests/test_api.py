"""
HTTP API tests: authentication, error mapping and the main flows through
the Flask test client.
"""

from conftest import PASSWORD, auth_headers, get_auth_token, stock


def test_health_is_public(client, db_session, warehouse, admin):
    response = client.get('/health')
    assert response.status_code == 200
    assert response.json['status'] == 'healthy'


def test_health_degraded_without_setup(client, db_session):
    response = client.get('/health')
    assert response.status_code == 200
    assert response.json['status'] == 'degraded'


def test_login_returns_token(client, db_session, cashier):
    response = client.post('/api/auth/login', json={'username': 'cajero', 'password': PASSWORD})

    assert response.status_code == 200
    assert response.json['token']
    assert response.json['user']['username'] == 'cajero'
    assert response.json['expires_at'].endswith('Z')


def test_login_with_bad_password(client, db_session, cashier):
    response = client.post('/api/auth/login', json={'username': 'cajero', 'password': 'nope-nope'})
    assert response.status_code == 401
    assert response.json['error'] == 'Invalid credentials'


def test_protected_routes_require_token(client, db_session):
    assert client.get('/api/sales').status_code == 401
    assert client.get('/api/sales', headers=auth_headers('not-a-token')).status_code == 401


def test_logout_revokes_token(client, db_session, cashier):
    token = get_auth_token(client, 'cajero')
    headers = auth_headers(token)
    assert client.get('/api/auth/me', headers=headers).status_code == 200

    assert client.post('/api/auth/logout', headers=headers).status_code == 200
    assert client.get('/api/auth/me', headers=headers).status_code == 401


def test_inventory_movement_endpoint(client, db_session, cashier, product, warehouse):
    headers = auth_headers(get_auth_token(client, 'cajero'))

    response = client.post('/api/inventory/movements', headers=headers, json={
        'product_id': product.id,
        'warehouse_id': warehouse.id,
        'quantity': 12,
        'type': 'in',
    })
    assert response.status_code == 201
    assert response.json['on_hand'] == 12

    response = client.post('/api/inventory/movements', headers=headers, json={
        'product_id': product.id,
        'warehouse_id': warehouse.id,
        'quantity': 13,
        'type': 'OUT',
    })
    assert response.status_code == 409
    assert response.json['details']['shortfall'] == 1


def test_validation_and_not_found_are_mapped(client, db_session, cashier, product, warehouse):
    headers = auth_headers(get_auth_token(client, 'cajero'))

    response = client.post('/api/inventory/movements', headers=headers, json={
        'product_id': product.id,
        'warehouse_id': warehouse.id,
        'quantity': 0,
        'type': 'IN',
    })
    assert response.status_code == 400

    response = client.post('/api/inventory/movements', headers=headers, json={
        'product_id': 999999,
        'warehouse_id': warehouse.id,
        'quantity': 1,
        'type': 'IN',
    })
    assert response.status_code == 404


def test_transfer_endpoint(client, db_session, cashier, product, warehouse, branch):
    stock(product, warehouse, 10)
    headers = auth_headers(get_auth_token(client, 'cajero'))

    response = client.post('/api/inventory/transfer', headers=headers, json={
        'product_id': product.id,
        'from_warehouse_id': warehouse.id,
        'to_warehouse_id': branch.id,
        'quantity': 4,
    })
    assert response.status_code == 201
    assert response.json['reference_id']

    levels = client.get(f'/api/inventory/stock-levels?warehouse_id={branch.id}', headers=headers).json
    assert [level['on_hand'] for level in levels['stock_levels']] == [4]


def test_cash_sale_and_close_through_api(client, db_session, cashier, product, warehouse):
    stock(product, warehouse, 20)
    headers = auth_headers(get_auth_token(client, 'cajero'))

    response = client.post('/api/cash/open', headers=headers, json={
        'warehouse_id': warehouse.id,
        'opening_amount': '100.00',
    })
    assert response.status_code == 201

    response = client.post('/api/cash/open', headers=headers, json={'warehouse_id': warehouse.id})
    assert response.status_code == 409

    response = client.post('/api/sales', headers=headers, json={
        'warehouse_id': warehouse.id,
        'items': [{'product_id': product.id, 'quantity': 5}],
        'payment_method': 'efectivo',
    })
    assert response.status_code == 201
    assert response.json['sale']['total'] == '50.00'

    session = client.get(f'/api/cash/session?warehouse_id={warehouse.id}', headers=headers).json
    assert session['totals']['expected'] == '150.00'

    preview = client.get(f'/api/cash/preview?warehouse_id={warehouse.id}&counted=145', headers=headers).json
    assert preview['summary']['expected_cash'] == '150.00'
    assert preview['summary']['difference_status'] == 'FALTANTE'

    response = client.post('/api/cash/close', headers=headers, json={
        'warehouse_id': warehouse.id,
        'closing_amount': '150.00',
        'username': 'cajero',
        'password': PASSWORD,
    })
    assert response.status_code == 200
    assert response.json['summary']['difference_status'] == 'CUADRADO'
    assert response.json['session']['is_open'] is False

    closures = client.get('/api/cash/closures', headers=headers).json
    assert closures['total'] == 1


def test_close_with_wrong_password_is_401(client, db_session, cashier, warehouse):
    headers = auth_headers(get_auth_token(client, 'cajero'))
    client.post('/api/cash/open', headers=headers, json={'warehouse_id': warehouse.id})

    response = client.post('/api/cash/close', headers=headers, json={
        'warehouse_id': warehouse.id,
        'closing_amount': '0',
        'username': 'cajero',
        'password': 'wrong-password',
    })
    assert response.status_code == 401


def test_close_by_another_cashier_is_403(client, db_session, cashier, other_cashier, warehouse):
    headers = auth_headers(get_auth_token(client, 'cajero'))
    client.post('/api/cash/open', headers=headers, json={'warehouse_id': warehouse.id})

    response = client.post('/api/cash/close', headers=headers, json={
        'warehouse_id': warehouse.id,
        'closing_amount': '0',
        'username': 'cajera2',
        'password': PASSWORD,
    })
    assert response.status_code == 403


def test_sale_with_insufficient_stock_is_409(client, db_session, cashier, product, warehouse):
    headers = auth_headers(get_auth_token(client, 'cajero'))

    response = client.post('/api/sales', headers=headers, json={
        'warehouse_id': warehouse.id,
        'items': [{'product_id': product.id, 'quantity': 1}],
    })
    assert response.status_code == 409
    assert response.json['details']['requested'] == 1


def test_delete_sale_endpoint(client, db_session, cashier, product, warehouse):
    stock(product, warehouse, 5)
    headers = auth_headers(get_auth_token(client, 'cajero'))
    sale_id = client.post('/api/sales', headers=headers, json={
        'warehouse_id': warehouse.id,
        'items': [{'product_id': product.id, 'quantity': 5}],
    }).json['sale']['id']

    assert client.delete(f'/api/sales/{sale_id}', headers=headers).status_code == 200
    assert client.get(f'/api/sales/{sale_id}', headers=headers).status_code == 404


def test_order_flow_through_api(client, db_session, cashier, product, warehouse):
    stock(product, warehouse, 5)
    headers = auth_headers(get_auth_token(client, 'cajero'))

    response = client.post('/api/orders', headers=headers, json={
        'warehouse_id': warehouse.id,
        'customer_name': 'Don Pedro',
        'items': [{'product_id': product.id, 'quantity': 2}],
    })
    assert response.status_code == 201
    order_id = response.json['order']['id']

    response = client.post(f'/api/orders/{order_id}/pay', headers=headers, json={'payment_method': 'transferencia'})
    assert response.status_code == 200
    assert response.json['order']['status'] == 'PAID'

    assert client.delete(f'/api/orders/{order_id}', headers=headers).status_code == 409


def test_return_flow_through_api(client, db_session, cashier, admin, product, warehouse):
    stock(product, warehouse, 10)
    headers = auth_headers(get_auth_token(client, 'cajero'))
    client.post('/api/cash/open', headers=headers, json={'warehouse_id': warehouse.id, 'opening_amount': '100'})
    sale_id = client.post('/api/sales', headers=headers, json={
        'warehouse_id': warehouse.id,
        'items': [{'product_id': product.id, 'quantity': 4}],
    }).json['sale']['id']

    response = client.post('/api/returns', headers=headers, json={
        'warehouse_id': warehouse.id,
        'sale_id': sale_id,
        'product_id': product.id,
        'quantity': 4,
        'reason': 'Producto vencido',
    })
    assert response.status_code == 201
    return_id = response.json['return']['id']
    assert response.json['return']['total'] == '40.00'
    assert client.get(f'/api/sales/{sale_id}', headers=headers).json['sale']['status'] == 'RETURNED'

    session = client.get(f'/api/cash/session?warehouse_id={warehouse.id}', headers=headers).json
    assert session['totals']['expected'] == '100.00'

    summary = client.get('/api/returns/summary', headers=headers).json
    assert summary['total_amount'] == '40.00'

    assert client.delete(f'/api/returns/{return_id}', headers=headers).status_code == 403
    admin_headers = auth_headers(get_auth_token(client, 'admin'))
    assert client.delete(f'/api/returns/{return_id}', headers=admin_headers).status_code == 200
    assert client.get(f'/api/returns/{return_id}', headers=headers).status_code == 404


def test_return_requires_reason(client, db_session, cashier, product, warehouse):
    headers = auth_headers(get_auth_token(client, 'cajero'))

    response = client.post('/api/returns', headers=headers, json={
        'warehouse_id': warehouse.id,
        'product_id': product.id,
        'quantity': 1,
    })
    assert response.status_code == 400
