import unittest

from fastapi.testclient import TestClient

from seller_ledger.db import get_db, make_session_factory
from seller_ledger.main import app
from seller_ledger.models import SellerRole
from support import add_seller, make_engine


class LedgerApiTests(unittest.TestCase):
    def setUp(self) -> None:
        self.session_factory = make_session_factory(make_engine())

        def override_get_db():
            db = self.session_factory()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = override_get_db
        self.client = TestClient(app)

        with self.session_factory() as db:
            add_seller(db, 'seller1')
            add_seller(db, 'paused', active=False)
            add_seller(db, 'collector', role=SellerRole.COLLECTOR)
            db.commit()
        self.headers = {'x-forwarded-user': 'seller1'}

    def tearDown(self) -> None:
        app.dependency_overrides.clear()

    def _post(self, path: str, payload: dict, expected: int = 201) -> dict:
        response = self.client.post(path, json=payload, headers=self.headers)
        self.assertEqual(response.status_code, expected, response.text)
        return response.json()

    def _stock(self, quantity: int = 10, total: str = '5.00') -> tuple[int, int]:
        type_id = self._post('/supplies/types', {'name': 'Bubble Mailer'})['supply_type']['id']
        batch = self._post(
            '/supplies/batches',
            {'supply_type_id': type_id, 'quantity_purchased': quantity, 'total_cost': total, 'purchase_date': '2024-01-01'},
        )['batch']
        return type_id, batch['id']

    def test_health_needs_no_principal(self) -> None:
        self.assertEqual(self.client.get('/health').json(), {'status': 'ok'})

    def test_principal_header_is_required(self) -> None:
        self.assertEqual(self.client.get('/seller/sales').status_code, 401)
        self.assertEqual(self.client.get('/seller/sales', headers={'x-forwarded-user': 'nobody'}).status_code, 401)
        self.assertEqual(self.client.get('/seller/sales', headers={'x-forwarded-user': 'paused'}).status_code, 403)
        self.assertEqual(self.client.get('/seller/sales', headers={'x-forwarded-user': 'collector'}).status_code, 403)

    def test_sale_money_is_returned_as_strings(self) -> None:
        body = self._post(
            '/seller/sales',
            {
                'card_id': 7,
                'purchase_price': '5',
                'sale_price': '20',
                'shipping_charged': '4',
                'shipping_cost': '3',
                'platform_fees': '2',
                'supply_cost': '1.50',
            },
        )

        sale = body['sale']
        self.assertEqual(sale['total_revenue'], '24.00')
        self.assertEqual(sale['total_costs'], '11.50')
        self.assertEqual(sale['net_profit'], '12.50')
        self.assertEqual(sale['status'], 'listed')

        fetched = self.client.get(f"/seller/sales/{sale['id']}", headers=self.headers).json()['sale']
        self.assertEqual(fetched['net_profit'], '12.50')

    def test_ledger_errors_use_error_bodies(self) -> None:
        missing_card = self.client.post('/seller/sales', json={'sale_price': '3'}, headers=self.headers)
        self.assertEqual(missing_card.status_code, 400)
        self.assertEqual(missing_card.json(), {'error': 'card_id is required'})

        not_found = self.client.get('/seller/sales/999', headers=self.headers)
        self.assertEqual(not_found.status_code, 404)
        self.assertIn('error', not_found.json())

    def test_sold_sale_cannot_return_to_listed(self) -> None:
        sale_id = self._post('/seller/sales', {'card_id': 1, 'status': 'sold'})['sale']['id']

        response = self.client.put(f'/seller/sales/{sale_id}', json={'status': 'listed'}, headers=self.headers)

        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.client.get(f'/seller/sales/{sale_id}', headers=self.headers).json()['sale']['status'], 'sold')

    def test_order_allocation_flow(self) -> None:
        type_id, batch_id = self._stock(quantity=10, total='5.00')
        sale_ids = [self._post('/seller/sales', {'card_id': n, 'sale_price': '10'})['sale']['id'] for n in (1, 2)]

        order = self._post('/seller/orders', {'sale_ids': sale_ids})['order']
        self.assertEqual([sale['id'] for sale in order['sales']], sale_ids)

        allocated = self.client.post(
            f"/seller/orders/{order['id']}/allocate-supplies",
            json={'supplies': [{'supply_type_id': type_id, 'quantity': 3}]},
            headers=self.headers,
        )
        self.assertEqual(allocated.status_code, 200, allocated.text)
        order = allocated.json()['order']
        self.assertEqual(order['extra_supply_cost'], '1.50')
        self.assertEqual(order['total_supply_cost'], '1.50')
        self.assertEqual([sale['supply_cost'] for sale in order['sales']], ['0.75', '0.75'])
        self.assertEqual(len(order['supplies']), 1)
        self.assertEqual(order['supplies'][0]['supply_batch_id'], batch_id)

        again = self.client.post(
            f"/seller/orders/{order['id']}/allocate-supplies",
            json={'supplies': [{'supply_type_id': type_id, 'quantity': 1}]},
            headers=self.headers,
        )
        self.assertEqual(again.status_code, 409)
        self.assertIn('error', again.json())

        deleted = self.client.delete(f"/seller/orders/{order['id']}", headers=self.headers)
        self.assertEqual(deleted.status_code, 200)
        self.assertEqual(sorted(deleted.json()['unlinked_sale_ids']), sorted(sale_ids))

        batches = self.client.get('/supplies/batches', headers=self.headers).json()['batches']
        self.assertEqual(batches[0]['quantity_remaining'], 10)
        self.assertEqual(self.client.get(f"/seller/orders/{order['id']}", headers=self.headers).status_code, 404)

    def test_shortfall_leaves_inventory_unchanged(self) -> None:
        type_id, _ = self._stock(quantity=2, total='1.00')
        order_id = self._post('/seller/orders', {})['order']['id']

        response = self.client.post(
            f'/seller/orders/{order_id}/allocate-supplies',
            json={'supplies': [{'supply_type_id': type_id, 'quantity': 5}]},
            headers=self.headers,
        )

        self.assertEqual(response.status_code, 409)
        batches = self.client.get('/supplies/batches', headers=self.headers).json()['batches']
        self.assertEqual(batches[0]['quantity_remaining'], 2)
        order = self.client.get(f'/seller/orders/{order_id}', headers=self.headers).json()['order']
        self.assertEqual(order['supplies'], [])
        self.assertEqual(order['total_supply_cost'], '0.00')

    def test_shipping_config_cost_preview(self) -> None:
        type_id, _ = self._stock(quantity=4, total='1.00')
        config = self._post(
            '/supplies/shipping-configs',
            {'name': 'Mailer', 'items': [{'supply_type_id': type_id, 'quantity': 2}]},
        )['shipping_config']

        preview = self._post('/supplies/calculate-cost', {'shipping_config_id': config['id']}, expected=200)

        self.assertEqual(preview['total_cost'], '0.50')
        self.assertIsNone(preview['error'])
        self.assertEqual(preview['items'][0]['supply_type_name'], 'Bubble Mailer')

    def test_platform_fee_estimate(self) -> None:
        platform = self._post('/seller/platforms', {'name': 'eBay', 'fee_percentage': '13.25', 'fixed_fee': '0.30'})[
            'platform'
        ]

        estimate = self._post(
            f"/seller/platforms/{platform['id']}/fee-estimate",
            {'sale_price': '20.00', 'shipping_charged': '4.00'},
            expected=200,
        )

        self.assertEqual(estimate['platform_fees'], '3.48')

        duplicate = self.client.post('/seller/platforms', json={'name': 'eBay'}, headers=self.headers)
        self.assertEqual(duplicate.status_code, 409)


if __name__ == '__main__':
    unittest.main()
