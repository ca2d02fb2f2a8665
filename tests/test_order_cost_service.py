import unittest
from decimal import Decimal
from unittest.mock import patch

from sqlalchemy import select

from seller_ledger.db import transaction
from seller_ledger.errors import AlreadyAllocated, InsufficientInventory, ValidationError
from seller_ledger.models import OrderSupplyUsage, Sale, SaleOrder
from seller_ledger.services.order_cost_service import (
    allocate_extra_supplies,
    clear_extra_supplies,
    distribute_supply_cost,
    recompute_config_cost,
    split_evenly,
    unlink_all,
)
from seller_ledger.services.profit_service import profit_fields_for
from support import add_batch, add_config, add_sale, add_seller, add_supply_type, make_session


class SplitEvenlyTests(unittest.TestCase):
    def test_even_split(self) -> None:
        self.assertEqual(split_evenly(Decimal('4.50'), 3), [Decimal('1.50')] * 3)

    def test_leftover_cents_go_to_the_first_shares(self) -> None:
        shares = split_evenly(Decimal('1.00'), 3)

        self.assertEqual(shares, [Decimal('0.34'), Decimal('0.33'), Decimal('0.33')])
        self.assertEqual(sum(shares), Decimal('1.00'))

    def test_shares_always_add_back_to_total(self) -> None:
        for total in ('0.00', '0.01', '7.77', '123.45'):
            for count in range(1, 8):
                with self.subTest(total=total, count=count):
                    self.assertEqual(sum(split_evenly(Decimal(total), count)), Decimal(total))

    def test_no_sales_means_no_shares(self) -> None:
        self.assertEqual(split_evenly(Decimal('3.00'), 0), [])


class OrderCostServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session()
        self.seller = add_seller(self.db)
        self.uid = self.seller.id
        self.sleeve = add_supply_type(self.db, self.uid, 'Penny Sleeve')
        self.mailer = add_supply_type(self.db, self.uid, 'Bubble Mailer')
        self.sleeve_batch = add_batch(self.db, self.uid, self.sleeve.id, quantity=10, cost_per_unit='0.30')
        self.mailer_batch = add_batch(self.db, self.uid, self.mailer.id, quantity=100, cost_per_unit='0.50')

    def tearDown(self) -> None:
        self.db.close()

    def _order(self, **fields) -> SaleOrder:
        order = SaleOrder(user_id=self.uid, **fields)
        self.db.add(order)
        self.db.flush()
        return order

    def _linked_sale(self, order: SaleOrder, **fields) -> Sale:
        return add_sale(self.db, self.uid, order_id=order.id, **fields)

    def test_config_and_extra_cost_split_across_three_sales(self) -> None:
        # Config: 5 sleeves at 0.30 = 1.50. Extras: 6 mailers at 0.50 = 3.00.
        config = add_config(self.db, self.uid, 'Sleeves', [(self.sleeve.id, 5)])
        order = self._order(shipping_config_id=config.id)
        sales = [self._linked_sale(order, sale_price=Decimal('10.00')) for _ in range(3)]

        allocate_extra_supplies(self.db, order=order, requested=[{'supply_type_id': self.mailer.id, 'quantity': 6}])

        self.assertEqual(order.config_cost, Decimal('1.50'))
        self.assertEqual(order.extra_supply_cost, Decimal('3.00'))
        self.assertEqual(order.total_supply_cost, Decimal('4.50'))
        for sale in sales:
            self.assertEqual(sale.supply_cost, Decimal('1.50'))
            self.assertEqual(sale.net_profit, Decimal('8.50'))
            self.assertEqual(profit_fields_for(sale).net_profit, sale.net_profit)
        self.assertEqual(self.mailer_batch.quantity_remaining, 94)
        self.assertEqual(self.sleeve_batch.quantity_remaining, 10)

    def test_distribution_sum_matches_order_total(self) -> None:
        order = self._order()
        sales = [self._linked_sale(order) for _ in range(3)]

        allocate_extra_supplies(self.db, order=order, requested=[{'supply_type_id': self.mailer.id, 'quantity': 2}])

        self.assertEqual(order.total_supply_cost, Decimal('1.00'))
        self.assertEqual(sum(sale.supply_cost for sale in sales), Decimal('1.00'))

    def test_multi_type_request_fails_entirely_when_one_line_is_short(self) -> None:
        order = self._order()
        self._linked_sale(order)

        with self.assertRaises(InsufficientInventory):
            allocate_extra_supplies(
                self.db,
                order=order,
                requested=[
                    {'supply_type_id': self.mailer.id, 'quantity': 5},
                    {'supply_type_id': self.sleeve.id, 'quantity': 1000},
                ],
            )

        self.assertEqual(self.mailer_batch.quantity_remaining, 100)
        self.assertEqual(self.sleeve_batch.quantity_remaining, 10)
        usages = self.db.execute(select(OrderSupplyUsage).where(OrderSupplyUsage.order_id == order.id)).scalars().all()
        self.assertEqual(usages, [])

    def test_lines_of_one_request_do_not_double_count_stock(self) -> None:
        order = self._order()

        with self.assertRaises(InsufficientInventory):
            allocate_extra_supplies(
                self.db,
                order=order,
                requested=[
                    {'supply_type_id': self.sleeve.id, 'quantity': 6},
                    {'supply_type_id': self.sleeve.id, 'quantity': 6},
                ],
            )
        self.assertEqual(self.sleeve_batch.quantity_remaining, 10)

    def test_second_allocation_requires_clearing_first(self) -> None:
        order = self._order()
        allocate_extra_supplies(self.db, order=order, requested=[{'supply_type_id': self.mailer.id, 'quantity': 1}])

        with self.assertRaises(AlreadyAllocated):
            allocate_extra_supplies(self.db, order=order, requested=[{'supply_type_id': self.mailer.id, 'quantity': 1}])

    def test_empty_request_is_rejected(self) -> None:
        order = self._order()

        with self.assertRaises(ValidationError):
            allocate_extra_supplies(self.db, order=order, requested=[])

    def test_clear_returns_units_and_keeps_config_cost(self) -> None:
        config = add_config(self.db, self.uid, 'Sleeves', [(self.sleeve.id, 2)])
        order = self._order(shipping_config_id=config.id)
        sales = [self._linked_sale(order) for _ in range(2)]
        allocate_extra_supplies(self.db, order=order, requested=[{'supply_type_id': self.mailer.id, 'quantity': 4}])

        returned = clear_extra_supplies(self.db, order=order)

        self.assertEqual(returned, 4)
        self.assertEqual(self.mailer_batch.quantity_remaining, 100)
        self.assertEqual(order.total_supply_cost, Decimal('0.60'))
        self.assertEqual([sale.supply_cost for sale in sales], [Decimal('0.30'), Decimal('0.30')])
        with self.assertRaises(ValidationError):
            clear_extra_supplies(self.db, order=order)

    def test_order_without_sales_keeps_cost_parked(self) -> None:
        order = self._order()

        allocate_extra_supplies(self.db, order=order, requested=[{'supply_type_id': self.mailer.id, 'quantity': 3}])

        self.assertEqual(order.total_supply_cost, Decimal('1.50'))
        self.assertEqual(distribute_supply_cost(self.db, order=order), [])

        sale = self._linked_sale(order)
        distribute_supply_cost(self.db, order=order)
        self.assertEqual(sale.supply_cost, Decimal('1.50'))

    def test_recompute_without_config_uses_extras_only(self) -> None:
        order = self._order()
        sale = self._linked_sale(order)

        self.assertEqual(recompute_config_cost(self.db, order=order), Decimal('0.00'))
        self.assertEqual(sale.supply_cost, Decimal('0.00'))

    def test_unlink_all_resets_sales_and_restocks(self) -> None:
        self.mailer_batch.quantity_remaining = 10
        self.db.flush()
        order = self._order()
        sales = [
            self._linked_sale(
                order,
                purchase_price=Decimal('2.00'),
                sale_price=Decimal('10.00'),
                shipping_charged=Decimal('1.00'),
                shipping_cost=Decimal('0.75'),
                platform_fees=Decimal('1.20'),
            )
            for _ in range(2)
        ]
        allocate_extra_supplies(self.db, order=order, requested=[{'supply_type_id': self.mailer.id, 'quantity': 10}])
        self.assertTrue(self.mailer_batch.is_depleted)
        order_id = order.id

        unlink_all(self.db, order=order)

        self.assertEqual(self.mailer_batch.quantity_remaining, 10)
        self.assertFalse(self.mailer_batch.is_depleted)
        for sale in sales:
            self.assertIsNone(sale.order_id)
            self.assertEqual(sale.shipping_charged, Decimal('0.00'))
            self.assertEqual(sale.shipping_cost, Decimal('0.00'))
            self.assertEqual(sale.platform_fees, Decimal('0.00'))
            self.assertEqual(sale.supply_cost, Decimal('0.00'))
            self.assertEqual(sale.net_profit, Decimal('8.00'))
        self.assertIsNone(self.db.get(SaleOrder, order_id))
        usages = self.db.execute(select(OrderSupplyUsage).where(OrderSupplyUsage.order_id == order_id)).scalars().all()
        self.assertEqual(usages, [])


class OrderCostRollbackTests(unittest.TestCase):
    """Failures after the first flush leave the committed state untouched."""

    def setUp(self) -> None:
        self.db = make_session()
        uid = add_seller(self.db).id
        self.mailer = add_supply_type(self.db, uid, 'Bubble Mailer')
        self.batch = add_batch(self.db, uid, self.mailer.id, quantity=20, cost_per_unit='0.50')
        self.order = SaleOrder(user_id=uid)
        self.db.add(self.order)
        self.db.flush()
        self.sales = [
            add_sale(self.db, uid, order_id=self.order.id, shipping_charged=Decimal('2.00')) for _ in range(2)
        ]
        self.db.commit()

    def tearDown(self) -> None:
        self.db.close()

    def _usage_count(self) -> int:
        return len(
            self.db.execute(select(OrderSupplyUsage).where(OrderSupplyUsage.order_id == self.order.id)).scalars().all()
        )

    @patch('seller_ledger.services.order_cost_service.recompute_config_cost')
    def test_failed_allocation_rolls_back_draws_and_usages(self, recompute_mock) -> None:
        recompute_mock.side_effect = RuntimeError('boom')

        with self.assertRaises(RuntimeError):
            with transaction(self.db):
                allocate_extra_supplies(
                    self.db, order=self.order, requested=[{'supply_type_id': self.mailer.id, 'quantity': 4}]
                )

        self.assertEqual(self.batch.quantity_remaining, 20)
        self.assertFalse(self.batch.is_depleted)
        self.assertEqual(self._usage_count(), 0)
        self.assertEqual(self.order.total_supply_cost, Decimal('0.00'))

    def test_failed_unlink_restores_links_usages_and_stock(self) -> None:
        with transaction(self.db):
            allocate_extra_supplies(
                self.db, order=self.order, requested=[{'supply_type_id': self.mailer.id, 'quantity': 4}]
            )
        self.assertEqual(self.batch.quantity_remaining, 16)
        order_id = self.order.id

        with patch('seller_ledger.services.order_cost_service.release', side_effect=RuntimeError('boom')):
            with self.assertRaises(RuntimeError):
                with transaction(self.db):
                    unlink_all(self.db, order=self.order)

        self.assertIsNotNone(self.db.get(SaleOrder, order_id))
        self.assertEqual(self._usage_count(), 1)
        self.assertEqual(self.batch.quantity_remaining, 16)
        for sale in self.sales:
            self.assertEqual(sale.order_id, order_id)
            self.assertEqual(sale.shipping_charged, Decimal('2.00'))
            self.assertEqual(sale.supply_cost, Decimal('1.00'))


if __name__ == '__main__':
    unittest.main()
