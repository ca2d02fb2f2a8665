import unittest
from decimal import Decimal

from seller_ledger.models import SaleOrder, SaleStatus
from seller_ledger.services.summary_service import seller_summary
from support import add_sale, add_seller, make_session


class SellerSummaryTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session()
        self.uid = add_seller(self.db).id

    def tearDown(self) -> None:
        self.db.close()

    def test_totals_cover_sold_sales_only(self) -> None:
        add_sale(self.db, self.uid, status=SaleStatus.SOLD, sale_price=Decimal('20.00'), purchase_price=Decimal('5.00'))
        add_sale(self.db, self.uid, status=SaleStatus.SOLD, sale_price=Decimal('8.00'), purchase_price=Decimal('9.50'))
        add_sale(self.db, self.uid, status=SaleStatus.LISTED, sale_price=Decimal('99.00'))
        other = add_seller(self.db, 'other')
        add_sale(self.db, other.id, status=SaleStatus.SOLD, sale_price=Decimal('1000.00'))

        summary = seller_summary(self.db, user_id=self.uid)

        self.assertEqual(summary.status_counts, {'listed': 1, 'sold': 2})
        self.assertEqual(summary.total_sales, 3)
        self.assertEqual(summary.sold_total_revenue, Decimal('28.00'))
        self.assertEqual(summary.sold_total_costs, Decimal('14.50'))
        self.assertEqual(summary.sold_net_profit, Decimal('13.50'))

    def test_parked_cost_counts_orders_without_sales(self) -> None:
        empty = SaleOrder(user_id=self.uid, total_supply_cost=Decimal('1.25'))
        busy = SaleOrder(user_id=self.uid, total_supply_cost=Decimal('4.00'))
        self.db.add_all([empty, busy])
        self.db.flush()
        add_sale(self.db, self.uid, order_id=busy.id, supply_cost=Decimal('4.00'))

        summary = seller_summary(self.db, user_id=self.uid)

        self.assertEqual(summary.parked_supply_cost, Decimal('1.25'))

    def test_empty_ledger(self) -> None:
        summary = seller_summary(self.db, user_id=self.uid)

        self.assertEqual(summary.total_sales, 0)
        self.assertEqual(summary.sold_net_profit, Decimal('0.00'))
        self.assertEqual(summary.parked_supply_cost, Decimal('0.00'))


if __name__ == '__main__':
    unittest.main()
