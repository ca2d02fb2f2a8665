import unittest
from datetime import date
from decimal import Decimal

from seller_ledger.errors import InsufficientInventory, InvalidRelease, NotFound, ValidationError
from seller_ledger.services.supply_inventory_service import (
    allocate,
    available_quantity,
    inventory_summary,
    plan_allocation,
    release,
)
from support import add_batch, add_seller, add_supply_type, make_session


class SupplyInventoryServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session()
        self.seller = add_seller(self.db)
        self.mailer = add_supply_type(self.db, self.seller.id, 'Bubble Mailer')
        self.b1 = add_batch(
            self.db, self.seller.id, self.mailer.id, quantity=100, cost_per_unit='0.10', purchased=date(2024, 1, 1)
        )
        self.b2 = add_batch(
            self.db, self.seller.id, self.mailer.id, quantity=50, cost_per_unit='0.12', purchased=date(2024, 2, 1)
        )

    def tearDown(self) -> None:
        self.db.close()

    def test_allocation_within_oldest_batch_touches_only_that_batch(self) -> None:
        allocation = allocate(self.db, user_id=self.seller.id, supply_type_id=self.mailer.id, quantity=40)

        self.assertEqual([(d.batch_id, d.quantity_used) for d in allocation.draws], [(self.b1.id, 40)])
        self.assertEqual(self.b1.quantity_remaining, 60)
        self.assertEqual(self.b2.quantity_remaining, 50)

    def test_allocation_spills_into_next_batch_at_its_own_cost(self) -> None:
        allocation = allocate(self.db, user_id=self.seller.id, supply_type_id=self.mailer.id, quantity=120)

        self.assertEqual(
            [(d.batch_id, d.quantity_used, d.total_cost) for d in allocation.draws],
            [(self.b1.id, 100, Decimal('10.00')), (self.b2.id, 20, Decimal('2.40'))],
        )
        self.assertEqual(allocation.total_cost, Decimal('12.40'))
        self.assertEqual(self.b1.quantity_remaining, 0)
        self.assertTrue(self.b1.is_depleted)
        self.assertEqual(self.b2.quantity_remaining, 30)
        self.assertFalse(self.b2.is_depleted)

    def test_same_purchase_date_falls_back_to_creation_order(self) -> None:
        other = add_supply_type(self.db, self.seller.id, 'Toploader')
        first = add_batch(self.db, self.seller.id, other.id, quantity=5, cost_per_unit='0.20', purchased=date(2024, 3, 1))
        add_batch(self.db, self.seller.id, other.id, quantity=5, cost_per_unit='0.25', purchased=date(2024, 3, 1))

        allocation = allocate(self.db, user_id=self.seller.id, supply_type_id=other.id, quantity=3)

        self.assertEqual([d.batch_id for d in allocation.draws], [first.id])

    def test_shortfall_raises_and_leaves_batches_untouched(self) -> None:
        with self.assertRaises(InsufficientInventory) as ctx:
            allocate(self.db, user_id=self.seller.id, supply_type_id=self.mailer.id, quantity=151)

        self.assertEqual(ctx.exception.requested, 151)
        self.assertEqual(ctx.exception.available, 150)
        self.assertIn('Bubble Mailer', str(ctx.exception))
        self.assertEqual(self.b1.quantity_remaining, 100)
        self.assertEqual(self.b2.quantity_remaining, 50)

    def test_remaining_plus_allocated_equals_purchased(self) -> None:
        first = allocate(self.db, user_id=self.seller.id, supply_type_id=self.mailer.id, quantity=70)
        second = allocate(self.db, user_id=self.seller.id, supply_type_id=self.mailer.id, quantity=45)

        allocated = sum(d.quantity_used for a in (first, second) for d in a.draws)
        remaining = self.b1.quantity_remaining + self.b2.quantity_remaining
        self.assertEqual(remaining + allocated, 150)
        self.assertEqual(available_quantity(self.db, user_id=self.seller.id, supply_type_id=self.mailer.id), 35)

    def test_release_restores_exact_prior_state(self) -> None:
        allocation = allocate(self.db, user_id=self.seller.id, supply_type_id=self.mailer.id, quantity=120)

        release(self.db, user_id=self.seller.id, allocation=allocation)

        self.assertEqual(self.b1.quantity_remaining, 100)
        self.assertFalse(self.b1.is_depleted)
        self.assertEqual(self.b2.quantity_remaining, 50)

    def test_double_release_is_refused(self) -> None:
        allocation = allocate(self.db, user_id=self.seller.id, supply_type_id=self.mailer.id, quantity=10)
        release(self.db, user_id=self.seller.id, allocation=allocation)

        with self.assertRaises(InvalidRelease):
            release(self.db, user_id=self.seller.id, allocation=allocation)
        self.assertEqual(self.b1.quantity_remaining, 100)

    def test_double_release_is_refused_while_another_allocation_is_active(self) -> None:
        first = allocate(self.db, user_id=self.seller.id, supply_type_id=self.mailer.id, quantity=10)
        second = allocate(self.db, user_id=self.seller.id, supply_type_id=self.mailer.id, quantity=10)
        release(self.db, user_id=self.seller.id, allocation=first)

        with self.assertRaises(InvalidRelease):
            release(self.db, user_id=self.seller.id, allocation=first)

        self.assertEqual(self.b1.quantity_remaining, 90)
        allocated = sum(d.quantity_used for d in second.draws)
        remaining = self.b1.quantity_remaining + self.b2.quantity_remaining
        self.assertEqual(remaining + allocated, 150)

    def test_plan_respects_units_reserved_by_earlier_lines(self) -> None:
        plan = plan_allocation(
            self.db,
            user_id=self.seller.id,
            supply_type_id=self.mailer.id,
            quantity=20,
            reserved={self.b1.id: 90},
        )

        self.assertEqual([(d.batch_id, d.quantity_used) for d in plan.draws], [(self.b1.id, 10), (self.b2.id, 10)])
        self.assertEqual(self.b1.quantity_remaining, 100)

    def test_quantity_must_be_a_positive_whole_number(self) -> None:
        for bad in (0, -3, 1.5, True):
            with self.assertRaises(ValidationError):
                allocate(self.db, user_id=self.seller.id, supply_type_id=self.mailer.id, quantity=bad)

    def test_other_sellers_types_are_not_found(self) -> None:
        stranger = add_seller(self.db, 'stranger')

        with self.assertRaises(NotFound):
            allocate(self.db, user_id=stranger.id, supply_type_id=self.mailer.id, quantity=1)

    def test_inventory_summary_reports_remaining_and_cost_range(self) -> None:
        allocate(self.db, user_id=self.seller.id, supply_type_id=self.mailer.id, quantity=100)

        rows = inventory_summary(self.db, user_id=self.seller.id)

        self.assertEqual(len(rows), 1)
        row = rows[0]
        self.assertEqual(row.total_remaining, 50)
        self.assertEqual(row.batch_count, 1)
        self.assertEqual(row.min_cost, Decimal('0.12'))
        self.assertEqual(row.max_cost, Decimal('0.12'))


if __name__ == '__main__':
    unittest.main()
