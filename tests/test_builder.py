import math
import threading
import unittest
from datetime import datetime, timedelta

from payment_requests.builder import RequestBuilder, RequestOptions, compute_totals
from payment_requests.dates import UTC
from payment_requests.errors import BuildError
from payment_requests.ledger import Ledger
from payment_requests.models import Client, Item, Project
from payment_requests.records import RequestStatus, Urgency


def website_items():
    return [
        Item(name="UI/UX Design", quantity=80, unit_price=75, unit="hour"),
        Item(name="Frontend Development", quantity=120, unit_price=85, unit="hour"),
    ]


class ComputeTotalsTests(unittest.TestCase):
    def test_without_rates_total_equals_subtotal(self) -> None:
        totals = compute_totals(website_items())

        self.assertEqual(totals.subtotal, 16200)
        self.assertEqual(totals.discount, 0)
        self.assertEqual(totals.tax, 0)
        self.assertEqual(totals.total, 16200)

    def test_discount_applies_before_tax(self) -> None:
        totals = compute_totals([Item(name="x", quantity=1, unit_price=1000)], discount_rate=10, tax_rate=8)

        self.assertAlmostEqual(totals.discount, 100)
        self.assertAlmostEqual(totals.taxable_amount, 900)
        self.assertAlmostEqual(totals.tax, 72)
        self.assertAlmostEqual(totals.total, 972)

    def test_formula_holds_across_rates(self) -> None:
        items = [Item(name="a", quantity=3, unit_price=19.99), Item(name="b", quantity=0.5, unit_price=240)]
        subtotal = 3 * 19.99 + 0.5 * 240
        for discount_rate in (0, 12.5, 100):
            for tax_rate in (0, 7.25, 100):
                totals = compute_totals(items, discount_rate, tax_rate)
                discount = subtotal * discount_rate / 100
                tax = (subtotal - discount) * tax_rate / 100
                self.assertEqual(totals.subtotal, subtotal)
                self.assertAlmostEqual(totals.discount, discount)
                self.assertAlmostEqual(totals.tax, tax)
                self.assertAlmostEqual(totals.total, subtotal - discount + tax)

    def test_item_level_rates_are_not_aggregated(self) -> None:
        items = [Item(name="taxed", quantity=2, unit_price=50, tax_rate=20, discount_rate=50)]

        totals = compute_totals(items)

        self.assertEqual(totals.subtotal, 100)
        self.assertEqual(totals.total, 100)
        self.assertAlmostEqual(items[0].total, 60)


class RequestBuilderTests(unittest.TestCase):
    def setUp(self) -> None:
        self.ledger = Ledger()
        self.builder = RequestBuilder(self.ledger)
        self.client = Client(name="Acme Corporation", email="billing@acme.com")
        self.project = Project(name="Website Redesign")

    def test_build_applies_defaults_and_appends(self) -> None:
        issue = datetime(2024, 2, 1, 10, 0, tzinfo=UTC)
        record = self.builder.build(self.client, self.project, website_items(), RequestOptions(issue_date=issue))

        self.assertEqual(record.request_number, "PR-20240201-001")
        self.assertEqual(record.due_date, issue + timedelta(days=30))
        self.assertEqual(record.terms, "Net 30")
        self.assertEqual(record.currency, "USD")
        self.assertEqual(record.payment_methods, ())
        self.assertIs(record.urgency, Urgency.NORMAL)
        self.assertIs(record.status, RequestStatus.PENDING)
        self.assertEqual(record.total, 16200)
        self.assertEqual(self.ledger.all(), [record])

    def test_explicit_values_are_kept(self) -> None:
        options = RequestOptions(
            request_number="CUSTOM-1",
            issue_date="2024-02-01",
            due_date="2024-02-15",
            notes="Phase one",
            terms="Net 14",
            tax_rate=8,
            discount_rate=10,
            currency="EUR",
            payment_methods=["Bank Transfer", "PayPal"],
            urgency="urgent",
        )
        record = self.builder.build(self.client, self.project, [Item(name="x", quantity=1, unit_price=1000)], options)

        self.assertEqual(record.request_number, "CUSTOM-1")
        self.assertEqual(record.due_date, datetime(2024, 2, 15, tzinfo=UTC))
        self.assertEqual(record.payment_methods, ("Bank Transfer", "PayPal"))
        self.assertIs(record.urgency, Urgency.URGENT)
        self.assertAlmostEqual(record.total, 972)
        self.assertEqual((record.discount_rate, record.tax_rate), (10, 8))

    def test_same_day_requests_are_sequenced(self) -> None:
        day = datetime(2024, 5, 6, 8, 0, tzinfo=UTC)
        numbers = [
            self.builder.build(
                self.client,
                self.project,
                website_items(),
                RequestOptions(issue_date=day + timedelta(hours=hour)),
            ).request_number
            for hour in range(3)
        ]
        next_day = self.builder.build(
            self.client, self.project, website_items(), RequestOptions(issue_date=day + timedelta(days=1))
        )

        self.assertEqual(numbers, ["PR-20240506-001", "PR-20240506-002", "PR-20240506-003"])
        self.assertEqual(next_day.request_number, "PR-20240507-001")

    def test_record_holds_snapshots(self) -> None:
        items = website_items()
        record = self.builder.build(self.client, self.project, items)

        self.client.update(name="Renamed")
        self.project.add_tag("late")
        items[0].update(quantity=1)

        self.assertEqual(record.client.name, "Acme Corporation")
        self.assertEqual(record.project.tags, [])
        self.assertEqual(record.items[0].quantity, 80)
        self.assertEqual(record.subtotal, 16200)

    def test_rejects_empty_items(self) -> None:
        with self.assertRaises(BuildError):
            self.builder.build(self.client, self.project, [])
        self.assertEqual(len(self.ledger), 0)

    def test_rejects_non_finite_numbers(self) -> None:
        with self.assertRaises(BuildError):
            self.builder.build(self.client, self.project, [Item(name="x", quantity=math.inf, unit_price=1)])
        with self.assertRaises(BuildError):
            self.builder.build(self.client, self.project, website_items(), RequestOptions(tax_rate=math.nan))

    def test_rejects_unknown_urgency(self) -> None:
        with self.assertRaises(BuildError):
            self.builder.build(self.client, self.project, website_items(), RequestOptions(urgency="asap"))

    def test_rejects_unparseable_dates(self) -> None:
        with self.assertRaises(BuildError):
            self.builder.build(self.client, self.project, website_items(), RequestOptions(due_date="soonish"))

    def test_concurrent_builds_get_unique_numbers(self) -> None:
        issue = datetime(2024, 7, 1, tzinfo=UTC)
        numbers = []
        lock = threading.Lock()

        def worker() -> None:
            for _ in range(10):
                record = self.builder.build(
                    self.client, self.project, website_items(), RequestOptions(issue_date=issue)
                )
                with lock:
                    numbers.append(record.request_number)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(len(numbers), 40)
        self.assertEqual(len(set(numbers)), 40)

    def test_build_from_payload_reads_api_shapes(self) -> None:
        record = self.builder.build_from_payload(
            {"name": "Acme", "email": "billing@acme.com"},
            {"name": "Site", "startDate": "2024-01-15"},
            [{"name": "Design", "quantity": 80, "unitPrice": 75}, {"name": "Dev", "quantity": 120, "unitPrice": 85}],
            {"taxRate": 10, "paymentMethods": ["Card"], "urgency": "high"},
        )

        self.assertEqual(record.subtotal, 16200)
        self.assertAlmostEqual(record.total, 17820)
        self.assertEqual(record.payment_methods, ("Card",))
        self.assertEqual(record.to_dict()["urgency"], "high")

    def test_build_from_payload_wraps_bad_input(self) -> None:
        with self.assertRaises(BuildError):
            self.builder.build_from_payload({"name": "a"}, {"name": "p"}, [{"quantity": "many"}])
        with self.assertRaises(BuildError):
            self.builder.build_from_payload({"name": "a"}, {"name": "p"}, [{"quantity": 1}], {"paymentMethods": "card"})


if __name__ == "__main__":
    unittest.main()
