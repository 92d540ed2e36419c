"""Tests for live queries and ledger summaries."""

import pytest
from datetime import date
from decimal import Decimal

from farmledger.errors import ValidationError
from farmledger.models import TaskFilters
from farmledger.queries import UNASSIGNED_CROP

from conftest import OTHER_OWNER, OWNER, build_app


def flat_task(worker_id, amount, day, crop_id=None):
    return {
        "worker_id": worker_id,
        "date": day,
        "task_type": "pruning",
        "amount": amount,
        "crop_id": crop_id,
    }


def sale(buyer_id, quantity, price, day):
    return {
        "buyer_id": buyer_id,
        "date": day,
        "items": [{"quality": "first", "quantity": quantity, "unit_price": price}],
    }


@pytest.mark.asyncio
class TestTaskQueries:
    """Filters combine as a conjunction; results are newest first."""

    @pytest.fixture
    def days(self):
        return [date(2024, 3, 1), date(2024, 3, 10), date(2024, 3, 20)]

    async def test_ordering_by_date_then_creation(self, app, worker, days):
        first = await app.ledger.add_task(flat_task(worker.id, "100", days[1]))
        older = await app.ledger.add_task(flat_task(worker.id, "200", days[0]))
        second = await app.ledger.add_task(flat_task(worker.id, "300", days[1]))

        tasks = await app.queries.get_tasks()
        assert [t.id for t in tasks] == [second.id, first.id, older.id]

    async def test_date_range_is_inclusive(self, app, worker, days):
        for day in days:
            await app.ledger.add_task(flat_task(worker.id, "100", day))

        tasks = await app.queries.get_tasks(TaskFilters(date_from=days[0], date_to=days[1]))
        assert sorted(t.date for t in tasks) == days[:2]

    async def test_worker_and_crop_filters(self, app, worker, crop, days):
        other_worker = await app.workers.create({"name": "Beto"})
        await app.ledger.add_task(flat_task(worker.id, "100", days[0], crop.id))
        await app.ledger.add_task(flat_task(worker.id, "200", days[1]))
        await app.ledger.add_task(flat_task(other_worker.id, "400", days[1], crop.id))

        tasks = await app.queries.get_tasks({"worker_id": worker.id, "crop_id": crop.id})
        assert [t.payout for t in tasks] == [Decimal("100")]
        assert tasks.total("payout") == Decimal("100")

    async def test_inverted_range_rejected(self, app, days):
        with pytest.raises(ValidationError):
            await app.queries.get_tasks({"date_from": days[2], "date_to": days[0]})

    async def test_live_update_pushes_to_subscribers(self, app, worker, days):
        tasks = await app.queries.get_tasks({"worker_id": worker.id})
        pushed = []
        tasks.subscribe(pushed.append)

        await app.ledger.add_task(flat_task(worker.id, "100", days[0]))

        assert len(pushed[-1]) == 1
        assert tasks.total("payout") == Decimal("100")

    async def test_live_query_follows_tenant(self, app, worker, days):
        await app.ledger.add_task(flat_task(worker.id, "100", days[0]))
        tasks = await app.queries.get_tasks()

        await app.identity.sign_out()
        assert tasks.items == []

        await app.identity.sign_in(OWNER)
        assert len(tasks.items) == 1

    async def test_closed_query_stops_updating(self, app, worker, days):
        tasks = await app.queries.get_tasks()
        tasks.close()
        await app.ledger.add_task(flat_task(worker.id, "100", days[0]))
        assert tasks.items == []

    async def test_scoped_query_releases_listeners(self, app, store, worker, days):
        before = store.changes.listener_count("tasks")
        for day in days:
            async with await app.queries.get_tasks({"date_from": day}) as tasks:
                assert store.changes.listener_count("tasks") == before + 1

        assert store.changes.listener_count("tasks") == before
        await app.ledger.add_task(flat_task(worker.id, "100", days[0]))
        assert tasks.items == []

    async def test_tenant_isolation(self, app, store, worker, days):
        await app.ledger.add_task(flat_task(worker.id, "100", days[0]))
        other = await build_app(OTHER_OWNER, store)
        assert (await other.queries.get_tasks()).items == []


@pytest.mark.asyncio
class TestPaymentAndBuyerQueries:
    """Payments, sales and collections."""

    async def test_payments_for_worker(self, app, worker):
        other_worker = await app.workers.create({"name": "Beto"})
        await app.ledger.add_payment({"worker_id": worker.id, "amount": "100", "date": date(2024, 3, 1)})
        await app.ledger.add_payment({"worker_id": other_worker.id, "amount": "50", "date": date(2024, 3, 2)})

        payments = await app.queries.get_payments({"worker_id": worker.id})
        assert payments.total("amount") == Decimal("100")

        everyone = await app.queries.get_payments()
        assert [p.worker_name for p in everyone] == ["Beto", "Ana Rojas"]

    async def test_sales_and_collections_by_buyer(self, app, buyer):
        other_buyer = await app.buyers.create({"name": "Export Co"})
        await app.ledger.add_sale(sale(buyer.id, "2", "1000", date(2024, 3, 1)))
        await app.ledger.add_sale(sale(other_buyer.id, "1", "500", date(2024, 3, 2)))
        await app.ledger.add_collection({"buyer_id": buyer.id, "amount": "1500", "date": date(2024, 3, 5)})

        sales = await app.queries.get_sales({"buyer_id": buyer.id})
        assert sales.total("total") == Decimal("2000")

        collections = await app.queries.get_collections(buyer.id)
        assert collections.total("amount") == Decimal("1500")
        assert (await app.queries.get_collections(other_buyer.id)).items == []


@pytest.mark.asyncio
class TestSummaries:
    """Dashboard, period report and labor cost by crop."""

    async def test_dashboard_summary(self, app, worker, buyer):
        await app.ledger.add_sale(sale(buyer.id, "10", "1000", date(2024, 3, 1)))
        await app.expenses.create({"category": "fuel", "amount": "2500", "date": date(2024, 3, 2)})
        await app.ledger.add_task(flat_task(worker.id, "4000", date(2024, 3, 3)))
        # Payments settle labor already counted; they are not an extra cost
        await app.ledger.add_payment({"worker_id": worker.id, "amount": "1000", "date": date(2024, 3, 4)})

        summary = await app.queries.dashboard_summary()
        assert summary.income == Decimal("10000")
        assert summary.expenses == Decimal("2500")
        assert summary.labor_cost == Decimal("4000")
        assert summary.balance == Decimal("3500")

    async def test_dashboard_without_tenant(self, app, buyer):
        await app.ledger.add_sale(sale(buyer.id, "1", "1000", date(2024, 3, 1)))
        await app.identity.sign_out()
        summary = await app.queries.dashboard_summary()
        assert summary.income == Decimal("0")

    async def test_period_report(self, app, worker, buyer):
        await app.ledger.add_payment({"worker_id": worker.id, "amount": "100", "date": date(2024, 2, 28)})
        await app.ledger.add_payment({"worker_id": worker.id, "amount": "200", "date": date(2024, 3, 1)})
        await app.ledger.add_sale(sale(buyer.id, "1", "900", date(2024, 3, 31)))
        await app.expenses.create({"category": "fuel", "amount": "50", "date": date(2024, 3, 15)})

        report = await app.queries.period_report(date(2024, 3, 1), date(2024, 3, 31))
        assert report.total_paid == Decimal("200")
        assert report.total_income == Decimal("900")
        assert report.total_expenses == Decimal("50")
        assert len(report.payments) == 1

    async def test_period_report_rejects_inverted_range(self, app):
        with pytest.raises(ValidationError):
            await app.queries.period_report(date(2024, 3, 31), date(2024, 3, 1))

    async def test_labor_cost_by_crop(self, app, worker, crop):
        await app.ledger.add_task(flat_task(worker.id, "300", date(2024, 3, 1), crop.id))
        await app.ledger.add_task(flat_task(worker.id, "200", date(2024, 3, 2), crop.id))
        await app.ledger.add_task(flat_task(worker.id, "50", date(2024, 3, 3)))

        costs = await app.queries.labor_cost_by_crop()
        assert costs == {"North Orchard": Decimal("500"), UNASSIGNED_CROP: Decimal("50")}

        march_first = await app.queries.labor_cost_by_crop({"date_to": date(2024, 3, 1)})
        assert march_first == {"North Orchard": Decimal("300")}
