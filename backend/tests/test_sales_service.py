"""
Sale maintenance tests.

Verifies:
- direct sales of fleet vehicles and their lifecycle effects
- update semantics: derived profit, purchase fallback, full instrument replace
- deletion as a compensating action over vehicle and ledger
- installment edits surviving schedule regeneration
"""

import pytest

from dealer.models import FinancialTransaction, Installment, PaymentInstrument, Sale, Vehicle
from dealer.services import sales_service
from dealer.services.vehicle_lifecycle_service import LifecycleError
from dealer.validation import NotFoundError, ValidationError


@pytest.fixture
def make_sale(customer, seller, make_vehicle):
    def _make(vehicle=None, **overrides):
        if vehicle is None:
            vehicle = make_vehicle()
        payload = {
            "vehicle_id": vehicle.id,
            "customer_id": customer.id,
            "seller_id": seller.id,
        }
        payload.update(overrides)
        return sales_service.create_sale(payload)
    return _make


def plan(**overrides):
    body = {
        "kind": "own_financing",
        "amount_cents": 9000,
        "date": "2024-06-15",
        "installment_count": 3,
        "cadence": "monthly",
        "guarantor": "Ana Ribeiro",
    }
    body.update(overrides)
    return body


def pending_receivables(db_session, sale_id):
    return (
        db_session.query(FinancialTransaction)
        .filter_by(kind="receivable", status="pending", sale_id=sale_id)
        .all()
    )


# =============================================================================
# CREATE
# =============================================================================


class TestCreateSale:
    def test_sells_vehicle_and_defaults_purchase_to_cost(self, db_session, make_vehicle, make_sale):
        vehicle = make_vehicle(acquisition_cost_cents=7000000)

        sale = make_sale(vehicle, sale_price_cents=8200000)

        assert sale.status == "completed"
        assert sale.purchase_price_cents == 7000000
        assert sale.profit_cents == 1200000
        assert vehicle.status == "sold"
        assert vehicle.sale_price_cents == 8200000

    def test_in_progress_reserves_vehicle(self, db_session, make_vehicle, make_sale):
        vehicle = make_vehicle()
        sale = make_sale(vehicle, status="in_progress")

        assert sale.status == "in_progress"
        assert vehicle.status == "reserved"

    def test_vehicle_id_required(self, db_session, customer, seller):
        with pytest.raises(ValidationError) as exc_info:
            sales_service.create_sale({"customer_id": customer.id, "seller_id": seller.id})
        assert exc_info.value.field == "vehicle_id"

    def test_sold_vehicle_rejected(self, db_session, make_vehicle, make_sale):
        vehicle = make_vehicle(status="sold")

        with pytest.raises(LifecycleError):
            make_sale(vehicle)

        assert db_session.query(Sale).count() == 0

    def test_unknown_vehicle(self, db_session, customer, seller):
        with pytest.raises(NotFoundError):
            sales_service.create_sale({"vehicle_id": 777, "customer_id": customer.id, "seller_id": seller.id})

    def test_unknown_status(self, db_session, make_sale):
        with pytest.raises(ValidationError) as exc_info:
            make_sale(status="cancelled")
        assert exc_info.value.field == "status"

    def test_trade_vehicle_cannot_be_the_sold_vehicle(self, db_session, make_vehicle, make_sale):
        vehicle = make_vehicle()
        with pytest.raises(ValidationError):
            make_sale(
                vehicle,
                payment_instruments=[{"kind": "trade_vehicle", "amount_cents": 1, "trade_vehicle_id": vehicle.id}],
            )
        db_session.expire_all()
        assert db_session.get(Vehicle, vehicle.id).status == "available"

    @pytest.mark.parametrize("status", ["completed", "in_progress"])
    def test_reserved_vehicle_rejects_second_sale(self, db_session, make_vehicle, make_sale, status):
        vehicle = make_vehicle()
        presale = make_sale(vehicle, status="in_progress")

        with pytest.raises(LifecycleError) as exc_info:
            make_sale(vehicle, status=status)

        assert exc_info.value.field == "status"
        assert f"open sale {presale.id}" in str(exc_info.value)
        db_session.expire_all()
        assert db_session.query(Sale).count() == 1
        assert db_session.get(Vehicle, vehicle.id).status == "reserved"


# =============================================================================
# UPDATE
# =============================================================================


class TestUpdateSale:
    def test_price_change_rederives_profit(self, db_session, make_sale):
        sale = make_sale(sale_price_cents=90000, purchase_price_cents=60000)

        updated = sales_service.update_sale(sale.id, {"sale_price_cents": 100000})

        assert updated.purchase_price_cents == 60000
        assert updated.profit_cents == 40000
        assert updated.vehicle.sale_price_cents == 100000

    def test_cleared_purchase_price_falls_back(self, db_session, make_sale):
        sale = make_sale(sale_price_cents=90000, purchase_price_cents=60000)

        updated = sales_service.update_sale(sale.id, {"purchase_price_cents": None})
        assert updated.purchase_price_cents == 60000

    def test_purchase_falls_back_to_vehicle_cost(self, db_session, make_vehicle, make_sale):
        vehicle = make_vehicle(acquisition_cost_cents=None)
        sale = make_sale(vehicle)
        assert sale.purchase_price_cents is None

        vehicle.acquisition_cost_cents = 55000
        db_session.commit()

        updated = sales_service.update_sale(sale.id, {"sale_price_cents": 70000})
        assert updated.purchase_price_cents == 55000
        assert updated.profit_cents == 15000

    def test_notes_only_leaves_instruments(self, db_session, make_sale):
        sale = make_sale(payment_instruments=[{"kind": "cash", "amount_cents": 500}, plan()])
        ids = [p.id for p in sale.payment_instruments]

        updated = sales_service.update_sale(sale.id, {"notes": "Customer asked for delivery", "payment_instruments": None})

        assert [p.id for p in updated.payment_instruments] == ids
        assert len(pending_receivables(db_session, sale.id)) == 2

    def test_instrument_list_is_replaced(self, db_session, make_sale):
        sale = make_sale(payment_instruments=[{"kind": "cash", "amount_cents": 500}, plan()])

        updated = sales_service.update_sale(
            sale.id, {"payment_instruments": [{"kind": "check", "amount_cents": 800, "check_number": "000123"}]}
        )

        assert [p.kind for p in updated.payment_instruments] == ["check"]
        assert updated.entry_total_cents == 0
        assert updated.remaining_total_cents == 800
        assert db_session.query(PaymentInstrument).count() == 1
        assert db_session.query(Installment).count() == 0

        rows = pending_receivables(db_session, sale.id)
        assert [r.amount_cents for r in rows] == [800]

    def test_empty_list_clears_instruments(self, db_session, make_sale):
        sale = make_sale(payment_instruments=[{"kind": "cash", "amount_cents": 500}])

        updated = sales_service.update_sale(sale.id, {"payment_instruments": []})

        assert updated.payment_instruments == []
        assert updated.entry_total_cents == 0
        assert pending_receivables(db_session, sale.id) == []

    def test_bad_replacement_keeps_old_instruments(self, db_session, make_sale):
        sale = make_sale(payment_instruments=[{"kind": "cash", "amount_cents": 500}])

        with pytest.raises(NotFoundError):
            sales_service.update_sale(
                sale.id,
                {"payment_instruments": [{"kind": "trade_vehicle", "amount_cents": 1, "trade_vehicle_id": 31337}]},
            )

        db_session.expire_all()
        assert [p.kind for p in db_session.get(Sale, sale.id).payment_instruments] == ["cash"]
        assert len(pending_receivables(db_session, sale.id)) == 1

    def test_completing_presale_sells_vehicle(self, db_session, make_sale):
        sale = make_sale(status="in_progress")

        updated = sales_service.update_sale(sale.id, {"status": "completed"})

        assert updated.status == "completed"
        assert updated.vehicle.status == "sold"

    def test_completed_sale_cannot_go_back(self, db_session, make_sale):
        sale = make_sale()

        with pytest.raises(LifecycleError):
            sales_service.update_sale(sale.id, {"status": "in_progress"})

        db_session.expire_all()
        assert db_session.get(Sale, sale.id).status == "completed"

    def test_customer_is_not_writable(self, db_session, make_sale):
        sale = make_sale()
        with pytest.raises(ValidationError) as exc_info:
            sales_service.update_sale(sale.id, {"customer_id": 2})
        assert exc_info.value.field == "customer_id"

    def test_unknown_sale(self, db_session):
        with pytest.raises(NotFoundError):
            sales_service.update_sale(4040, {"notes": "x"})


# =============================================================================
# DELETE
# =============================================================================


class TestDeleteSale:
    def test_reverts_vehicle_and_cleans_ledger(self, db_session, make_vehicle, make_sale):
        vehicle = make_vehicle()
        sale = make_sale(
            vehicle,
            payment_instruments=[
                {"kind": "cash", "amount_cents": 500},
                {"kind": "debit_card", "amount_cents": 700},
            ],
        )
        paid = pending_receivables(db_session, sale.id)[0]
        paid.status = "paid"
        db_session.commit()
        paid_id = paid.id

        sales_service.delete_sale(sale.id)

        db_session.expire_all()
        assert db_session.get(Sale, sale.id) is None
        assert db_session.get(Vehicle, vehicle.id).status == "available"
        assert db_session.query(PaymentInstrument).count() == 0

        receivables = db_session.query(FinancialTransaction).filter_by(kind="receivable").all()
        assert [r.id for r in receivables] == [paid_id]
        assert receivables[0].sale_id is None

    def test_presale_delete_releases_reservation(self, db_session, make_vehicle, make_sale):
        vehicle = make_vehicle()
        sale = make_sale(vehicle, status="in_progress")

        sales_service.delete_sale(sale.id)

        db_session.expire_all()
        assert db_session.get(Vehicle, vehicle.id).status == "available"

    def test_sold_vehicle_stays_sold_after_rejected_double_sale(self, db_session, make_vehicle, make_sale):
        vehicle = make_vehicle()
        presale = make_sale(vehicle, status="in_progress")
        with pytest.raises(LifecycleError):
            make_sale(vehicle)

        sales_service.update_sale(presale.id, {"status": "completed"})

        db_session.expire_all()
        assert db_session.get(Vehicle, vehicle.id).status == "sold"
        assert [s.id for s in db_session.query(Sale).all()] == [presale.id]

    def test_unknown_sale(self, db_session):
        with pytest.raises(NotFoundError):
            sales_service.delete_sale(4040)


# =============================================================================
# INSTALLMENTS
# =============================================================================


class TestInstallments:
    def test_edit_survives_regeneration(self, db_session, make_sale):
        sale = make_sale(payment_instruments=[plan()])
        instrument = sale.payment_instruments[0]
        assert [i.amount_cents for i in instrument.installments] == [3000, 3000, 3000]

        row = sales_service.edit_installment(sale.id, instrument.id, 1, {"amount_cents": 5000})
        assert row.amount_edited is True

        regenerated = sales_service.regenerate_installments(
            sale.id, instrument.id, {"installment_amount_cents": 2000}
        )

        assert [i.amount_cents for i in regenerated.installments] == [2000, 5000, 2000]
        assert [i.amount_edited for i in regenerated.installments] == [False, True, False]

    def test_discard_edits(self, db_session, make_sale):
        sale = make_sale(payment_instruments=[plan()])
        instrument = sale.payment_instruments[0]
        sales_service.edit_installment(sale.id, instrument.id, 0, {"amount_cents": 1, "document_number": "A-1"})

        regenerated = sales_service.regenerate_installments(sale.id, instrument.id, {"discard_edits": True})

        first = regenerated.installments[0]
        assert first.amount_cents == 3000
        assert first.document_number is None
        assert first.amount_edited is False
        assert first.document_edited is False

    def test_count_change_resizes_schedule(self, db_session, make_sale):
        sale = make_sale(payment_instruments=[plan()])
        instrument = sale.payment_instruments[0]

        shorter = sales_service.regenerate_installments(sale.id, instrument.id, {"installment_count": 2})
        assert [i.index for i in shorter.installments] == [0, 1]
        assert db_session.query(Installment).count() == 2

        longer = sales_service.regenerate_installments(
            sale.id, instrument.id, {"installment_count": 5, "cadence": "biweekly"}
        )
        assert [i.index for i in longer.installments] == [0, 1, 2, 3, 4]
        assert [i.amount_cents for i in longer.installments] == [1800] * 5

    def test_non_schedule_instrument(self, db_session, make_sale):
        sale = make_sale(payment_instruments=[{"kind": "cash", "amount_cents": 500}])
        cash = sale.payment_instruments[0]

        with pytest.raises(ValidationError) as exc_info:
            sales_service.regenerate_installments(sale.id, cash.id)
        assert exc_info.value.field == "kind"

    def test_instrument_of_another_sale(self, db_session, make_vehicle, make_sale):
        first = make_sale(payment_instruments=[plan()])
        other = make_sale(make_vehicle(plate="OTH0R99"))

        with pytest.raises(NotFoundError):
            sales_service.edit_installment(other.id, first.payment_instruments[0].id, 0, {"amount_cents": 1})

    def test_missing_index(self, db_session, make_sale):
        sale = make_sale(payment_instruments=[plan()])
        with pytest.raises(NotFoundError):
            sales_service.edit_installment(sale.id, sale.payment_instruments[0].id, 9, {"amount_cents": 1})

    @pytest.mark.parametrize("payload", [{}, {"amount_cents": -5}, {"amount_cents": 1.5}, {"due_date": "2024-01-01"}])
    def test_bad_edit_payload(self, db_session, make_sale, payload):
        sale = make_sale(payment_instruments=[plan()])
        with pytest.raises(ValidationError):
            sales_service.edit_installment(sale.id, sale.payment_instruments[0].id, 0, payload)

    def test_discard_edits_must_be_boolean(self, db_session, make_sale):
        sale = make_sale(payment_instruments=[plan()])
        with pytest.raises(ValidationError) as exc_info:
            sales_service.regenerate_installments(sale.id, sale.payment_instruments[0].id, {"discard_edits": "yes"})
        assert exc_info.value.field == "discard_edits"
