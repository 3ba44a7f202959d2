"""
Media storage quota tests.

Verifies:
- base64 size estimation (data-URI prefix stripped, 3/4 ratio)
- the budget holds after every successful stock write
- rejected writes leave no trace
- updates release the item's own bytes before checking
"""

import pytest

from dealer.models import FinancialTransaction, StockItem
from dealer.services import quota_service, stock_service
from dealer.validation import QuotaExceededError, ValidationError

GIB = 1024 * 1024 * 1024


def blob(payload_chars: int, prefix: str = "data:image/jpeg;base64,") -> str:
    return prefix + ("A" * payload_chars)


@pytest.fixture
def small_budget(app, monkeypatch):
    monkeypatch.setitem(app.config, "STORAGE_BUDGET_BYTES", 1000)
    return 1000


# =============================================================================
# SIZE ESTIMATION
# =============================================================================


class TestEstimation:
    def test_data_uri_prefix_is_ignored(self):
        assert quota_service.estimate_blob_bytes(blob(400)) == 300

    def test_bare_base64(self):
        assert quota_service.estimate_blob_bytes("A" * 8) == 6

    def test_empty_values(self):
        assert quota_service.estimate_blob_bytes("") == 0
        assert quota_service.estimate_blob_bytes(None) == 0
        assert quota_service.estimate_total_bytes([]) == 0
        assert quota_service.estimate_total_bytes(None) == 0

    def test_total_is_sum_of_blobs(self):
        assert quota_service.estimate_total_bytes([blob(400), blob(40)]) == 330


# =============================================================================
# AGGREGATE + BUDGET
# =============================================================================


class TestBudget:
    def test_total_used_sums_live_items(self, db_session, make_stock_item):
        a = make_stock_item(media_blobs=[blob(400)])
        make_stock_item(media_blobs=[blob(800)])

        assert quota_service.total_used() == 900
        assert quota_service.total_used(excluding_id=a.id) == 600

    def test_would_exceed(self, db_session, small_budget, make_stock_item):
        make_stock_item(media_blobs=[blob(800)])  # 600 bytes

        assert quota_service.would_exceed(400) is False
        assert quota_service.would_exceed(401) is True

    def test_create_over_budget_is_rejected_without_side_effects(self, db_session, small_budget, make_stock_item):
        make_stock_item(media_blobs=[blob(800)])  # 600 bytes
        payables_before = db_session.query(FinancialTransaction).count()

        with pytest.raises(QuotaExceededError) as exc_info:
            make_stock_item(brand="Ford", media_blobs=[blob(800)])

        err = exc_info.value
        assert isinstance(err, ValidationError)
        assert err.available_bytes == 400
        assert err.required_bytes == 600
        assert err.budget_bytes == 1000
        assert "available_bytes" in err.to_dict()

        assert db_session.query(StockItem).count() == 1
        assert db_session.query(StockItem).filter_by(brand="Ford").count() == 0
        assert db_session.query(FinancialTransaction).count() == payables_before
        assert quota_service.total_used() <= 1000

    def test_update_excludes_own_bytes(self, db_session, small_budget, make_stock_item):
        item = make_stock_item(media_blobs=[blob(800)])  # 600 bytes

        # 750 bytes only fits because the item's current 600 are released
        updated = stock_service.update_stock_item(item.id, {"media_blobs": [blob(1000)]})

        assert updated.total_encoded_bytes == 750
        assert quota_service.total_used() == 750

    def test_update_over_budget_keeps_previous_media(self, db_session, small_budget, make_stock_item):
        item = make_stock_item(media_blobs=[blob(400)])  # 300 bytes
        make_stock_item(brand="Ford", media_blobs=[blob(800)])  # 600 bytes

        with pytest.raises(QuotaExceededError):
            stock_service.update_stock_item(item.id, {"media_blobs": [blob(800)], "color": "red"})

        db_session.expire_all()
        reloaded = db_session.get(StockItem, item.id)
        assert reloaded.total_encoded_bytes == 300
        assert reloaded.color is None
        assert quota_service.total_used() == 900

    def test_update_without_media_leaves_bytes(self, db_session, make_stock_item):
        item = make_stock_item(media_blobs=[blob(400)])
        updated = stock_service.update_stock_item(item.id, {"km": 15000})
        assert updated.total_encoded_bytes == 300
        assert len(updated.media_blobs) == 1

    def test_near_full_budget_rejects_small_overflow(self, db_session, app):
        # 9.99 GiB already in use, a 0.02 GiB upload would end at 10.01 GiB
        used = int(9.99 * GIB)
        db_session.add(StockItem(brand="Bulk", model="Media", year=2020, total_encoded_bytes=used, media_blobs=[]))
        db_session.commit()

        assert app.config["STORAGE_BUDGET_BYTES"] == 10 * GIB
        assert quota_service.would_exceed(int(0.02 * GIB)) is True
        with pytest.raises(QuotaExceededError):
            quota_service.ensure_capacity(int(0.02 * GIB))
        assert quota_service.total_used() == used

    def test_deleting_item_frees_budget(self, db_session, small_budget, make_stock_item):
        item = make_stock_item(media_blobs=[blob(800)])
        stock_service.delete_stock_item(item.id)
        assert quota_service.total_used() == 0
        make_stock_item(media_blobs=[blob(1200)])  # 900 bytes fits again

    def test_storage_info(self, db_session, small_budget, make_stock_item):
        make_stock_item(media_blobs=[blob(400)])

        info = quota_service.storage_info()
        assert info["total_used_bytes"] == 300
        assert info["budget_bytes"] == 1000
        assert info["available_bytes"] == 700
        assert info["percentage_used"] == 30.0


# =============================================================================
# INTAKE SIDE EFFECTS
# =============================================================================


class TestIntake:
    def test_acquisition_cost_emits_payable(self, db_session, make_stock_item):
        item = make_stock_item(acquisition_value_cents=8000000)

        payables = db_session.query(FinancialTransaction).filter_by(kind="payable").all()
        assert len(payables) == 1
        assert payables[0].amount_cents == 8000000
        assert payables[0].stock_item_id == item.id
        assert payables[0].status == "pending"
        assert payables[0].description.startswith("Vehicle purchase: Toyota Corolla 2020")

    def test_no_cost_no_payable(self, db_session, make_stock_item):
        make_stock_item(acquisition_value_cents=None)
        make_stock_item(acquisition_value_cents=0)
        assert db_session.query(FinancialTransaction).count() == 0

    def test_required_fields(self, db_session):
        with pytest.raises(ValidationError) as exc_info:
            stock_service.create_stock_item({"brand": "Fiat"})
        assert exc_info.value.field == "model"

    def test_total_encoded_bytes_is_not_writable(self, db_session):
        with pytest.raises(ValidationError):
            stock_service.create_stock_item(
                {"brand": "Fiat", "model": "Uno", "year": 2010, "total_encoded_bytes": 1}
            )

    def test_year_range(self, db_session):
        with pytest.raises(ValidationError) as exc_info:
            stock_service.create_stock_item({"brand": "Fiat", "model": "Uno", "year": 1800})
        assert exc_info.value.field == "year"
