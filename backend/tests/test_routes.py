"""
HTTP surface tests.

Verifies status codes and response bodies of the JSON API; the business
rules themselves are covered by the service tests.
"""

from dealer.models import FinancialTransaction, Sale, StockItem, Vehicle


def exit_body(customer, seller, **overrides):
    body = {"exit_kind": "sale", "customer_id": customer.id, "seller_id": seller.id}
    body.update(overrides)
    return body


# =============================================================================
# SYSTEM
# =============================================================================


def test_health(client, db_session):
    response = client.get("/api/health")

    assert response.status_code == 200
    data = response.get_json()
    assert data["status"] == "healthy"
    assert data["checks"]["database"]["status"] == "healthy"
    assert data["checks"]["storage"]["status"] == "healthy"


def test_health_degraded_when_storage_nearly_full(app, client, db_session, monkeypatch):
    monkeypatch.setitem(app.config, "STORAGE_BUDGET_BYTES", 100)
    db_session.add(StockItem(brand="Bulk", model="Media", year=2020, total_encoded_bytes=95, media_blobs=[]))
    db_session.commit()

    response = client.get("/api/health")

    assert response.status_code == 200
    assert response.get_json()["checks"]["storage"]["status"] == "degraded"


# =============================================================================
# STOCK
# =============================================================================


def test_stock_crud(client, db_session):
    created = client.post("/api/stock", json={"brand": "Jeep", "model": "Renegade", "year": 2021, "plate": "JEE1P21"})
    assert created.status_code == 201
    item_id = created.get_json()["stock_item"]["id"]

    listed = client.get("/api/stock?search=renegade")
    assert [i["id"] for i in listed.get_json()["stock_items"]] == [item_id]

    patched = client.patch(f"/api/stock/{item_id}", json={"km": 12000})
    assert patched.status_code == 200
    assert patched.get_json()["stock_item"]["km"] == 12000

    fetched = client.get(f"/api/stock/{item_id}")
    assert fetched.get_json()["stock_item"]["media_blobs"] == []

    deleted = client.delete(f"/api/stock/{item_id}")
    assert deleted.get_json() == {"deleted": True, "id": item_id}
    assert client.get(f"/api/stock/{item_id}").status_code == 404


def test_stock_create_validation(client, db_session):
    response = client.post("/api/stock", json={"brand": "Jeep", "model": "Renegade", "year": "twenty"})

    assert response.status_code == 400
    assert response.get_json()["field"] == "year"


def test_stock_quota_error_body(app, client, db_session, monkeypatch):
    monkeypatch.setitem(app.config, "STORAGE_BUDGET_BYTES", 100)

    response = client.post(
        "/api/stock",
        json={"brand": "Jeep", "model": "Renegade", "year": 2021, "media_blobs": ["A" * 400]},
    )

    assert response.status_code == 400
    body = response.get_json()
    assert body["field"] == "media_blobs"
    assert body["required_bytes"] == 300
    assert body["available_bytes"] == 100
    assert body["budget_bytes"] == 100
    assert "Storage limit exceeded" in body["error"]

    db_session.expire_all()
    assert db_session.query(StockItem).count() == 0


def test_storage_info(client, db_session, make_stock_item):
    make_stock_item(media_blobs=["A" * 40])

    data = client.get("/api/stock/storage").get_json()
    assert data["total_used_bytes"] == 30


# =============================================================================
# STOCK EXIT
# =============================================================================


def test_exit_as_sale(client, db_session, customer, seller, make_stock_item):
    item = make_stock_item(acquisition_value_cents=8000000)

    response = client.post(
        f"/api/stock/{item.id}/exit",
        json=exit_body(
            customer,
            seller,
            sale_value_cents=9500000,
            payment_instruments=[{"kind": "cash", "amount_cents": 9500000, "date": "2024-03-01"}],
        ),
    )

    assert response.status_code == 201
    data = response.get_json()
    assert data["sale"]["profit_cents"] == 1500000
    assert data["sale"]["status"] == "completed"
    assert data["sale"]["payment_instruments"][0]["kind"] == "cash"
    assert data["sale"]["payment_instruments"][0]["date"] == "2024-03-01"
    assert data["vehicle"]["status"] == "sold"

    db_session.expire_all()
    assert db_session.get(StockItem, item.id) is None
    receivables = db_session.query(FinancialTransaction).filter_by(kind="receivable").all()
    assert [r.amount_cents for r in receivables] == [9500000]


def test_exit_as_transfer(client, db_session, make_stock_item):
    item = make_stock_item()

    response = client.post(f"/api/stock/{item.id}/exit", json={"exit_kind": "transfer", "transfer_destination": "Branch 2"})

    assert response.status_code == 201
    data = response.get_json()
    assert list(data) == ["transfer_record"]
    assert data["transfer_record"]["destination"] == "Branch 2"


def test_exit_unknown_stock_item(client, db_session, customer, seller):
    response = client.post("/api/stock/999999/exit", json=exit_body(customer, seller))

    assert response.status_code == 404
    db_session.expire_all()
    assert db_session.query(Sale).count() == 0
    assert db_session.query(Vehicle).count() == 0


def test_exit_requires_exit_kind(client, db_session, make_stock_item):
    item = make_stock_item()

    response = client.post(f"/api/stock/{item.id}/exit", json={})

    assert response.status_code == 400
    assert response.get_json()["field"] == "exit_kind"


def test_exit_missing_customer(client, db_session, seller, make_stock_item):
    item = make_stock_item()

    response = client.post(f"/api/stock/{item.id}/exit", json={"exit_kind": "sale", "seller_id": seller.id})

    assert response.status_code == 400
    assert response.get_json()["field"] == "customer_id"
    db_session.expire_all()
    assert db_session.get(StockItem, item.id) is not None


def test_exit_sold_vehicle_is_rejected(client, db_session, customer, seller, make_stock_item, make_vehicle):
    sold = make_vehicle(status="sold")
    item = make_stock_item()

    response = client.post(f"/api/stock/{item.id}/exit", json=exit_body(customer, seller, vehicle_id=sold.id))

    assert response.status_code == 400
    assert response.get_json()["field"] == "status"


# =============================================================================
# SALES
# =============================================================================


def test_sale_endpoints(client, db_session, customer, seller, make_vehicle):
    vehicle = make_vehicle(acquisition_cost_cents=60000)

    created = client.post(
        "/api/sales",
        json={
            "vehicle_id": vehicle.id,
            "customer_id": customer.id,
            "seller_id": seller.id,
            "sale_price_cents": 75000,
            "status": "in_progress",
        },
    )
    assert created.status_code == 201
    sale = created.get_json()["sale"]
    assert sale["profit_cents"] == 15000
    assert sale["payment_instruments"] == []

    listed = client.get("/api/sales?status=in_progress")
    assert [s["id"] for s in listed.get_json()["sales"]] == [sale["id"]]
    assert "payment_instruments" not in listed.get_json()["sales"][0]

    updated = client.patch(f"/api/sales/{sale['id']}", json={"status": "completed", "sale_price_cents": 80000})
    assert updated.status_code == 200
    assert updated.get_json()["sale"]["profit_cents"] == 20000

    fetched = client.get(f"/api/sales/{sale['id']}")
    assert fetched.get_json()["sale"]["status"] == "completed"

    deleted = client.delete(f"/api/sales/{sale['id']}")
    assert deleted.status_code == 200
    assert client.get(f"/api/sales/{sale['id']}").status_code == 404

    db_session.expire_all()
    assert db_session.get(Vehicle, vehicle.id).status == "available"


def test_sales_list_rejects_bad_dates(client, db_session):
    response = client.get("/api/sales?start=yesterday")
    assert response.status_code == 400


def test_sale_missing(client, db_session):
    assert client.get("/api/sales/4242").status_code == 404
    assert client.patch("/api/sales/4242", json={"notes": "x"}).status_code == 404
    assert client.delete("/api/sales/4242").status_code == 404


def test_installment_endpoints(client, db_session, customer, seller, make_vehicle):
    vehicle = make_vehicle()
    created = client.post(
        "/api/sales",
        json={
            "vehicle_id": vehicle.id,
            "customer_id": customer.id,
            "seller_id": seller.id,
            "payment_instruments": [
                {
                    "kind": "promissory_note",
                    "amount_cents": 6000,
                    "date": "2024-01-31",
                    "installment_count": 2,
                    "first_document_number": "10",
                }
            ],
        },
    )
    sale = created.get_json()["sale"]
    instrument = sale["payment_instruments"][0]
    assert [i["due_date"] for i in instrument["installments"]] == ["2024-01-31", "2024-02-29"]
    assert [i["document_number"] for i in instrument["installments"]] == ["10", "11"]

    base = f"/api/sales/{sale['id']}/instruments/{instrument['id']}/installments"

    edited = client.patch(f"{base}/1", json={"amount_cents": 4000})
    assert edited.status_code == 200
    assert edited.get_json()["installment"]["amount_edited"] is True

    regenerated = client.post(f"{base}/regenerate", json={"installment_count": 3})
    assert regenerated.status_code == 200
    amounts = [i["amount_cents"] for i in regenerated.get_json()["payment_instrument"]["installments"]]
    assert amounts == [2000, 4000, 2000]

    assert client.patch(f"{base}/7", json={"amount_cents": 1}).status_code == 404
    assert client.post(f"{base}/regenerate", json={"installment_count": -1}).status_code == 400


# =============================================================================
# VEHICLES / FINANCIAL
# =============================================================================


def test_vehicle_endpoints(client, db_session, make_vehicle):
    available = make_vehicle(acquisition_cost_cents=50000)
    make_vehicle(plate="SLD0A00", status="sold", acquisition_cost_cents=90000)

    stats = client.get("/api/vehicles/stats").get_json()
    assert stats["total"] == 2
    assert stats["by_status"] == {"available": 1, "reserved": 0, "sold": 1}
    assert stats["available_cost_cents"] == 50000

    listed = client.get("/api/vehicles?status=available").get_json()
    assert [v["id"] for v in listed["vehicles"]] == [available.id]

    assert client.get("/api/vehicles?status=scrapped").status_code == 400
    assert client.get(f"/api/vehicles/{available.id}").get_json()["vehicle"]["media_blobs"] == []
    assert client.get("/api/vehicles/999").status_code == 404


def test_financial_transactions(client, db_session, make_stock_item):
    item = make_stock_item(acquisition_value_cents=123400)

    data = client.get("/api/financial/transactions?kind=payable&status=pending").get_json()
    assert [(t["stock_item_id"], t["amount_cents"]) for t in data["transactions"]] == [(item.id, 123400)]

    assert client.get("/api/financial/transactions?kind=loan").status_code == 400
    assert client.get("/api/financial/transactions?status=overdue").status_code == 400
    assert client.get("/api/financial/transactions?due_from=soon").status_code == 400
