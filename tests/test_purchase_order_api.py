from __future__ import annotations

from datetime import date

import pytest
from fastapi.testclient import TestClient

from backoffice.core.db import get_db
from backoffice.main import app
from backoffice.models.models import PurchaseLot, PurchaseOrder
from tests.test_utils import (
    consume_lot,
    create_product,
    create_store,
    create_supplier,
    create_unit,
)


BASE_URL = "/api/v1/purchase-order"


@pytest.fixture
def client(db_session):
    def _get_db_override():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = _get_db_override
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def store_setup(db_session):
    store = create_store(db_session, name="S1")
    unit = create_unit(db_session, store, "pcs")
    kg = create_unit(db_session, store, "kg")
    gram = create_unit(db_session, store, "g", base_unit=kg, conversion_factor=0.001)
    beans = create_product(db_session, store, "Coffee beans", kg)
    milk = create_product(db_session, store, "Milk", unit)
    supplier = create_supplier(db_session, store, "Highland Farms")
    db_session.commit()
    return {
        "store": store,
        "unit": unit,
        "kg": kg,
        "gram": gram,
        "beans": beans,
        "milk": milk,
        "supplier": supplier,
        "headers": {"X-Store-Id": store.id, "X-User-Id": "user-1"},
    }


def _payload(setup, **overrides):
    payload = {
        "supplier_id": setup["supplier"].id,
        "import_date": "2024-01-15",
        "notes": "weekly restock",
        "items": [
            {"product_id": setup["beans"].id, "quantity": 10, "cost": 100, "unit_id": setup["kg"].id},
            {"product_id": setup["milk"].id, "quantity": 5, "cost": 200, "unit_id": setup["unit"].id},
        ],
    }
    payload.update(overrides)
    return payload


def _create(client, setup, **overrides):
    resp = client.post(f"{BASE_URL}/", json=_payload(setup, **overrides), headers=setup["headers"])
    assert resp.status_code == 201, resp.text
    return resp.json()


def test_create_purchase_order(client, store_setup):
    body = _create(client, store_setup)

    assert body["order_number"].startswith("PN")
    assert len(body["order_number"]) == 12
    assert body["store_id"] == store_setup["store"].id
    assert body["supplier_name"] == "Highland Farms"
    assert body["created_by"] == "user-1"
    assert body["total_amount"] == 2000
    assert [it["product_name"] for it in body["items"]] == ["Coffee beans", "Milk"]
    assert [it["line_no"] for it in body["items"]] == [1, 2]


def test_create_total_uses_base_values(client, store_setup):
    items = [
        {
            "product_id": store_setup["beans"].id,
            "quantity": 500,
            "cost": 0.02,
            "unit_id": store_setup["gram"].id,
            "base_quantity": 0.5,
            "base_cost": 20,
            "base_unit_id": store_setup["kg"].id,
        }
    ]
    body = _create(client, store_setup, items=items)

    assert body["total_amount"] == 10

    lots = client.get(f"{BASE_URL}/{body['id']}/lots", headers=store_setup["headers"]).json()
    assert [(lot["quantity"], lot["remaining_quantity"], lot["cost"], lot["unit_id"]) for lot in lots] == [
        (500, 500, 0.02, store_setup["gram"].id)
    ]


def test_create_rejects_empty_items(client, store_setup):
    resp = client.post(f"{BASE_URL}/", json=_payload(store_setup, items=[]), headers=store_setup["headers"])
    assert resp.status_code == 422


def test_create_rejects_non_positive_quantity(client, store_setup):
    items = [{"product_id": store_setup["milk"].id, "quantity": 0, "cost": 1, "unit_id": store_setup["unit"].id}]
    resp = client.post(f"{BASE_URL}/", json=_payload(store_setup, items=items), headers=store_setup["headers"])
    assert resp.status_code == 422


def test_store_header_is_required(client, store_setup):
    resp = client.get(f"{BASE_URL}/")
    assert resp.status_code == 400
    assert resp.json()["detail"] == {"error": "Store context is required", "code": "STORE_REQUIRED"}


def test_quick_purchase(client, store_setup):
    resp = client.post(
        f"{BASE_URL}/quick",
        json={
            "product_id": store_setup["milk"].id,
            "quantity": 12,
            "cost": 1.5,
            "unit_id": store_setup["unit"].id,
            "import_date": "2024-03-01",
        },
        headers=store_setup["headers"],
    )
    assert resp.status_code == 201, resp.text
    body = resp.json()

    assert body["notes"] == "Quick purchase"
    assert body["supplier_id"] is None
    assert body["total_amount"] == 18
    assert len(body["items"]) == 1


def test_get_purchase_order_and_not_found(client, store_setup, db_session):
    created = _create(client, store_setup)

    resp = client.get(f"{BASE_URL}/{created['id']}", headers=store_setup["headers"])
    assert resp.status_code == 200
    assert resp.json()["order_number"] == created["order_number"]

    other = create_store(db_session, name="S2")
    db_session.commit()
    resp = client.get(f"{BASE_URL}/{created['id']}", headers={"X-Store-Id": other.id})
    assert resp.status_code == 404
    assert resp.json()["detail"]["code"] == "PURCHASE_NOT_FOUND"

    resp = client.get(f"{BASE_URL}/missing/lots", headers=store_setup["headers"])
    assert resp.status_code == 404


def test_list_and_total_amount(client, store_setup):
    _create(client, store_setup, import_date="2024-01-05")
    _create(client, store_setup, import_date="2024-01-20", supplier_id=None)
    _create(client, store_setup, import_date="2024-02-02")

    resp = client.get(
        f"{BASE_URL}/",
        params={"page": 1, "page_size": 2, "order_by": "import_date", "order_direction": "ASC"},
        headers=store_setup["headers"],
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["total"] == 3
    assert body["total_pages"] == 2
    assert [row["import_date"] for row in body["data"]] == ["2024-01-05", "2024-01-20"]
    assert [row["item_count"] for row in body["data"]] == [2, 2]
    assert body["data"][1]["supplier_name"] is None

    resp = client.get(
        f"{BASE_URL}/total-amount",
        params={"date_from": "2024-01-01", "date_to": "2024-01-31"},
        headers=store_setup["headers"],
    )
    assert resp.status_code == 200
    assert resp.json() == {"total_amount": 4000}


def test_list_rejects_unknown_sort_column(client, store_setup):
    resp = client.get(f"{BASE_URL}/", params={"order_by": "password"}, headers=store_setup["headers"])
    assert resp.status_code == 400
    assert resp.json()["detail"]["code"] == "VALIDATION_ERROR"


def test_update_purchase_order(client, store_setup):
    created = _create(client, store_setup)
    payload = _payload(
        store_setup,
        supplier_id=None,
        notes="corrected",
        items=[{"product_id": store_setup["milk"].id, "quantity": 2, "cost": 50, "unit_id": store_setup["unit"].id}],
    )

    resp = client.put(f"{BASE_URL}/{created['id']}", json=payload, headers=store_setup["headers"])
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["order_number"] == created["order_number"]
    assert body["supplier_id"] is None
    assert body["total_amount"] == 100
    assert [(it["product_id"], it["quantity"]) for it in body["items"]] == [(store_setup["milk"].id, 2)]

    resp = client.put(f"{BASE_URL}/missing", json=payload, headers=store_setup["headers"])
    assert resp.status_code == 404


def test_delete_blocked_until_lots_are_restored(client, store_setup, db_session):
    created = _create(client, store_setup)
    lot = (
        db_session.query(PurchaseLot)
        .filter(PurchaseLot.purchase_order_id == created["id"], PurchaseLot.product_id == store_setup["beans"].id)
        .one()
    )
    consume_lot(db_session, lot.id, 4)

    resp = client.get(f"{BASE_URL}/{created['id']}/can-delete", headers=store_setup["headers"])
    assert resp.json() == {"can_delete": False}

    resp = client.delete(f"{BASE_URL}/{created['id']}", headers=store_setup["headers"])
    assert resp.status_code == 400
    assert resp.json()["detail"]["code"] == "PURCHASE_DELETE_FORBIDDEN"
    assert db_session.get(PurchaseOrder, created["id"]) is not None

    consume_lot(db_session, lot.id, 10)

    resp = client.delete(f"{BASE_URL}/{created['id']}", headers=store_setup["headers"])
    assert resp.status_code == 200
    assert resp.json() == {"success": True, "message": "Purchase order deleted successfully"}

    resp = client.get(f"{BASE_URL}/{created['id']}", headers=store_setup["headers"])
    assert resp.status_code == 404


def test_delete_unknown_order_returns_not_found(client, store_setup):
    resp = client.delete(f"{BASE_URL}/missing", headers=store_setup["headers"])
    assert resp.status_code == 404


def test_list_defaults_to_newest_import_date_first(client, store_setup):
    _create(client, store_setup, import_date="2024-01-05")
    _create(client, store_setup, import_date="2024-02-02")
    _create(client, store_setup, import_date="2024-01-20")

    resp = client.get(f"{BASE_URL}/", headers=store_setup["headers"])
    assert resp.status_code == 200
    assert [row["import_date"] for row in resp.json()["data"]] == ["2024-02-02", "2024-01-20", "2024-01-05"]
