import pytest
from fastapi.testclient import TestClient

from stockwatch import models
from stockwatch.clients.notification_client import get_notification_client
from stockwatch.services.vendors import crud
from stockwatch.services.vendors.main import app

ACME = {
    "company_name": "Acme Supply",
    "contact_person": "Jo Rivera",
    "email": "Sales@Acme.io",
    "phone": "555-0100",
    "specialty": "Fasteners",
}


@pytest.fixture
def client(asgi_notification_client):
    app.dependency_overrides[get_notification_client] = lambda: asgi_notification_client
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_create_vendor_lowercases_email(client, make_user, auth_headers):
    response = client.post("/api/vendors", json=ACME, headers=auth_headers(make_user()))

    assert response.status_code == 201
    assert response.json()["vendor"]["email"] == "sales@acme.io"


def test_create_vendor_rejects_duplicate_email(client, make_user, auth_headers):
    headers = auth_headers(make_user())
    client.post("/api/vendors", json=ACME, headers=headers)

    response = client.post("/api/vendors", json={**ACME, "company_name": "Other"}, headers=headers)

    assert response.status_code == 400
    assert response.json() == {"error": "Vendor with this email already exists"}


def test_update_vendor(client, make_user, make_vendor, auth_headers):
    headers = auth_headers(make_user())
    vendor = make_vendor()
    other = make_vendor(company_name="Bolt Bros", email="hello@boltbros.io")

    updated = client.put(f"/api/vendors/{vendor.id}", json={**ACME, "phone": "555-0199"}, headers=headers)
    conflict = client.put(
        f"/api/vendors/{other.id}", json={**ACME, "company_name": "Bolt Bros"}, headers=headers
    )
    missing = client.put("/api/vendors/999", json=ACME, headers=headers)

    assert updated.status_code == 200
    assert updated.json()["vendor"]["phone"] == "555-0199"
    assert conflict.status_code == 400
    assert conflict.json() == {"error": "Email is already taken by another vendor"}
    assert missing.status_code == 404


def test_search_and_specialty(client, make_user, make_vendor, auth_headers):
    headers = auth_headers(make_user())
    make_vendor(company_name="Acme Supply", email="a@acme.io", specialty="Fasteners")
    make_vendor(company_name="Paint World", email="p@paint.io", specialty="Coatings")

    found = client.get("/api/vendors/search", params={"q": "paint"}, headers=headers)
    by_specialty = client.get("/api/vendors/specialty/Fasteners", headers=headers)
    blank = client.get("/api/vendors/search", headers=headers)

    assert [v["company_name"] for v in found.json()] == ["Paint World"]
    assert [v["company_name"] for v in by_specialty.json()] == ["Acme Supply"]
    assert blank.status_code == 400


def test_link_and_list_vendor_inventory(client, make_user, make_item, make_vendor, auth_headers):
    user = make_user()
    headers = auth_headers(user)
    vendor = make_vendor()
    bolt = make_item(user, name="Bolt")
    nut = make_item(user, name="Nut", quantity=40)

    client.post(f"/api/vendors/{vendor.id}/inventory", json={"inventory_id": nut.id}, headers=headers)
    client.post(f"/api/vendors/{vendor.id}/inventory", json={"inventory_id": bolt.id}, headers=headers)
    relinked = client.post(
        f"/api/vendors/{vendor.id}/inventory", json={"inventory_id": bolt.id, "is_primary": True}, headers=headers
    )
    missing_item = client.post(f"/api/vendors/{vendor.id}/inventory", json={"inventory_id": 999}, headers=headers)

    assert relinked.status_code == 201
    assert missing_item.status_code == 404
    rows = client.get(f"/api/vendors/{vendor.id}/inventory", headers=headers).json()
    assert [(row["name"], row["is_primary"], row["is_low_stock"]) for row in rows] == [
        ("Bolt", True, True),
        ("Nut", False, False),
    ]


def test_contact_records_history_per_item_and_one_notification(
    client, db, make_user, make_item, make_vendor, auth_headers
):
    user = make_user()
    vendor = make_vendor()
    bolt = make_item(user, name="Bolt")
    nut = make_item(user, name="Nut")

    response = client.post(
        "/api/vendors/contact",
        json={
            "vendor_id": vendor.id,
            "inventory_ids": [bolt.id, nut.id, bolt.id],
            "message": "Please restock",
            "contact_type": "email",
        },
        headers=auth_headers(user),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["vendor"]["company_name"] == "Acme Supply"
    assert [item["name"] for item in body["items"]] == ["Bolt", "Nut"]
    db.expire_all()
    history = db.query(models.ContactHistory).order_by(models.ContactHistory.inventory_id).all()
    assert [(row.inventory_id, row.contact_type) for row in history] == [(bolt.id, "email"), (nut.id, "email")]
    notifications = db.query(models.Notification).all()
    assert len(notifications) == 1
    assert notifications[0].id == body["notification_id"]
    assert notifications[0].type == "vendor_contact"
    assert notifications[0].vendor_id == vendor.id
    assert "Bolt" in notifications[0].message and "Nut" in notifications[0].message


def test_contact_with_unknown_vendor_or_item(client, db, make_user, make_item, make_vendor, auth_headers):
    user = make_user()
    headers = auth_headers(user)
    vendor = make_vendor()
    bolt = make_item(user)
    request = {"message": "Restock", "contact_type": "phone"}

    no_vendor = client.post(
        "/api/vendors/contact", json={**request, "vendor_id": 999, "inventory_ids": [bolt.id]}, headers=headers
    )
    no_item = client.post(
        "/api/vendors/contact",
        json={**request, "vendor_id": vendor.id, "inventory_ids": [bolt.id, 999]},
        headers=headers,
    )
    bad_type = client.post(
        "/api/vendors/contact",
        json={**request, "vendor_id": vendor.id, "inventory_ids": [bolt.id], "contact_type": "fax"},
        headers=headers,
    )

    assert no_vendor.status_code == 404
    assert no_item.status_code == 400
    assert no_item.json() == {"error": "Some inventory items not found"}
    assert bad_type.status_code == 400
    assert db.query(models.ContactHistory).count() == 0
    assert db.query(models.Notification).count() == 0


def test_delete_vendor_removes_dependent_rows(client, db, make_user, make_item, make_vendor, auth_headers):
    user = make_user()
    vendor = make_vendor()
    item = make_item(user)
    db.add_all([
        models.VendorInventory(vendor_id=vendor.id, inventory_id=item.id),
        models.ContactHistory(
            user_id=user.id, vendor_id=vendor.id, inventory_id=item.id, message="Restock", contact_type="email"
        ),
        models.Notification(type="vendor_contact", message="You contacted Acme", user_id=user.id, vendor_id=vendor.id),
    ])
    db.commit()
    vendor_id = vendor.id

    response = client.delete(f"/api/vendors/{vendor_id}", headers=auth_headers(user))

    assert response.status_code == 200
    db.expire_all()
    assert db.get(models.Vendor, vendor_id) is None
    assert db.query(models.VendorInventory).count() == 0
    assert db.query(models.ContactHistory).count() == 0
    assert db.query(models.Notification).count() == 0
    assert db.get(models.InventoryItem, item.id) is not None


def test_delete_vendor_rolls_back_on_failure(db, make_user, make_item, make_vendor, monkeypatch):
    user = make_user()
    vendor = make_vendor()
    item = make_item(user)
    db.add_all([
        models.VendorInventory(vendor_id=vendor.id, inventory_id=item.id),
        models.ContactHistory(
            user_id=user.id, vendor_id=vendor.id, inventory_id=item.id, message="Restock", contact_type="email"
        ),
        models.Notification(type="vendor_contact", message="You contacted Acme", user_id=user.id, vendor_id=vendor.id),
    ])
    db.commit()

    def fail(instance):
        raise RuntimeError("storage went away")

    monkeypatch.setattr(db, "delete", fail)
    with pytest.raises(RuntimeError):
        crud.delete_vendor(db, vendor)
    monkeypatch.undo()

    db.expire_all()
    assert db.query(models.Vendor).count() == 1
    assert db.query(models.VendorInventory).count() == 1
    assert db.query(models.ContactHistory).count() == 1
    assert db.query(models.Notification).count() == 1


def test_contact_rolls_back_history_when_notification_fails(db, make_user, make_item, make_vendor, monkeypatch):
    user = make_user()
    vendor = make_vendor()
    item = make_item(user)

    def fail(*args, **kwargs):
        raise RuntimeError("storage went away")

    monkeypatch.setattr(crud.notification_crud, "create_notification", fail)
    with pytest.raises(RuntimeError):
        crud.record_vendor_contact(db, user.id, vendor, [item], "Restock", "email")
    monkeypatch.undo()

    assert db.query(models.ContactHistory).count() == 0
    assert db.query(models.Notification).count() == 0
