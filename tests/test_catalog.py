from bson import ObjectId

from conftest import API


def _new_product(**overrides):
    data = {
        "name": "Fly Ash Bricks",
        "type": "Fly Ash",
        "pricePer1000": 5200,
        "pricePerTrolley": 15600,
        "usageTags": ["House"],
        "qualityGrade": "First",
    }
    data.update(overrides)
    return data


def test_default_catalog_is_seeded(client):
    resp = client.get(f"{API}/products")
    assert resp.status_code == 200
    body = resp.json()
    assert body["count"] == 3
    names = {p["name"] for p in body["data"]}
    assert names == {"First Class Bricks", "Second Class Bricks", "Brick Bats"}
    first = next(p for p in body["data"] if p["name"] == "First Class Bricks")
    assert first["slug"] == "first-class-bricks"
    assert first["pricePer1000"] == 4500
    assert first["pricePerTrolley"] == 13500
    assert "isActive" not in first


def test_create_product_derives_slug(client, admin_headers):
    resp = client.post(f"{API}/admin/products", json=_new_product(name="  Fly Ash Bricks!! "), headers=admin_headers)
    assert resp.status_code == 201, resp.text
    product = resp.json()["data"]
    assert product["slug"] == "fly-ash-bricks"
    assert product["availability"] is True

    resp = client.post(f"{API}/admin/products", json=_new_product(name="Fly ash bricks"), headers=admin_headers)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Product with this slug already exists"


def test_product_writes_require_admin(client):
    assert client.post(f"{API}/admin/products", json=_new_product()).status_code == 401


def test_price_change_is_audited(client, admin_headers):
    product_id = client.post(f"{API}/admin/products", json=_new_product(), headers=admin_headers).json()["data"]["_id"]

    resp = client.put(f"{API}/admin/products/{product_id}", json={"description": "Lighter bricks"},
                      headers=admin_headers)
    assert resp.status_code == 200
    logs = client.get(f"{API}/admin/activity-logs", headers=admin_headers).json()["data"]
    assert not [log for log in logs if log["actionType"] == "price_change"]

    resp = client.put(f"{API}/admin/products/{product_id}/pricing",
                      json={"pricePer1000": 5500, "pricePerTrolley": 16500}, headers=admin_headers)
    assert resp.status_code == 200
    logs = client.get(f"{API}/admin/activity-logs", headers=admin_headers).json()["data"]
    price_logs = [log for log in logs if log["actionType"] == "price_change"]
    assert len(price_logs) == 1
    assert price_logs[0]["actorName"] == "Desk Admin"
    assert price_logs[0]["metadata"]["previous"]["pricePer1000"] == 5200
    assert price_logs[0]["metadata"]["next"]["pricePer1000"] == 5500


def test_pricing_rejects_strings(client, admin_headers):
    product_id = client.get(f"{API}/admin/products", headers=admin_headers).json()["data"][0]["_id"]
    resp = client.put(f"{API}/admin/products/{product_id}/pricing",
                      json={"pricePer1000": "5500", "pricePerTrolley": 16500}, headers=admin_headers)
    assert resp.status_code == 400


def test_toggle_active_mirrors_availability(client, admin_headers):
    product_id = client.post(f"{API}/admin/products", json=_new_product(), headers=admin_headers).json()["data"]["_id"]
    resp = client.patch(f"{API}/admin/products/{product_id}/toggle-active", headers=admin_headers)
    assert resp.json()["data"]["isActive"] is False
    assert resp.json()["data"]["availability"] is False
    assert "fly-ash-bricks" not in {p["slug"] for p in client.get(f"{API}/products").json()["data"]}


def test_archive_and_restore(client, db, admin_headers):
    product_id = client.post(f"{API}/admin/products", json=_new_product(), headers=admin_headers).json()["data"]["_id"]

    resp = client.delete(f"{API}/admin/products/{product_id}", headers=admin_headers)
    assert resp.status_code == 200
    archived = resp.json()["data"]
    assert archived["isArchived"] is True
    assert archived["isActive"] is False
    assert archived["archivedAt"]

    assert client.get(f"{API}/products").json()["count"] == 3
    assert client.get(f"{API}/admin/products", headers=admin_headers).json()["count"] == 3
    assert client.get(f"{API}/admin/products", params={"includeArchived": "true"},
                      headers=admin_headers).json()["count"] == 4

    resp = client.put(f"{API}/admin/products/{product_id}", json={"name": "New name"}, headers=admin_headers)
    assert resp.status_code == 400
    resp = client.put(f"{API}/admin/products/{product_id}/pricing", json={"pricePer1000": 9999, "pricePerTrolley": 9999},
                      headers=admin_headers)
    assert resp.status_code == 400
    stored = db["product"].find_one({"_id": ObjectId(product_id)})
    assert stored["name"] == "Fly Ash Bricks"
    assert stored["price_per_1000"] == 5200
    assert stored["price_per_trolley"] == 15600
    assert stored["is_archived"] is True
    assert client.patch(f"{API}/admin/products/{product_id}/toggle-active", headers=admin_headers).status_code == 400

    resp = client.patch(f"{API}/admin/products/{product_id}/restore", headers=admin_headers)
    assert resp.status_code == 200
    restored = resp.json()["data"]
    assert restored["isArchived"] is False
    assert restored["isActive"] is False
    assert "archivedAt" not in restored

    actions = [log["actionType"] for log in client.get(f"{API}/admin/activity-logs", headers=admin_headers).json()["data"]]
    assert {"product_archived", "product_restored"} <= set(actions)


def test_unknown_product(client, admin_headers):
    resp = client.get(f"{API}/admin/products/65a000000000000000000000", headers=admin_headers)
    assert resp.status_code == 404
    assert resp.json()["message"] == "Product not found"


def test_gallery_crud(client, admin_headers):
    item = {"type": "image", "title": "Kiln at dawn", "mediaUrl": "https://cdn.example.com/k.jpg", "publicId": "k1"}
    resp = client.post(f"{API}/admin/gallery", json=item, headers=admin_headers)
    assert resp.status_code == 201
    item_id = resp.json()["data"]["_id"]

    resp = client.put(f"{API}/admin/gallery/{item_id}", json={"title": "Kiln at dusk"}, headers=admin_headers)
    assert resp.json()["data"]["title"] == "Kiln at dusk"

    public = client.get(f"{API}/gallery").json()
    assert public["count"] == 1
    assert public["data"][0]["mediaUrl"] == "https://cdn.example.com/k.jpg"

    assert client.delete(f"{API}/admin/gallery/{item_id}", headers=admin_headers).status_code == 200
    assert client.delete(f"{API}/admin/gallery/{item_id}", headers=admin_headers).status_code == 404


def test_gallery_rejects_unknown_media_type(client, admin_headers):
    item = {"type": "audio", "mediaUrl": "https://cdn.example.com/a.mp3", "publicId": "a1"}
    assert client.post(f"{API}/admin/gallery", json=item, headers=admin_headers).status_code == 400
