from conftest import API


def test_create_and_fetch_by_slug(client, admin):
    response = client.post(
        f"{API}/categories", json={"name": "Nail Care", "description": "Manicure and pedicure"}, headers=admin.headers
    )
    assert response.status_code == 201
    category = response.json()["data"]["category"]
    assert category["slug"] == "nail-care"
    assert category["order"] == 0
    assert category["subcategories"] == []

    by_slug = client.get(f"{API}/categories/slug/nail-care")
    assert by_slug.status_code == 200
    assert by_slug.json()["data"]["category"]["id"] == category["id"]


def test_duplicate_name_conflicts(client, admin, category):
    response = client.post(f"{API}/categories", json={"name": category["name"]}, headers=admin.headers)
    assert response.status_code == 409


def test_clients_cannot_create_categories(client, make_client):
    user = make_client()
    response = client.post(f"{API}/categories", json={"name": "Spa"}, headers=user.headers)
    assert response.status_code == 403


def test_tree_nests_active_subcategories(client, admin, category):
    client.post(f"{API}/categories", json={"name": "Braids", "parent_id": category["id"]}, headers=admin.headers)
    client.post(
        f"{API}/categories",
        json={"name": "Locs", "parent_id": category["id"], "is_active": False},
        headers=admin.headers,
    )
    tree = client.get(f"{API}/categories/tree").json()["data"]["categories"]
    assert [node["name"] for node in tree] == ["Hair Styling"]
    assert [child["name"] for child in tree[0]["subcategories"]] == ["Braids"]


def test_parent_must_exist(client, admin):
    response = client.post(f"{API}/categories", json={"name": "Orphan", "parent_id": 999}, headers=admin.headers)
    assert response.status_code == 404
    assert response.json()["message"] == "Parent category not found"


def test_category_cannot_be_its_own_parent(client, admin, category):
    response = client.put(
        f"{API}/categories/{category['id']}", json={"parent_id": category["id"]}, headers=admin.headers
    )
    assert response.status_code == 400


def test_delete_refused_with_subcategories(client, admin, category):
    client.post(f"{API}/categories", json={"name": "Braids", "parent_id": category["id"]}, headers=admin.headers)
    response = client.delete(f"{API}/categories/{category['id']}", headers=admin.headers)
    assert response.status_code == 400
    assert "subcategories" in response.json()["message"]


def test_delete_refused_with_services(client, admin, category, make_vendor, make_service):
    make_service(make_vendor())
    response = client.delete(f"{API}/categories/{category['id']}", headers=admin.headers)
    assert response.status_code == 400
    assert "services" in response.json()["message"]


def test_soft_delete_and_restore(client, admin, category):
    assert client.delete(f"{API}/categories/{category['id']}", headers=admin.headers).status_code == 200
    assert client.get(f"{API}/categories/{category['id']}").status_code == 404

    restored = client.post(f"{API}/categories/{category['id']}/restore", headers=admin.headers)
    assert restored.status_code == 200
    assert client.get(f"{API}/categories/{category['id']}").status_code == 200


def test_reorder(client, admin):
    first = client.post(f"{API}/categories", json={"name": "Alpha"}, headers=admin.headers).json()["data"]["category"]
    second = client.post(f"{API}/categories", json={"name": "Beta"}, headers=admin.headers).json()["data"]["category"]
    response = client.put(
        f"{API}/categories/reorder",
        json={"orders": [{"category_id": first["id"], "order": 2}, {"category_id": second["id"], "order": 1}]},
        headers=admin.headers,
    )
    assert response.status_code == 200
    listing = client.get(f"{API}/categories").json()
    assert [c["name"] for c in listing["data"]] == ["Beta", "Alpha"]
    assert listing["meta"]["pagination"]["totalItems"] == 2


def test_slug_collision_is_a_duplicate_key(client, admin, category):
    response = client.post(f"{API}/categories", json={"name": "hair-styling"}, headers=admin.headers)
    assert response.status_code == 409
    body = response.json()
    assert body["error"]["code"] == "DUPLICATE_KEY"
    assert body["message"] == "Slug already exists"
