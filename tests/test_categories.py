import math


def create(client, headers, name, **fields):
    data = {"name": name, **{k: str(v) for k, v in fields.items()}}
    return client.post("/api/categories", data=data, headers=headers)


def test_create_category(client, admin_headers):
    response = create(client, admin_headers, "Fruits", description="Fresh fruit", priority=1)
    assert response.status_code == 201
    body = response.json()
    assert body["name"] == "Fruits"
    assert body["priority"] == 1
    assert body["is_listed"] is True
    assert body["is_deleted"] is False
    assert "id" in body


def test_unassigned_priority_by_default(client, admin_headers):
    body = create(client, admin_headers, "Spices").json()
    assert body["priority"] == 101


def test_duplicate_name_differing_only_by_case_conflicts(client, admin_headers):
    assert create(client, admin_headers, "Fruits").status_code == 201
    response = create(client, admin_headers, "fRUITS")
    assert response.status_code == 409
    assert response.json() == {"message": "Category already exists", "status": 409}


def test_name_with_regex_characters_is_matched_literally(client, admin_headers):
    assert create(client, admin_headers, "Nuts (raw)").status_code == 201
    assert create(client, admin_headers, "Nuts Xrawx").status_code == 201
    assert create(client, admin_headers, "nuts (RAW)").status_code == 409


def test_photo_is_uploaded(client, admin_headers, uploader):
    response = client.post(
        "/api/categories",
        data={"name": "Greens"},
        files={"photo": ("greens.png", b"\x89PNG", "image/png")},
        headers=admin_headers,
    )
    assert response.status_code == 201
    assert response.json()["photo"] == "https://cdn.example.com/categories/greens.png"
    assert uploader.uploads[0][:2] == ("greens.png", "categories")


def test_pagination(client, admin_headers):
    for i in range(15):
        create(client, admin_headers, f"Category {i}")
    response = client.get("/api/categories?page=1&limit=10", headers=admin_headers)
    assert response.status_code == 200
    body = response.json()
    assert len(body["data"]) == 10
    assert body["totalPages"] == math.ceil(15 / 10)
    second = client.get("/api/categories?page=2&limit=10", headers=admin_headers).json()
    assert len(second["data"]) == 5


def test_listing_sorted_by_priority(client, admin_headers):
    create(client, admin_headers, "Third", priority=3)
    create(client, admin_headers, "Unassigned")
    create(client, admin_headers, "First", priority=1)
    names = [c["name"] for c in client.get("/api/categories", headers=admin_headers).json()["data"]]
    assert names == ["First", "Third", "Unassigned"]


def test_prefix_search(client, admin_headers):
    create(client, admin_headers, "Fresh Juice")
    create(client, admin_headers, "fruits")
    create(client, admin_headers, "Dry Fruits")
    frozen = create(client, admin_headers, "Frozen").json()
    client.delete(f"/api/categories/{frozen['id']}", headers=admin_headers)

    response = client.get("/api/categories/search?name=Fr", headers=admin_headers)
    assert response.status_code == 200
    names = sorted(c["name"] for c in response.json()["data"])
    assert names == ["Fresh Juice", "fruits"]


def test_available_priority_slots(client, admin_headers):
    for name, priority in [("A", 1), ("B", 3), ("C", 5), ("D", 101), ("E", 101)]:
        assert create(client, admin_headers, name, priority=priority).status_code == 201
    response = client.get("/api/categories/priorities", headers=admin_headers)
    assert response.json() == {"priorities": [2, 4, 6, 7, 8, 9, 10]}


def test_priority_slot_is_exclusive(client, admin_headers):
    create(client, admin_headers, "A", priority=4)
    response = create(client, admin_headers, "B", priority=4)
    assert response.status_code == 409
    assert create(client, admin_headers, "C", priority=11).status_code == 400


def test_deleted_category_frees_its_priority(client, admin_headers):
    cat = create(client, admin_headers, "A", priority=2).json()
    client.delete(f"/api/categories/{cat['id']}", headers=admin_headers)
    assert 2 in client.get("/api/categories/priorities", headers=admin_headers).json()["priorities"]


def test_list_and_unlist(client, admin_headers):
    cat = create(client, admin_headers, "Fruits").json()
    url = f"/api/categories/{cat['id']}"

    already = client.patch(f"{url}?action=list", headers=admin_headers)
    assert already.status_code == 400
    assert already.json() == {"message": "Category is already listed.", "status": 400}

    unlisted = client.patch(f"{url}?action=unlist", headers=admin_headers)
    assert unlisted.status_code == 200
    assert unlisted.json() == {"message": "Category unlisted successfully"}
    assert client.get("/api/categories/listed").json()["data"] == []

    assert client.patch(f"{url}?action=unlist", headers=admin_headers).status_code == 400
    assert client.patch(f"{url}?action=list", headers=admin_headers).status_code == 200


def test_soft_delete_hides_but_keeps_record(client, admin_headers, db):
    cat = create(client, admin_headers, "Fruits").json()
    assert client.get(f"/api/categories/{cat['id']}").status_code == 200

    response = client.delete(f"/api/categories/{cat['id']}", headers=admin_headers)
    assert response.status_code == 200

    assert client.get(f"/api/categories/{cat['id']}").status_code == 404
    assert client.get("/api/categories", headers=admin_headers).json()["data"] == []
    assert client.get("/api/categories/listed").json()["data"] == []
    stored = db["category"].find_one({"name": "Fruits"})
    assert stored is not None and stored["is_deleted"] is True

    assert client.delete(f"/api/categories/{cat['id']}", headers=admin_headers).status_code == 404
    assert client.patch(f"/api/categories/{cat['id']}?action=unlist", headers=admin_headers).status_code == 404


def test_name_reusable_after_soft_delete(client, admin_headers):
    cat = create(client, admin_headers, "Fruits").json()
    client.delete(f"/api/categories/{cat['id']}", headers=admin_headers)
    assert create(client, admin_headers, "Fruits").status_code == 201


def test_update_rechecks_name_excluding_self(client, admin_headers):
    fruits = create(client, admin_headers, "Fruits").json()
    create(client, admin_headers, "Vegetables")
    url = f"/api/categories/{fruits['id']}"

    conflict = client.put(url, data={"name": "VEGETABLES"}, headers=admin_headers)
    assert conflict.status_code == 409

    renamed = client.put(url, data={"name": "FRUITS", "description": "All fruit"}, headers=admin_headers)
    assert renamed.status_code == 200
    assert renamed.json()["name"] == "FRUITS"
    assert renamed.json()["description"] == "All fruit"


def test_update_missing_category(client, admin_headers):
    response = client.put("/api/categories/0123456789abcdef01234567", data={"name": "X"}, headers=admin_headers)
    assert response.status_code == 404
    assert client.get("/api/categories/not-an-id").status_code == 404


def test_admin_routes_require_admin(client, user_headers):
    assert create(client, user_headers, "Fruits").status_code == 403
    assert client.get("/api/categories").status_code == 401


def test_subcategory_lifecycle(client, admin_headers):
    fruits = create(client, admin_headers, "Fruits").json()
    vegetables = create(client, admin_headers, "Vegetables").json()

    def sub(name, parent, **fields):
        data = {"name": name, "category_id": parent, **{k: str(v) for k, v in fields.items()}}
        return client.post("/api/subcategories", data=data, headers=admin_headers)

    citrus = sub("Citrus", fruits["id"], priority=1).json()
    sub("Berries", fruits["id"], priority=2)
    sub("Roots", vegetables["id"])
    assert sub("citrus", fruits["id"]).status_code == 409
    assert sub("Orphan", "0123456789abcdef01234567").status_code == 404

    listed = client.get(f"/api/subcategories/listed?category_id={fruits['id']}").json()
    assert [s["name"] for s in listed["data"]] == ["Citrus", "Berries"]
    assert listed["totalPages"] == 1

    client.patch(f"/api/subcategories/{citrus['id']}?action=unlist", headers=admin_headers)
    listed = client.get(f"/api/subcategories/listed?category_id={fruits['id']}").json()
    assert [s["name"] for s in listed["data"]] == ["Berries"]

    slots = client.get("/api/subcategories/priorities", headers=admin_headers).json()
    assert slots["priorities"] == [3, 4, 5, 6, 7, 8, 9, 10]

    assert client.get(f"/api/subcategories/{citrus['id']}").json()["category_id"] == fruits["id"]


def test_listed_subcategories_of_deleted_category_are_hidden(client, admin_headers):
    fruits = create(client, admin_headers, "Fruits").json()
    client.post("/api/subcategories", data={"name": "Citrus", "category_id": fruits["id"]}, headers=admin_headers)
    url = f"/api/subcategories/listed?category_id={fruits['id']}"
    assert [s["name"] for s in client.get(url).json()["data"]] == ["Citrus"]

    client.delete(f"/api/categories/{fruits['id']}", headers=admin_headers)
    assert client.get(url).json() == {"data": [], "totalPages": 0}


def test_update_keeps_own_priority(client, admin_headers):
    fruits = create(client, admin_headers, "Fruits", priority=4).json()
    create(client, admin_headers, "Vegetables", priority=5)
    url = f"/api/categories/{fruits['id']}"

    same = client.put(url, data={"priority": "4", "description": "Seasonal"}, headers=admin_headers)
    assert same.status_code == 200
    assert same.json()["priority"] == 4

    taken = client.put(url, data={"priority": "5"}, headers=admin_headers)
    assert taken.status_code == 409
