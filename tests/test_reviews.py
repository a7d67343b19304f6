from conftest import auth, insert_user


def review(client, headers, product_id, rating=5, comment="Sweet and fresh"):
    return client.post(f"/api/products/{product_id}/reviews", json={"rating": rating, "comment": comment},
                       headers=headers)


def test_submitted_review_is_pending_and_hidden(client, user_headers, make_product):
    apple = make_product("Apple")
    response = review(client, user_headers, apple)
    assert response.status_code == 201
    assert response.json()["status"] == "pending"
    assert response.json()["user_name"] == "Jane"
    assert client.get(f"/api/products/{apple}/reviews").json()["data"] == []


def test_one_review_per_user_per_product(client, user_headers, make_product):
    apple = make_product("Apple")
    review(client, user_headers, apple)
    again = review(client, user_headers, apple, rating=1)
    assert again.status_code == 409
    assert again.json()["status"] == 409


def test_review_unknown_product(client, user_headers):
    assert review(client, user_headers, "0123456789abcdef01234567").status_code == 404


def test_rating_bounds(client, user_headers, make_product):
    assert review(client, user_headers, make_product("Apple"), rating=6).status_code == 422


def test_approve_publishes_and_updates_rating(client, db, user_headers, admin_headers, make_product):
    apple = make_product("Apple")
    first = review(client, user_headers, apple, rating=5).json()
    other = auth(insert_user(db, "bob@example.com", name="Bob"))
    second = review(client, other, apple, rating=2).json()

    approved = client.patch(f"/api/admin/reviews/{first['id']}/approve", headers=admin_headers)
    assert approved.status_code == 200
    assert approved.json()["status"] == "approved"
    declined = client.patch(f"/api/admin/reviews/{second['id']}/decline", headers=admin_headers)
    assert declined.json()["status"] == "declined"

    public = client.get(f"/api/products/{apple}/reviews").json()["data"]
    assert [r["id"] for r in public] == [first["id"]]
    product = db["product"].find_one({"name": "Apple"})
    assert product["rating"] == 5
    assert product["num_reviews"] == 1


def test_moderation_is_one_way(client, user_headers, admin_headers, make_product):
    created = review(client, user_headers, make_product("Apple")).json()
    client.patch(f"/api/admin/reviews/{created['id']}/approve", headers=admin_headers)

    decline = client.patch(f"/api/admin/reviews/{created['id']}/decline", headers=admin_headers)
    assert decline.status_code == 409
    assert decline.json() == {"message": "Review is already approved", "status": 409}
    assert client.patch(f"/api/admin/reviews/{created['id']}/approve", headers=admin_headers).status_code == 409


def test_moderating_missing_review(client, admin_headers):
    response = client.patch("/api/admin/reviews/0123456789abcdef01234567/approve", headers=admin_headers)
    assert response.status_code == 404


def test_admin_listing_filters_by_status(client, db, user_headers, admin_headers, make_product):
    apple = make_product("Apple")
    first = review(client, user_headers, apple).json()
    review(client, auth(insert_user(db, "bob@example.com", name="Bob")), apple)
    client.patch(f"/api/admin/reviews/{first['id']}/approve", headers=admin_headers)

    pending = client.get("/api/admin/reviews?status=pending", headers=admin_headers).json()
    assert len(pending["data"]) == 1 and pending["data"][0]["user_name"] == "Bob"
    everything = client.get("/api/admin/reviews?limit=1", headers=admin_headers).json()
    assert everything["totalPages"] == 2
    assert client.get("/api/admin/reviews", headers=user_headers).status_code == 403
