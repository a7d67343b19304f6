def add(client, headers, product_id, quantity=1, variant_id="v1"):
    return client.post("/api/cart/items", json={"product_id": product_id, "variant_id": variant_id,
                                                "quantity": quantity}, headers=headers)


def test_create_cart_is_idempotent(client, user_headers, user_id):
    first = client.post("/api/cart", headers=user_headers)
    assert first.status_code == 201
    assert first.json()["items"] == []
    assert first.json()["user_id"] == user_id
    second = client.post("/api/cart", headers=user_headers)
    assert second.json()["id"] == first.json()["id"]


def test_get_missing_cart(client, user_headers):
    assert client.get("/api/cart", headers=user_headers).status_code == 404


def test_add_item_creates_cart_and_merges_exact_key(client, user_headers, make_product):
    apple = make_product("Apple", out_price=100)
    add(client, user_headers, apple, 2)
    response = add(client, user_headers, apple, 3)
    assert response.status_code == 200
    cart = response.json()
    assert len(cart["items"]) == 1
    assert cart["items"][0]["quantity"] == 5
    assert cart["items"][0]["name"] == "Apple"
    assert cart["subtotal"] == 500


def test_different_variant_is_a_new_line(client, user_headers, db, make_product):
    apple = make_product("Apple")
    db["product"].update_one({"name": "Apple"}, {"$push": {"variants": {
        "id": "v2", "weight": "2kg", "in_price": 150, "out_price": 190, "stock_quantity": 3}}})
    add(client, user_headers, apple, 1, "v1")
    cart = add(client, user_headers, apple, 1, "v2").json()
    assert [(i["variant_id"], i["quantity"]) for i in cart["items"]] == [("v1", 1), ("v2", 1)]


def test_add_unknown_or_unlisted_product(client, user_headers, make_product):
    hidden = make_product("Hidden", listed=False)
    assert add(client, user_headers, hidden).status_code == 404
    assert add(client, user_headers, make_product("Pear"), variant_id="nope").status_code == 404
    assert add(client, user_headers, "0123456789abcdef01234567").status_code == 404


def test_quantity_must_be_positive(client, user_headers, make_product):
    assert add(client, user_headers, make_product("Apple"), 0).status_code == 422


def test_update_quantity(client, user_headers, make_product):
    apple = make_product("Apple")
    add(client, user_headers, apple, 2)
    body = {"product_id": apple, "variant_id": "v1", "quantity": 7}
    response = client.put("/api/cart/items", json=body, headers=user_headers)
    assert response.status_code == 200
    assert response.json()["items"][0]["quantity"] == 7

    missing = client.put("/api/cart/items", json={**body, "variant_id": "v9"}, headers=user_headers)
    assert missing.status_code == 404


def test_remove_item(client, user_headers, make_product):
    apple, pear = make_product("Apple"), make_product("Pear")
    add(client, user_headers, apple)
    add(client, user_headers, pear)
    response = client.post("/api/cart/items/remove", json={"product_id": apple, "variant_id": "v1"},
                           headers=user_headers)
    assert response.status_code == 200
    assert [i["product_id"] for i in response.json()["items"]] == [pear]
    again = client.post("/api/cart/items/remove", json={"product_id": apple, "variant_id": "v1"},
                        headers=user_headers)
    assert again.status_code == 404


def test_clear_cart(client, user_headers, make_product):
    add(client, user_headers, make_product("Apple"))
    response = client.delete("/api/cart", headers=user_headers)
    assert response.status_code == 200
    assert response.json() == {"message": "Cart cleared successfully"}
    assert client.get("/api/cart", headers=user_headers).status_code == 404
    assert client.delete("/api/cart", headers=user_headers).status_code == 404


def test_carts_are_per_user(client, db, user_headers, make_product):
    from conftest import auth, insert_user

    other = auth(insert_user(db, "bob@example.com", name="Bob"))
    add(client, user_headers, make_product("Apple"))
    assert client.get("/api/cart", headers=other).status_code == 404


def test_cart_requires_login(client):
    assert client.get("/api/cart").status_code == 401
