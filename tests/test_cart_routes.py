def test_guest_gets_a_cart_token(client, make_plugin):
    plugin = make_plugin("Reverb Pro", 49.99)

    response = client.post("/cart/items", json={"plugin_id": plugin.id})

    assert response.status_code == 200
    body = response.json()
    assert body["added"] is True
    assert body["cart_token"]
    assert body["cart"]["item_count"] == 1

    token = body["cart_token"]
    again = client.get("/cart", headers={"X-Cart-Token": token})
    assert again.json()["cart"]["subtotal"] == 49.99


def test_duplicate_add_is_rejected_without_change(client, make_plugin):
    plugin = make_plugin()
    token = client.post("/cart/items", json={"plugin_id": plugin.id}).json()["cart_token"]

    response = client.post(
        "/cart/items", json={"plugin_id": plugin.id}, headers={"X-Cart-Token": token}
    )

    body = response.json()
    assert body["added"] is False
    assert body["notice"]["title"] == "Already in Cart"
    assert body["cart"]["item_count"] == 1


def test_add_unknown_plugin(client):
    response = client.post("/cart/items", json={"plugin_id": 999})

    assert response.status_code == 404


def test_apply_and_remove_coupon(client, auth_headers, make_plugin, make_coupon):
    make_coupon(code="SAVE20", discount_value=20.0)
    client.post("/cart/items", json={"plugin_id": make_plugin("A", 49.99).id}, headers=auth_headers)
    client.post("/cart/items", json={"plugin_id": make_plugin("B", 30.00).id}, headers=auth_headers)

    response = client.post("/cart/coupon", json={"code": "save20"}, headers=auth_headers)

    assert response.status_code == 200
    cart = response.json()["cart"]
    assert cart["discount"] == 16.0
    assert cart["total"] == 63.99
    assert "cart_token" not in response.json()

    removed = client.delete("/cart/coupon", headers=auth_headers).json()["cart"]
    assert removed["applied_coupon"] is None
    assert removed["total"] == 79.99


def test_invalid_coupon_message(client, auth_headers, make_plugin):
    client.post("/cart/items", json={"plugin_id": make_plugin().id}, headers=auth_headers)

    response = client.post("/cart/coupon", json={"code": "NOPE"}, headers=auth_headers)

    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid coupon code"


def test_remove_and_clear(client, auth_headers, make_plugin):
    a = make_plugin("A", 10.0)
    b = make_plugin("B", 20.0)
    client.post("/cart/items", json={"plugin_id": a.id}, headers=auth_headers)
    client.post("/cart/items", json={"plugin_id": b.id}, headers=auth_headers)

    response = client.delete(f"/cart/items/{a.id}", headers=auth_headers)
    assert response.json()["cart"]["item_count"] == 1

    assert client.delete(f"/cart/items/{a.id}", headers=auth_headers).status_code == 404

    cleared = client.delete("/cart", headers=auth_headers).json()
    assert cleared["cart"]["items"] == []


def test_merge_guest_cart_on_sign_in(client, auth_headers, make_plugin):
    a = make_plugin("A", 10.0)
    b = make_plugin("B", 20.0)

    client.post("/cart/items", json={"plugin_id": a.id}, headers=auth_headers)
    token = client.post("/cart/items", json={"plugin_id": a.id}).json()["cart_token"]
    client.post("/cart/items", json={"plugin_id": b.id}, headers={"X-Cart-Token": token})

    response = client.post("/cart/merge", json={"guest_token": token}, headers=auth_headers)

    assert response.status_code == 200
    assert sorted(i["id"] for i in response.json()["cart"]["items"]) == [a.id, b.id]
    # A was already in the signed-in cart
    assert response.json()["merged"] == 1

    guest = client.get("/cart", headers={"X-Cart-Token": token}).json()
    assert guest["cart"]["items"] == []


def test_merge_requires_login(client):
    assert client.post("/cart/merge", json={"guest_token": "abc"}).status_code == 401
