def add(client, headers, **item):
    return client.post("/cart/addtocart", json=item, headers=headers)


def test_cart_requires_login(client):
    assert client.get("/cart/getcart").status_code == 401


def test_empty_cart(client, user_headers):
    assert client.get("/cart/getcart", headers=user_headers).json() == {"items": [], "total_price": 0}


def test_same_product_and_size_merges(client, user_headers, catalog):
    add(client, user_headers, productId=str(catalog.a), quantity=2)
    res = add(client, user_headers, product=str(catalog.a), quantity=3)
    items = res.json()["items"]
    assert len(items) == 1
    assert items[0]["quantity"] == 5
    assert res.json()["total_price"] == 500


def test_quantity_never_drops_below_one(client, user_headers, catalog):
    add(client, user_headers, productId=str(catalog.a), quantity=2)
    res = add(client, user_headers, productId=str(catalog.a), quantity=-10)
    assert res.json()["items"][0]["quantity"] == 1


def test_different_sizes_are_separate_lines(client, user_headers, catalog):
    add(client, user_headers, productId=str(catalog.sized), sizeId=str(catalog.entry_s))
    res = add(client, user_headers, productId=str(catalog.sized), size="M")
    items = res.json()["items"]
    assert [i["size"] for i in items] == ["S", "M"]
    # discounted prices 270 + 288
    assert res.json()["total_price"] == 558


def test_sized_product_needs_a_size(client, user_headers, catalog):
    res = add(client, user_headers, productId=str(catalog.sized))
    assert res.status_code == 400
    assert res.json() == {"detail": "Size required for Kurta"}


def test_unknown_product(client, user_headers):
    res = add(client, user_headers, productId="5f1d7f1d7f1d7f1d7f1d7f1d")
    assert res.status_code == 404


def test_update_by_item_id(client, user_headers, catalog):
    item = add(client, user_headers, productId=str(catalog.a)).json()["items"][0]
    res = client.put(f"/cart/updatecart/{item['_id']}", json={"quantity": 4}, headers=user_headers)
    assert res.json()["items"][0]["quantity"] == 4

    res = client.put(f"/cart/updatecart/{item['_id']}", json={"quantity": 0}, headers=user_headers)
    assert res.json()["items"][0]["quantity"] == 1


def test_update_by_product_and_size(client, user_headers, catalog):
    add(client, user_headers, productId=str(catalog.sized), size="S")
    res = client.put("/cart/updatecart", json={"product": str(catalog.sized), "size": "S", "quantity": 3},
                     headers=user_headers)
    assert res.json()["items"][0]["quantity"] == 3

    res = client.put("/cart/updatecart", json={"product": str(catalog.sized), "size": "S"}, headers=user_headers)
    assert res.status_code == 400


def test_update_missing_line(client, user_headers, catalog):
    add(client, user_headers, productId=str(catalog.a))
    res = client.put("/cart/updatecart", json={"product": str(catalog.b), "quantity": 3}, headers=user_headers)
    assert res.status_code == 404


def test_remove_and_clear(client, user_headers, catalog):
    first = add(client, user_headers, productId=str(catalog.a)).json()["items"][0]
    add(client, user_headers, productId=str(catalog.b))
    add(client, user_headers, productId=str(catalog.sized), size="M")

    res = client.delete(f"/cart/removecart/{first['_id']}", headers=user_headers)
    assert [i["product_name"] for i in res.json()["items"]] == ["Cap", "Kurta"]

    res = client.delete("/cart/removecart", params={"product_id": str(catalog.sized), "size": "M"},
                        headers=user_headers)
    assert [i["product_name"] for i in res.json()["items"]] == ["Cap"]

    client.delete("/cart/clearcart", headers=user_headers)
    assert client.get("/cart/getcart", headers=user_headers).json()["items"] == []


def test_carts_are_per_user(client, user_headers, admin_headers, catalog):
    add(client, user_headers, productId=str(catalog.a))
    assert client.get("/cart/getcart", headers=admin_headers).json()["items"] == []
