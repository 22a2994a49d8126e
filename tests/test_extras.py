from bson import ObjectId

IMAGE = {"filename": "hero.jpg", "filepath": "https://cdn.example.com/hero.jpg"}


class TestBanners:
    def test_no_banners(self, client):
        res = client.get("/banner/getbanners")
        assert res.status_code == 404
        assert res.json() == {"detail": "No banners found"}

    def test_banner_lifecycle(self, client, admin_headers):
        res = client.post("/banner/addbanner", json={"bannerimage": [IMAGE]}, headers=admin_headers)
        assert res.status_code == 201
        banner_id = res.json()["data"]["_id"]
        assert client.get("/banner/getbanners").json()[0]["bannerimage"] == [IMAGE]

        other = {"filename": "sale.jpg", "filepath": "https://cdn.example.com/sale.jpg"}
        res = client.put(f"/banner/updatebanner/{banner_id}", json={"bannerimage": [other]}, headers=admin_headers)
        assert res.json()["data"]["bannerimage"] == [other]

        assert client.delete(f"/banner/deletebanner/{banner_id}", headers=admin_headers).status_code == 200
        assert client.get("/banner/getbanners").status_code == 404

    def test_banner_needs_an_image(self, client, admin_headers):
        assert client.post("/banner/addbanner", json={"bannerimage": []}, headers=admin_headers).status_code == 422

    def test_banner_writes_are_admin_only(self, client, user_headers):
        res = client.post("/banner/addbanner", json={"bannerimage": [IMAGE]}, headers=user_headers)
        assert res.status_code == 403


class TestWishlist:
    def test_adding_twice_keeps_one_entry(self, client, user_headers, catalog):
        client.post("/wishlist/wish", json={"productId": str(catalog.a)}, headers=user_headers)
        res = client.post("/wishlist/wish", json={"product_id": str(catalog.a)}, headers=user_headers)
        assert [p["_id"] for p in res.json()["wishlist"]] == [str(catalog.a)]

    def test_keeps_insertion_order(self, client, user_headers, catalog):
        for product in (catalog.b, catalog.sized, catalog.a):
            client.post("/wishlist/wish", json={"productId": str(product)}, headers=user_headers)
        res = client.get("/wishlist/getwish", headers=user_headers)
        assert [p["product_name"] for p in res.json()["wishlist"]] == ["Cap", "Kurta", "Tee"]

    def test_remove(self, client, user_headers, catalog):
        client.post("/wishlist/wish", json={"productId": str(catalog.a)}, headers=user_headers)
        res = client.delete(f"/wishlist/deletewish/{catalog.a}", headers=user_headers)
        assert res.json()["wishlist"] == []

    def test_unknown_product(self, client, user_headers):
        res = client.post("/wishlist/wish", json={"productId": str(ObjectId())}, headers=user_headers)
        assert res.status_code == 404

    def test_deleted_products_drop_out(self, client, db, user_headers, catalog):
        client.post("/wishlist/wish", json={"productId": str(catalog.a)}, headers=user_headers)
        client.post("/wishlist/wish", json={"productId": str(catalog.b)}, headers=user_headers)
        db["product"].delete_one({"_id": catalog.a})
        res = client.get("/wishlist/getwish", headers=user_headers)
        assert [p["product_name"] for p in res.json()["wishlist"]] == ["Cap"]


MESSAGE = {"name": "Asha", "email": "asha@example.com", "contact": "9876543210", "message": "Where is my parcel?"}


class TestMessages:
    def test_send_and_read(self, client, user_headers, admin_headers):
        res = client.post("/message/sendmessage", json=MESSAGE, headers=user_headers)
        assert res.status_code == 201
        message_id = res.json()["_id"]

        assert client.get("/message/getmessage", headers=user_headers).status_code == 403
        assert len(client.get("/message/getmessage", headers=admin_headers).json()) == 1

        res = client.put(f"/message/updatemessage/{message_id}", json={"contact": "000"}, headers=admin_headers)
        assert res.json()["contact"] == "000"
        assert res.json()["message"] == MESSAGE["message"]

        res = client.get(f"/message/getsinglemessage/{message_id}", headers=admin_headers)
        assert res.json()["name"] == "Asha"

        assert client.delete(f"/message/deletmessage/{message_id}", headers=admin_headers).status_code == 200
        assert client.get(f"/message/getsinglemessage/{message_id}", headers=admin_headers).status_code == 404

    def test_reply_sends_mail(self, client, db, user_headers, admin_headers, mailer):
        message_id = client.post("/message/sendmessage", json=MESSAGE, headers=user_headers).json()["_id"]
        res = client.post(f"/message/reply/{message_id}", json={"body": "It ships today."}, headers=admin_headers)
        assert res.json() == {"message": "Email Sent Successfully"}
        assert mailer.sent[-1]["To"] == MESSAGE["email"]
        assert "It ships today." in mailer.sent[-1].get_body(("html",)).get_content()
        assert db["message"].find_one({"_id": ObjectId(message_id)})["replied_at"] is not None


def test_root_and_health(client):
    assert client.get("/").json()["status"] == "ok"
    assert client.get("/test").json()["database"] == "connected"


def test_one_template_environment_is_shared(app, mailer):
    assert app.state.templates is mailer.templates
    assert "123456" in mailer.templates.get_template("otp.html").render(otp="123456", user={}, minutes=10)
