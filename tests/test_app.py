from storefront.errors import Internal


class TestEnvelope:
    def test_health(self, client):
        r = client.get("/")
        body = r.get_json()
        assert r.status_code == 200
        assert body["status"] is True
        assert body["message"] == "API running"
        assert "API_TIME" in body["data"]

    def test_unknown_route_uses_error_envelope(self, client):
        r = client.get("/nope")
        body = r.get_json()
        assert r.status_code == 404
        assert body["status"] is False
        assert body["data"]["code"] == "NOT_FOUND"

    def test_unexpected_error_is_masked(self, app, client):
        @app.get("/boom")
        def boom():
            raise RuntimeError("secret detail")

        r = client.get("/boom")
        assert r.status_code == 500
        assert r.get_json()["message"] == "Internal server error"

    def test_error_carries_code_and_data(self):
        body = Internal("could not generate a unique coupon code", data={"kind": "coupon"}).as_api()
        assert body["status"] is False
        assert body["data"]["code"] == "SERVER_ERROR"
        assert body["data"]["kind"] == "coupon"
