"""End-to-end tests through the HTTP API."""
OWNER_HEADERS = {"X-Owner-Id": "user-123"}


def _jpeg_files(make_image, count):
    return [("images", (f"photo{i}.jpg", make_image(1200, 900), "image/jpeg")) for i in range(count)]


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


async def test_upload_then_create_read_delete(client, storage, make_image, make_payload):
    upload = await client.post("/v1/images", files=_jpeg_files(make_image, 2), headers=OWNER_HEADERS)
    assert upload.status_code == 200
    body = upload.json()
    assert body["success"] is True
    assert body["count"] == 2
    assert len(storage.objects) == 8
    first = body["images"][0]
    assert first["isPrimary"] is True
    assert first["mimeType"] == "image/webp"
    assert (first["width"], first["height"]) == (1200, 900)

    created = await client.post(
        "/v1/listings", json=make_payload(images=body["images"]), headers=OWNER_HEADERS
    )
    assert created.status_code == 201
    listing = created.json()["listing"]
    assert listing["status"] == "pending"
    assert listing["stories"] == -1
    assert [i["object_key"] for i in listing["images"]] == [i["key"] for i in body["images"]]

    fetched = await client.get(f"/v1/listings/{listing['id']}", headers=OWNER_HEADERS)
    assert fetched.status_code == 200
    assert fetched.json()["listing"]["id"] == listing["id"]

    hidden = await client.get(f"/v1/listings/{listing['id']}", headers={"X-Owner-Id": "someone-else"})
    assert hidden.status_code == 404

    mine = await client.get("/v1/listings", params={"status": "pending"}, headers=OWNER_HEADERS)
    assert mine.json()["count"] == 1

    deleted = await client.delete(f"/v1/listings/{listing['id']}", headers=OWNER_HEADERS)
    assert deleted.json() == {"success": True}
    assert storage.objects == {}
    assert (await client.get(f"/v1/listings/{listing['id']}", headers=OWNER_HEADERS)).status_code == 404


async def test_upload_requires_owner(client, make_image):
    response = await client.post("/v1/images", files=_jpeg_files(make_image, 1))
    assert response.status_code == 401


async def test_upload_without_files(client):
    response = await client.post("/v1/images", headers=OWNER_HEADERS)
    assert response.status_code == 400
    assert response.json()["details"] == [{"field": "images", "message": "No images provided"}]


async def test_upload_rejects_unsupported_type(client, storage):
    files = [("images", ("doc.pdf", b"%PDF-1.4", "application/pdf"))]
    response = await client.post("/v1/images", files=files, headers=OWNER_HEADERS)

    assert response.status_code == 415
    assert response.json()["error"].startswith("Invalid file type")
    assert storage.objects == {}


async def test_upload_rejects_corrupt_image(client):
    files = [("images", ("x.jpg", b"not really a jpeg", "image/jpeg"))]
    response = await client.post("/v1/images", files=files, headers=OWNER_HEADERS)
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid image file"}


async def test_validation_errors_list_every_field(client, make_payload):
    payload = make_payload(bedrooms=-2, title="short")
    response = await client.post("/v1/listings", json=payload, headers=OWNER_HEADERS)

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Validation failed"
    assert {d["field"] for d in body["details"]} == {"bedrooms", "title"}


async def test_rate_limited_submission(client, services, make_payload):
    services.gate.allowed = False
    services.gate.remaining = 0

    response = await client.post("/v1/listings", json=make_payload(), headers=OWNER_HEADERS)

    assert response.status_code == 429
    assert response.headers["X-RateLimit-Remaining"] == "0"
    assert int(response.headers["Retry-After"]) > 0


async def test_unknown_listing(client):
    response = await client.get("/v1/listings/lst_missing")
    assert response.status_code == 404
    assert response.json() == {"error": "Listing not found"}
