import asyncio

from app.services.blob_store import get_blob_store
from app.services.image_versions import get_image_pipeline
from tests.helpers import make_jpeg, make_png, register_and_login, upload


def test_register_login_and_me(client):
    headers = register_and_login(client, "alice")

    response = client.get("/auth/me", headers=headers)
    assert response.status_code == 200
    body = response.json()
    assert body["username"] == "alice"
    assert body["tier"] == "FREE"
    assert body["storageUsed"] == 0


def test_login_with_wrong_password(client):
    register_and_login(client, "alice")
    response = client.post("/auth/login", json={"email": "alice@example.com", "password": "nope-nope"})
    assert response.status_code == 401


def test_upload_requires_authentication(client):
    response = upload(client, {}, make_jpeg())
    assert response.status_code == 401


def test_upload_and_fetch_image(client, auth_headers):
    content = make_jpeg(1600, 900)
    response = upload(client, auth_headers, content, title="Harbour")

    assert response.status_code == 201, response.text
    body = response.json()
    assert body["url"].startswith("/images/alice/photo/")
    assert body["urlThumb"].endswith("_thumb.jpg")
    assert body["urlMedium"].endswith("_medium.jpg")
    assert body["fileSize"] == len(content)
    assert isinstance(body["id"], int)

    image = client.get(body["url"])
    assert image.status_code == 200
    assert image.headers["content-type"] == "image/jpeg"
    assert image.headers["cache-control"] == "private, max-age=86400"
    assert image.content == content

    photo = client.get(f"/users/alice/photos/{body['id']}", headers=auth_headers).json()
    assert photo["title"] == "Harbour"
    assert photo["imageUrl"] == body["url"]


def test_missing_image_is_404(client):
    response = client.get("/images/alice/photo/0123456789abcdef.jpg")
    assert response.status_code == 404
    assert response.json()["code"] == "NOT_FOUND"


def test_png_is_rejected_with_error_body(client, auth_headers):
    response = upload(client, auth_headers, make_png(), filename="fake.jpg")

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "ValidationError"
    assert body["code"] == "INVALID_MAGIC_BYTES"
    assert body["message"] == "Only JPEG images are allowed"
    assert "details" in body
    assert body["request_id"] == response.headers["X-Request-ID"]


def test_oversized_file_is_413(client, auth_headers):
    response = upload(client, auth_headers, make_jpeg(pad_to=10 * 1024 * 1024 + 1))

    assert response.status_code == 413
    body = response.json()
    assert body["code"] == "FILE_TOO_LARGE"
    assert "Free tier limit of 10MB per file" in body["message"]


def test_invalid_album_id_is_400(client, auth_headers):
    response = upload(client, auth_headers, make_jpeg(), albumId="abc")
    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_INPUT"


def test_quota_reflects_uploads(client, auth_headers):
    content = make_jpeg()
    upload(client, auth_headers, content)

    quota = client.get("/users/alice/quota", headers=auth_headers).json()
    assert quota["tier"] == "FREE"
    assert quota["storageUsed"] == len(content)
    assert quota["storageLimit"] == 50 * 1024 * 1024
    assert quota["photoCount"] == 1
    assert quota["photoLimit"] == 20

    reconciled = client.post("/users/alice/quota/reconcile", headers=auth_headers).json()
    assert reconciled["storageUsed"] == len(content)


def test_duplicate_upload_returns_first_response(client, auth_headers):
    content = make_jpeg()
    first = upload(client, auth_headers, content, idempotencyKey="abc-1").json()
    second = upload(client, auth_headers, content, idempotencyKey="abc-1")

    assert second.status_code == 201
    assert second.json()["url"] == first["url"]
    quota = client.get("/users/alice/quota", headers=auth_headers).json()
    assert quota["storageUsed"] == len(content)
    assert quota["photoCount"] == 1


def _stored_photo(username: str) -> dict:
    """Photo original plus renditions written straight into the app's storage (no catalog row)."""

    async def store():
        blob = await get_blob_store().store(make_jpeg(), username, "photo", "roll.jpg", "image/jpeg")
        versions = await get_image_pipeline().generate_versions(blob.relative_path)
        return {
            "url": f"/images/{blob.relative_path}",
            "urlThumb": f"/images/{versions.thumb_path}",
            "size": blob.size,
        }

    return asyncio.run(store())


def test_json_create_then_update(client, auth_headers):
    stored = _stored_photo("alice")

    created = client.post(
        "/users/alice/photos",
        headers=auth_headers,
        json={"imageUrl": stored["url"], "title": "First", "takenAt": "2021-06-01"},
    )
    assert created.status_code == 201, created.text
    assert created.json()["imageUrlThumb"] == stored["urlThumb"]

    updated = client.post(
        "/users/alice/photos",
        headers=auth_headers,
        json={"imageUrl": stored["url"], "title": "Second"},
    )
    assert updated.status_code == 200
    assert updated.json()["id"] == created.json()["id"]
    assert updated.json()["title"] == "Second"
    quota = client.get("/users/alice/quota", headers=auth_headers).json()
    assert quota["storageUsed"] == stored["size"]
    assert quota["photoCount"] == 1


def test_json_create_rejects_renditions_and_avatars(client, auth_headers):
    photo = upload(client, auth_headers, make_jpeg()).json()
    avatar = upload(client, auth_headers, make_jpeg(200, 200), type="avatar").json()

    for url in (photo["urlMedium"], photo["urlThumb"], avatar["url"]):
        response = client.post("/users/alice/photos", headers=auth_headers, json={"imageUrl": url})
        assert response.status_code == 400, url
        assert response.json()["code"] == "INVALID_INPUT"

    quota = client.get("/users/alice/quota", headers=auth_headers).json()
    assert quota["photoCount"] == 1


def test_json_create_for_unknown_file_is_404(client, auth_headers):
    response = client.post(
        "/users/alice/photos",
        headers=auth_headers,
        json={"imageUrl": "/images/alice/photo/missing.jpg"},
    )
    assert response.status_code == 404


def test_list_photos_paging(client, auth_headers):
    for i in range(3):
        upload(client, auth_headers, make_jpeg(color=(i, i, i)))

    page = client.get("/users/alice/photos", headers=auth_headers, params={"page": 2, "pageSize": 2}).json()

    assert page["currentPage"] == 2
    assert page["pageSize"] == 2
    assert page["totalPhotos"] == 3
    assert page["totalPages"] == 2
    assert page["hasNext"] is False
    assert page["hasPrevious"] is True
    assert len(page["photos"]) == 1


def test_update_and_delete_photo(client, auth_headers):
    album = client.post("/users/alice/albums", headers=auth_headers, json={"name": "Trip"}).json()
    content = make_jpeg()
    photo = upload(client, auth_headers, content, albumId=album["id"]).json()

    detail = client.get(f"/users/alice/photos/{photo['id']}", headers=auth_headers).json()
    assert detail["albumId"] == album["id"]

    moved = client.patch(f"/users/alice/photos/{photo['id']}", headers=auth_headers, json={"albumId": ""})
    assert moved.status_code == 200
    assert moved.json()["albumId"] is None

    deleted = client.delete(f"/users/alice/photos/{photo['id']}", headers=auth_headers)
    assert deleted.status_code == 200
    assert deleted.json()["freedBytes"] == len(content)
    assert client.get(photo["url"]).status_code == 404
    assert client.get("/users/alice/quota", headers=auth_headers).json()["storageUsed"] == 0


def test_other_users_resources_are_forbidden(client, auth_headers):
    photo = upload(client, auth_headers, make_jpeg()).json()
    bob = register_and_login(client, "bob")

    assert client.get("/users/alice/photos", headers=bob).status_code == 403
    assert client.delete(f"/users/alice/photos/{photo['id']}", headers=bob).status_code == 403
    assert client.get("/users/alice/quota", headers=bob).status_code == 403
    # 자기 경로로 남의 사진 접근
    assert client.get(f"/users/bob/photos/{photo['id']}", headers=bob).status_code == 403


def test_profile_hides_quota_from_other_users(client, auth_headers):
    own = client.get("/users/alice", headers=auth_headers).json()
    assert own["storageUsed"] == 0
    assert own["tier"] == "FREE"

    public = client.get("/users/alice").json()
    assert public["username"] == "alice"
    assert "storageUsed" not in public
    assert "tier" not in public


def test_profile_update(client, auth_headers):
    response = client.patch("/users/alice", headers=auth_headers, json={"displayName": "Alice", "bio": "hi"})
    assert response.status_code == 200
    assert response.json()["displayName"] == "Alice"


def test_avatar_upload_sets_profile_avatar(client, auth_headers):
    avatar = upload(client, auth_headers, make_jpeg(200, 200), type="avatar").json()

    profile = client.get("/users/alice").json()
    assert profile["avatarUrl"] == avatar["url"]
    assert profile["photoCount"] == 0


def test_album_crud_detaches_photos(client, auth_headers):
    created = client.post("/users/alice/albums", headers=auth_headers, json={"name": "Summer"})
    assert created.status_code == 201
    album_id = created.json()["id"]
    assert created.json()["photoCount"] == 0

    photo = upload(client, auth_headers, make_jpeg(), albumId=album_id).json()

    albums = client.get("/users/alice/albums", headers=auth_headers).json()
    assert [(a["name"], a["photoCount"]) for a in albums] == [("Summer", 1)]

    renamed = client.patch(f"/users/alice/albums/{album_id}", headers=auth_headers, json={"name": "Summer '24"})
    assert renamed.json()["name"] == "Summer '24"

    assert client.delete(f"/users/alice/albums/{album_id}", headers=auth_headers).status_code == 204
    assert client.get(f"/users/alice/albums/{album_id}", headers=auth_headers).status_code == 404

    survivor = client.get(f"/users/alice/photos/{photo['id']}", headers=auth_headers)
    assert survivor.status_code == 200
    assert survivor.json()["albumId"] is None


def test_health_endpoints(client):
    assert client.get("/health").json()["status"] == "healthy"
    assert client.get("/health/liveness").json() == {"status": "alive"}
    assert client.get("/health/readiness").json() == {"status": "ready"}

    detailed = client.get("/health/detailed").json()
    assert detailed["checks"]["database"]["status"] == "up"
    assert detailed["checks"]["storage"]["status"] == "up"


def test_metrics_endpoint(client, auth_headers):
    upload(client, auth_headers, make_jpeg())
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "photo_upload_total" in response.text
