from io import BytesIO

from fastapi.testclient import TestClient
from PIL import Image

from app.models.user import User
from app.utils.security import hash_password


def make_jpeg(width: int = 640, height: int = 480, color=(180, 120, 60), pad_to: int = 0) -> bytes:
    """Real JPEG bytes from Pillow, optionally padded after EOI to an exact size."""
    buf = BytesIO()
    Image.new("RGB", (width, height), color).save(buf, format="JPEG", quality=90)
    data = buf.getvalue()
    if pad_to and pad_to > len(data):
        data += b"\x00" * (pad_to - len(data))
    return data


def make_png(width: int = 32, height: int = 32) -> bytes:
    buf = BytesIO()
    Image.new("RGB", (width, height), (0, 0, 255)).save(buf, format="PNG")
    return buf.getvalue()


async def create_user(db, username: str, tier: str = "FREE", storage_used: int = 0) -> User:
    user = User(
        email=f"{username}@example.com",
        username=username,
        hashed_password=hash_password("password123"),
        display_name=username,
        tier=tier,
        storage_used=storage_used,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


def register_and_login(client: TestClient, username: str, password: str = "password123") -> dict:
    """Create an account and return Authorization headers for it."""
    response = client.post(
        "/auth/register",
        json={"email": f"{username}@example.com", "username": username, "password": password},
    )
    assert response.status_code == 201, response.text
    response = client.post(
        "/auth/login",
        json={"email": f"{username}@example.com", "password": password},
    )
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


def upload(client: TestClient, headers: dict, content: bytes, filename: str = "shot.jpg", **form):
    data = {k: str(v) for k, v in form.items()}
    return client.post(
        "/images/upload",
        headers=headers,
        files={"image": (filename, content, "image/jpeg")},
        data=data,
    )
