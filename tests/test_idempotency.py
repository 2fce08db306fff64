from app.services.idempotency import InMemoryIdempotencyStore, upload_fingerprint


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_fingerprint_prefers_client_key():
    assert upload_fingerprint("alice", b"abc", "a.jpg", "  key-1 ") == "alice:key-1"


def test_fingerprint_without_key_uses_size_name_and_hash():
    fp = upload_fingerprint("alice", b"abc", "a.jpg")
    username, size, filename, digest = fp.split(":")
    assert (username, size, filename) == ("alice", "3", "a.jpg")
    assert len(digest) == 16

    assert upload_fingerprint("alice", b"abd", "a.jpg") != fp
    assert upload_fingerprint("bob", b"abc", "a.jpg") != fp
    assert upload_fingerprint("alice", b"abc", "a.jpg", "   ") == fp


def test_entries_expire_after_ttl():
    clock = FakeClock()
    store = InMemoryIdempotencyStore(ttl_seconds=30, clock=clock)
    store.set("k", "v")

    clock.now += 29.9
    assert store.get("k") == "v"

    clock.now += 0.1
    assert store.get("k") is None


def test_per_entry_ttl_and_eviction_on_write():
    clock = FakeClock()
    store = InMemoryIdempotencyStore(ttl_seconds=30, clock=clock)
    store.set("short", 1, ttl=5)
    store.set("long", 2)
    assert len(store) == 2

    clock.now += 10
    store.set("other", 3)
    assert len(store) == 2
    assert store.get("short") is None
    assert store.get("long") == 2
