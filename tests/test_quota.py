import pytest

from app.exceptions import (
    FileTooLargeError,
    PhotoCountExceededError,
    QuotaExceededError,
    StorageExceededError,
)
from app.models.photo import Photo
from app.services.quota import QuotaLedger
from app.services.tier_policy import MB, TierLimits, TierPolicy
from tests.helpers import create_user, make_jpeg

MiB = MB


async def test_free_tier_accounting_scenario(db_session):
    user = await create_user(db_session, "alice", storage_used=5 * MiB)
    ledger = QuotaLedger(db_session)

    await ledger.validate_upload(user, 6 * MiB)
    assert await ledger.increment(user, 6 * MiB) == 11 * MiB
    await db_session.commit()

    # 46 MiB는 단일 파일 한도(10 MB)에 먼저 걸린다
    with pytest.raises(FileTooLargeError) as exc_info:
        await ledger.validate_upload(user, 46 * MiB)
    assert isinstance(exc_info.value, QuotaExceededError)
    assert exc_info.value.status_code == 413
    await db_session.refresh(user)
    assert user.storage_used == 11 * MiB


async def test_single_file_limit_is_checked_first(db_session):
    # 저장 공간이 거의 찬 상태에서도 FileTooLarge가 우선
    user = await create_user(db_session, "alice", storage_used=49 * MiB)
    ledger = QuotaLedger(db_session)

    with pytest.raises(FileTooLargeError) as exc_info:
        await ledger.validate_upload(user, 12 * MiB)

    err = exc_info.value
    assert err.status_code == 413
    assert err.error_code == "FILE_TOO_LARGE"
    assert err.details == {"limit": 10 * MiB, "requested": 12 * MiB}
    assert "Free tier limit of 10MB per file" in err.message


async def test_storage_exceeded(db_session):
    user = await create_user(db_session, "alice", storage_used=45 * MiB)
    ledger = QuotaLedger(db_session)

    with pytest.raises(StorageExceededError) as exc_info:
        await ledger.validate_upload(user, 6 * MiB)

    err = exc_info.value
    assert err.status_code == 403
    assert err.details == {"limit": 50 * MiB, "current": 45 * MiB, "requested": 6 * MiB}
    assert err.message.startswith("Insufficient storage. You have 5.00 MB available out of 50MB total")


async def test_exact_fit_is_allowed(db_session):
    user = await create_user(db_session, "alice", storage_used=40 * MiB)
    ledger = QuotaLedger(db_session)

    await ledger.validate_upload(user, 10 * MiB)
    assert await ledger.increment(user, 10 * MiB) == 50 * MiB


async def test_photo_count_limit(db_session):
    policy = TierPolicy({"FREE": TierLimits(50 * MiB, 2, 10 * MiB)})
    user = await create_user(db_session, "alice")
    for i in range(2):
        db_session.add(Photo(owner_id=user.id, image_url=f"alice/photo/{i}.jpg", file_size=1))
    await db_session.commit()
    ledger = QuotaLedger(db_session, tier_policy=policy)

    with pytest.raises(PhotoCountExceededError) as exc_info:
        await ledger.validate_upload(user, 1024)
    assert exc_info.value.details == {"limit": 2, "current": 2}

    # 사진이 아닌 업로드(아바타 등)는 개수 제한 대상이 아님
    await ledger.validate_upload(user, 1024, check_count=False)


async def test_increment_is_bounded_by_limit(db_session):
    user = await create_user(db_session, "alice", storage_used=48 * MiB)
    ledger = QuotaLedger(db_session)

    # 사전 검사 이후 다른 업로드가 여유분을 소진한 경우
    with pytest.raises(StorageExceededError):
        await ledger.increment(user, 3 * MiB)
    assert user.storage_used == 48 * MiB


async def test_decrement_floors_at_zero(db_session):
    user = await create_user(db_session, "alice", storage_used=1000)
    ledger = QuotaLedger(db_session)

    assert await ledger.decrement(user, 400) == 600
    assert await ledger.decrement(user, 5000) == 0
    assert await ledger.decrement(user, 0) == 0


async def test_quota_info(db_session):
    user = await create_user(db_session, "alice", storage_used=11 * MiB)
    db_session.add(Photo(owner_id=user.id, image_url="alice/photo/a.jpg", file_size=11 * MiB))
    await db_session.commit()

    info = await QuotaLedger(db_session).quota_info(user)

    assert info.tier == "FREE"
    assert info.tier_display_name == "Free"
    assert info.storage_used == 11 * MiB
    assert info.storage_limit == 50 * MiB
    assert info.storage_available == 39 * MiB
    assert info.storage_used_formatted == "11.00 MB"
    assert info.storage_limit_formatted == "50MB"
    assert info.storage_percentage == 22
    assert info.photo_count == 1
    assert info.photo_limit == 20
    assert info.single_file_limit_formatted == "10MB"


async def test_reconcile_counts_originals_only(db_session, blob_store, pipeline):
    user = await create_user(db_session, "alice", storage_used=999_999)
    photo = await blob_store.store(make_jpeg(800, 600), "alice", "photo", "a.jpg")
    await pipeline.generate_versions(photo.relative_path)
    avatar = await blob_store.store(make_jpeg(64, 64), "alice", "avatar", "me.jpg")
    await blob_store.store(make_jpeg(64, 64), "bob", "photo", "other.jpg")

    drift = await QuotaLedger(db_session).reconcile(user, blob_store)

    assert user.storage_used == photo.size + avatar.size
    assert drift == photo.size + avatar.size - 999_999
