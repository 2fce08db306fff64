import os
import time

from app.models.photo import Photo
from app.services.image_versions import version_paths
from app.services.orphan_sweep import sweep_orphans
from tests.helpers import create_user, make_jpeg


async def _stored(blob_store, pipeline, username, age_seconds=0.0):
    blob = await blob_store.store(make_jpeg(), username, "photo", "a.jpg", "image/jpeg")
    await pipeline.generate_versions(blob.relative_path)
    if age_seconds:
        old = time.time() - age_seconds
        for path in (blob.relative_path, *version_paths(blob.relative_path)):
            os.utime(blob_store.resolve(path), (old, old))
    return blob.relative_path


async def test_sweep_removes_only_old_uncatalogued_originals(db_session, blob_store, pipeline):
    user = await create_user(db_session, "alice")
    orphan = await _stored(blob_store, pipeline, "alice", age_seconds=7200)
    catalogued = await _stored(blob_store, pipeline, "alice", age_seconds=7200)
    young = await _stored(blob_store, pipeline, "alice")
    db_session.add(Photo(owner_id=user.id, image_url=catalogued, file_size=1))
    await db_session.commit()

    removed = await sweep_orphans(db_session, blob_store, grace_seconds=3600)

    assert removed == 1
    assert not await blob_store.exists(orphan)
    assert not any([await blob_store.exists(p) for p in version_paths(orphan)])
    assert await blob_store.exists(catalogued)
    assert await blob_store.exists(young)


async def test_sweep_ignores_other_categories(db_session, blob_store):
    await create_user(db_session, "alice")
    avatar = await blob_store.store(make_jpeg(), "alice", "avatar", "me.jpg", "image/jpeg")

    removed = await sweep_orphans(db_session, blob_store, grace_seconds=0, now=time.time() + 10)

    assert removed == 0
    assert await blob_store.exists(avatar.relative_path)


async def test_sweep_on_empty_store(db_session, blob_store):
    assert await sweep_orphans(db_session, blob_store, grace_seconds=0) == 0
