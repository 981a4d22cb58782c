"""文件元数据与版本服务测试。"""

from __future__ import annotations

import uuid

import pytest
from sqlalchemy.exc import IntegrityError

from filehub.packages.drive.core.config import get_settings
from filehub.packages.drive.core.enums import PartitionTypeEnum
from filehub.packages.drive.core.exceptions import (
    AccessDeniedError,
    ConflictError,
    InvalidPlacementError,
    NotFoundError,
    ValidationError,
)
from filehub.packages.drive.crud.files import file_crud, file_version_crud
from filehub.packages.drive.models.file import File
from filehub.packages.drive.services.file_service import FileService, UploadItem, file_service, guess_mime_type
from filehub.packages.drive.services.folder_service import folder_service


def _mkdir(db, user, name=None, parent=None, partition=PartitionTypeEnum.MY_FOLDERS, roles=("member",)):
    return folder_service.create_folder(
        db,
        name=name or f"dir-{uuid.uuid4().hex[:8]}",
        owner_id=user.id,
        actor_roles=list(roles),
        parent_id=parent.id if parent else None,
        partition_type=None if parent else partition,
    )


def _upload(db, user, folder, name="q1.txt", content=b"0123456789", roles=("member",)):
    return file_service.upload_file(
        db,
        name=name,
        folder_id=folder.id if folder else None,
        owner_id=user.id,
        actor_roles=list(roles),
        content=content,
    )


def test_repeated_upload_creates_new_version(db_session_fixture, make_user, notifier, blob_store):
    user = make_user()
    reports = _mkdir(db_session_fixture, user, "Reports")
    year = _mkdir(db_session_fixture, user, "2024", parent=reports)

    first = _upload(db_session_fixture, user, year, content=b"0123456789")
    assert first.current_version == 1
    assert first.size == 10
    assert first.mime_type == "text/plain"
    assert folder_service.calculate_folder_size(db_session_fixture, reports.id) == 10

    second = _upload(db_session_fixture, user, year, content=b"x" * 15)
    assert second.id == first.id
    assert second.current_version == 2
    assert second.size == 15
    assert folder_service.calculate_folder_size(db_session_fixture, reports.id) == 15

    versions = file_version_crud.list_for_file(db_session_fixture, first.id, newest_first=False)
    assert [v.version for v in versions] == [1, 2]
    assert [v.size for v in versions] == [10, 15]
    assert versions[0].storage_key == f"user_{user.id}/{first.id}/v1/q1.txt"
    assert all(blob_store.exists(v.storage_key) for v in versions)
    assert len(file_crud.list_in_folder(db_session_fixture, year.id)) == 1

    assert notifier.kinds()[-2:] == ["file.created", "file.updated"]
    payload = notifier.events[-1][1]["file"]
    assert payload["path"] == "Reports/2024/q1.txt"
    assert payload["size"] == 15


def test_file_content_by_version(db_session_fixture, make_user):
    user = make_user()
    folder = _mkdir(db_session_fixture, user)
    file = _upload(db_session_fixture, user, folder, content=b"first")
    _upload(db_session_fixture, user, folder, content=b"second!")

    current = file_service.get_file_content(db_session_fixture, file.id, actor_id=user.id)
    assert current.content == b"second!"
    assert current.version == 2
    assert current.size == 7

    old = file_service.get_file_content(db_session_fixture, file.id, actor_id=user.id, version=1)
    assert old.content == b"first"
    assert old.name == "q1.txt"

    with pytest.raises(NotFoundError) as exc_info:
        file_service.get_file_content(db_session_fixture, file.id, actor_id=user.id, version=9)
    assert exc_info.value.msg == "file version not found"


def test_upload_requires_folder(db_session_fixture, make_user):
    user = make_user()
    with pytest.raises(InvalidPlacementError):
        _upload(db_session_fixture, user, None)
    with pytest.raises(NotFoundError):
        file_service.upload_file(
            db_session_fixture,
            name="a.txt",
            folder_id=10_000_000,
            owner_id=user.id,
            actor_roles=["member"],
            content=b"a",
        )


def test_upload_placement_rules(db_session_fixture, make_user):
    admin = make_user("admin")
    member = make_user()
    general = _mkdir(db_session_fixture, admin, partition=PartitionTypeEnum.GENERAL, roles=["admin"])
    private = _mkdir(db_session_fixture, admin, roles=["admin"])

    with pytest.raises(AccessDeniedError) as exc_info:
        _upload(db_session_fixture, member, general)
    assert exc_info.value.msg == "administrators only"
    with pytest.raises(AccessDeniedError):
        _upload(db_session_fixture, member, private)

    shared_file = _upload(db_session_fixture, admin, general, name="shared.txt", roles=["admin"])
    # General 中的文件对所有用户可读
    content = file_service.get_file_content(db_session_fixture, shared_file.id, actor_id=member.id)
    assert content.content == b"0123456789"
    assert [f.id for f in file_service.list_files(db_session_fixture, general.id, actor_id=member.id)] == [
        shared_file.id
    ]

    other_admin = make_user("admin")
    with pytest.raises(ConflictError):
        _upload(db_session_fixture, other_admin, general, name="shared.txt", roles=["admin"])


def test_private_files_are_owner_only(db_session_fixture, make_user):
    owner = make_user()
    stranger = make_user()
    folder = _mkdir(db_session_fixture, owner)
    file = _upload(db_session_fixture, owner, folder)

    with pytest.raises(AccessDeniedError):
        file_service.get_file(db_session_fixture, file.id, actor_id=stranger.id)
    with pytest.raises(AccessDeniedError):
        file_service.get_file_content(db_session_fixture, file.id, actor_id=stranger.id)
    with pytest.raises(AccessDeniedError):
        file_service.list_files(db_session_fixture, folder.id, actor_id=stranger.id)
    with pytest.raises(AccessDeniedError):
        file_service.list_versions(db_session_fixture, file.id, actor_id=stranger.id)
    assert file_service.get_file(db_session_fixture, file.id, actor_id=owner.id).id == file.id


def test_upload_new_version(db_session_fixture, make_user, notifier):
    owner = make_user()
    stranger = make_user()
    folder = _mkdir(db_session_fixture, owner)
    file = _upload(db_session_fixture, owner, folder, name="notes.md", content=b"v1")

    with pytest.raises(AccessDeniedError):
        file_service.upload_new_version(db_session_fixture, file.id, actor_id=stranger.id, content=b"nope")
    with pytest.raises(NotFoundError):
        file_service.upload_new_version(db_session_fixture, 10_000_000, actor_id=owner.id, content=b"x")

    updated = file_service.upload_new_version(
        db_session_fixture, file.id, actor_id=owner.id, content=b"version-2", mime_type="text/markdown"
    )
    assert updated.current_version == 2
    assert updated.size == 9
    assert updated.mime_type == "text/markdown"
    assert notifier.kinds()[-1] == "file.updated"

    versions = file_service.list_versions(db_session_fixture, file.id, actor_id=owner.id)
    assert [v.version for v in versions] == [2, 1]
    assert FileService.serialize_version(versions[0])["uploadedBy"] == owner.id


def test_batch_upload_skips_failures(db_session_fixture, make_user):
    user = make_user()
    folder = _mkdir(db_session_fixture, user)
    items = [
        UploadItem(name="a.txt", content=b"aaa"),
        UploadItem(name="bad/name.txt", content=b"bbb"),
        UploadItem(name="c.json", content=b"{}", mime_type="application/json"),
    ]
    uploaded = file_service.upload_files(
        db_session_fixture, folder_id=folder.id, owner_id=user.id, actor_roles=["member"], items=items
    )
    assert [f.name for f in uploaded] == ["a.txt", "c.json"]
    assert uploaded[1].mime_type == "application/json"
    assert len(file_service.list_files(db_session_fixture, folder.id, actor_id=user.id)) == 2


def test_batch_upload_limits(db_session_fixture, make_user, monkeypatch):
    user = make_user()
    folder = _mkdir(db_session_fixture, user)
    monkeypatch.setattr(get_settings(), "max_batch_files", 2)
    items = [UploadItem(name=f"{i}.txt", content=b"x") for i in range(3)]
    with pytest.raises(ValidationError):
        file_service.upload_files(
            db_session_fixture, folder_id=folder.id, owner_id=user.id, actor_roles=["member"], items=items
        )
    with pytest.raises(ValidationError):
        file_service.upload_files(
            db_session_fixture, folder_id=folder.id, owner_id=user.id, actor_roles=["member"], items=[]
        )


def test_update_file_rename_and_move(db_session_fixture, make_user, notifier):
    user = make_user()
    source = _mkdir(db_session_fixture, user, "Source")
    target = _mkdir(db_session_fixture, user, "Target")
    file = _upload(db_session_fixture, user, source, name="draft.txt")
    _upload(db_session_fixture, user, target, name="taken.txt")

    renamed = file_service.update_file(
        db_session_fixture, file.id, actor_id=user.id, actor_roles=["member"], name="final.txt"
    )
    assert renamed.name == "final.txt"
    assert FileService.serialize(renamed)["path"] == "Source/final.txt"

    moved = file_service.update_file(
        db_session_fixture, file.id, actor_id=user.id, actor_roles=["member"], folder_id=target.id
    )
    assert moved.folder_id == target.id
    assert FileService.serialize(moved)["path"] == "Target/final.txt"
    assert notifier.kinds()[-1] == "file.updated"

    with pytest.raises(ConflictError):
        file_service.update_file(
            db_session_fixture, file.id, actor_id=user.id, actor_roles=["member"], name="taken.txt"
        )
    with pytest.raises(InvalidPlacementError):
        file_service.update_file(
            db_session_fixture, file.id, actor_id=user.id, actor_roles=["member"], folder_id=None
        )

    # 内容不随元数据变更而改变
    content = file_service.get_file_content(db_session_fixture, file.id, actor_id=user.id)
    assert content.content == b"0123456789"


def test_update_file_placement_rules(db_session_fixture, make_user):
    member = make_user()
    admin = make_user("admin")
    folder = _mkdir(db_session_fixture, member)
    others = _mkdir(db_session_fixture, admin, roles=["admin"])
    general = _mkdir(db_session_fixture, admin, partition=PartitionTypeEnum.GENERAL, roles=["admin"])
    file = _upload(db_session_fixture, member, folder)

    with pytest.raises(AccessDeniedError):
        file_service.update_file(
            db_session_fixture, file.id, actor_id=member.id, actor_roles=["member"], folder_id=others.id
        )
    with pytest.raises(AccessDeniedError):
        file_service.update_file(
            db_session_fixture, file.id, actor_id=member.id, actor_roles=["member"], folder_id=general.id
        )
    with pytest.raises(AccessDeniedError):
        file_service.update_file(
            db_session_fixture, file.id, actor_id=admin.id, actor_roles=["admin"], name="mine.txt"
        )
    updated = file_service.update_file(
        db_session_fixture, file.id, actor_id=member.id, actor_roles=["member"], permissions="600"
    )
    assert updated.permissions == "600"


def test_general_admin_cannot_move_another_users_file(db_session_fixture, make_user):
    owner = make_user("admin")
    other_admin = make_user("admin")
    general = _mkdir(db_session_fixture, owner, partition=PartitionTypeEnum.GENERAL, roles=["admin"])
    owner_private = _mkdir(db_session_fixture, owner, roles=["admin"])
    other_private = _mkdir(db_session_fixture, other_admin, roles=["admin"])
    file = _upload(db_session_fixture, owner, general, name="x.txt", roles=["admin"])

    with pytest.raises(AccessDeniedError):
        file_service.update_file(
            db_session_fixture, file.id, actor_id=other_admin.id, actor_roles=["admin"], folder_id=other_private.id
        )
    db_session_fixture.expire_all()
    assert file_crud.get(db_session_fixture, file.id).folder_id == general.id

    # 原地改名仍允许 General 管理员操作
    renamed = file_service.update_file(
        db_session_fixture, file.id, actor_id=other_admin.id, actor_roles=["admin"], name="y.txt"
    )
    assert renamed.name == "y.txt"
    assert renamed.owner_id == owner.id
    assert renamed.folder_id == general.id

    with pytest.raises(AccessDeniedError):
        file_service.update_file(
            db_session_fixture, file.id, actor_id=owner.id, actor_roles=["admin"], folder_id=other_private.id
        )
    moved = file_service.update_file(
        db_session_fixture, file.id, actor_id=owner.id, actor_roles=["admin"], folder_id=owner_private.id
    )
    assert moved.folder_id == owner_private.id
    listed = file_service.list_files(db_session_fixture, owner_private.id, actor_id=owner.id)
    assert [item.id for item in listed] == [file.id]


def test_rename_without_folder_is_rejected(db_session_fixture, make_user, notifier):
    user = make_user()
    folder = _mkdir(db_session_fixture, user)
    file = _upload(db_session_fixture, user, folder, name="orphan.txt")
    db_session_fixture.query(File).filter(File.id == file.id).update(
        {"folder_id": None}, synchronize_session=False
    )
    db_session_fixture.commit()
    db_session_fixture.expire_all()
    notifier.clear()

    with pytest.raises(InvalidPlacementError):
        file_service.update_file(
            db_session_fixture, file.id, actor_id=user.id, actor_roles=["member"], name="renamed.txt"
        )
    db_session_fixture.expire_all()
    assert file_crud.get(db_session_fixture, file.id).name == "orphan.txt"
    assert notifier.kinds() == []


def test_delete_file_removes_versions_and_blobs(db_session_fixture, make_user, blob_store, notifier):
    owner = make_user()
    stranger = make_user()
    folder = _mkdir(db_session_fixture, owner)
    file = _upload(db_session_fixture, owner, folder, content=b"one")
    _upload(db_session_fixture, owner, folder, content=b"two")
    keys = [v.storage_key for v in file_version_crud.list_for_file(db_session_fixture, file.id)]

    with pytest.raises(AccessDeniedError):
        file_service.delete_file(db_session_fixture, file.id, actor_id=stranger.id)

    file_service.delete_file(db_session_fixture, file.id, actor_id=owner.id)
    db_session_fixture.expire_all()

    assert file_crud.get(db_session_fixture, file.id) is None
    assert file_version_crud.list_for_file(db_session_fixture, file.id) == []
    assert not any(blob_store.exists(key) for key in keys)
    assert notifier.kinds()[-1] == "file.deleted"
    with pytest.raises(NotFoundError):
        file_service.get_file(db_session_fixture, file.id, actor_id=owner.id)


def test_version_conflicts_are_retried():
    attempts = []

    def flaky():
        attempts.append(1)
        if len(attempts) < 3:
            raise IntegrityError("INSERT INTO file_versions", {}, Exception("duplicate version"))
        return "file", True

    assert FileService._with_version_retry(flaky) == ("file", True)
    assert len(attempts) == 3

    def always_conflicts():
        raise IntegrityError("INSERT INTO file_versions", {}, Exception("duplicate version"))

    with pytest.raises(ConflictError):
        FileService._with_version_retry(always_conflicts)


def test_guess_mime_type():
    assert guess_mime_type("report.pdf") == "application/pdf"
    assert guess_mime_type("archive.unknownext") == "application/octet-stream"
    assert guess_mime_type("data.bin", "image/png") == "image/png"
    assert guess_mime_type("notes.txt", "application/octet-stream") == "text/plain"
