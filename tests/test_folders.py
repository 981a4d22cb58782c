"""目录命名空间服务测试：路径维护、放置规则、移动/删除与树形组装。"""

from __future__ import annotations

import uuid

import pytest

from filehub.packages.drive.core.constants import GENERAL_PARTITION_ID, MY_FOLDERS_PARTITION_ID
from filehub.packages.drive.core.enums import PartitionTypeEnum
from filehub.packages.drive.core.exceptions import (
    AccessDeniedError,
    ConflictError,
    InvalidPlacementError,
    NotFoundError,
    ValidationError,
)
from filehub.packages.drive.crud.files import file_crud, file_version_crud
from filehub.packages.drive.crud.folders import folder_crud
from filehub.packages.drive.models.folder import Folder
from filehub.packages.drive.services.file_service import file_service
from filehub.packages.drive.services.folder_service import folder_service

PRIVATE = PartitionTypeEnum.MY_FOLDERS
GENERAL = PartitionTypeEnum.GENERAL


def _name(prefix: str = "folder") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


def _mkdir(db, user, name, parent=None, partition=PRIVATE, roles=("member",)):
    return folder_service.create_folder(
        db,
        name=name,
        owner_id=user.id,
        actor_roles=list(roles),
        parent_id=parent.id if parent else None,
        partition_type=None if parent else partition,
    )


def test_create_private_folder_paths(db_session_fixture, make_user, notifier):
    user = make_user()
    reports = _mkdir(db_session_fixture, user, "Reports")
    assert reports.path == "Reports"
    assert reports.partition_id == MY_FOLDERS_PARTITION_ID
    assert reports.parent_id is None
    assert reports.permissions == "755"

    year = _mkdir(db_session_fixture, user, "2024", parent=reports)
    assert year.path == "Reports/2024"
    assert year.partition_id == MY_FOLDERS_PARTITION_ID

    assert notifier.kinds() == ["folder.created", "folder.created"]
    _, payload = notifier.events[-1]
    assert payload["userId"] == user.id
    assert payload["folder"] == {
        "folderId": year.id,
        "name": "2024",
        "parentId": reports.id,
        "systemFolderId": MY_FOLDERS_PARTITION_ID,
        "path": "Reports/2024",
    }


def test_default_partition_is_private(db_session_fixture, make_user):
    user = make_user()
    folder = folder_service.create_folder(
        db_session_fixture, name=_name(), owner_id=user.id, actor_roles=["member"]
    )
    assert folder.partition_id == MY_FOLDERS_PARTITION_ID


def test_member_cannot_create_in_general(db_session_fixture, make_user, notifier):
    member = make_user("member")
    with pytest.raises(AccessDeniedError) as exc_info:
        _mkdir(db_session_fixture, member, _name(), partition=GENERAL)
    assert exc_info.value.msg == "administrators only"
    assert notifier.events == []


def test_shared_partition_is_read_only(db_session_fixture, make_user):
    admin = make_user("super_admin")
    with pytest.raises(AccessDeniedError) as exc_info:
        _mkdir(db_session_fixture, admin, _name(), partition=PartitionTypeEnum.SHARED_WITH_ME, roles=["super_admin"])
    assert exc_info.value.msg == "unsupported placement"


def test_general_allows_cross_owner_nesting(db_session_fixture, make_user):
    admin_a = make_user("admin")
    admin_b = make_user("admin")
    shared = _mkdir(db_session_fixture, admin_a, _name("general"), partition=GENERAL, roles=["admin"])
    nested = _mkdir(db_session_fixture, admin_b, "nested", parent=shared, roles=["admin"])
    assert nested.partition_id == GENERAL_PARTITION_ID
    assert nested.owner_id == admin_b.id

    # General 同名检查忽略所属用户
    with pytest.raises(ConflictError):
        _mkdir(db_session_fixture, admin_a, "nested", parent=shared, roles=["admin"])


def test_private_parent_must_belong_to_owner(db_session_fixture, make_user):
    alice = make_user()
    bob = make_user()
    parent = _mkdir(db_session_fixture, alice, _name())
    with pytest.raises(AccessDeniedError):
        _mkdir(db_session_fixture, bob, "intruder", parent=parent)


def test_explicit_partition_must_match_parent(db_session_fixture, make_user):
    admin = make_user("admin")
    parent = _mkdir(db_session_fixture, admin, _name(), roles=["admin"])
    with pytest.raises(InvalidPlacementError):
        folder_service.create_folder(
            db_session_fixture,
            name="child",
            owner_id=admin.id,
            actor_roles=["admin"],
            parent_id=parent.id,
            partition_type=GENERAL,
        )


def test_create_validation_and_lookup_errors(db_session_fixture, make_user):
    user = make_user()
    with pytest.raises(ValidationError):
        _mkdir(db_session_fixture, user, "bad/name")
    with pytest.raises(ValidationError):
        folder_service.create_folder(
            db_session_fixture, name="ok", owner_id=user.id, actor_roles=[], permissions="9x9"
        )
    with pytest.raises(NotFoundError):
        folder_service.create_folder(
            db_session_fixture, name="ok", owner_id=user.id, actor_roles=[], parent_id=10_000_000
        )


def test_duplicate_names_are_scoped_per_owner(db_session_fixture, make_user):
    alice = make_user()
    bob = make_user()
    _mkdir(db_session_fixture, alice, "Projects")
    with pytest.raises(ConflictError) as exc_info:
        _mkdir(db_session_fixture, alice, "Projects")
    assert exc_info.value.status_code == 409
    # 私有分区内不同用户可以同名
    assert _mkdir(db_session_fixture, bob, "Projects").path == "Projects"


def test_rename_updates_descendant_paths(db_session_fixture, make_user, notifier):
    user = make_user()
    reports = _mkdir(db_session_fixture, user, "Reports")
    year = _mkdir(db_session_fixture, user, "2024", parent=reports)
    quarter = _mkdir(db_session_fixture, user, "Q1", parent=year)

    folder_service.update_folder(
        db_session_fixture, reports.id, actor_id=user.id, actor_roles=["member"], name="Archive"
    )
    db_session_fixture.expire_all()

    assert folder_crud.get(db_session_fixture, reports.id).path == "Archive"
    assert folder_crud.get(db_session_fixture, year.id).path == "Archive/2024"
    assert folder_crud.get(db_session_fixture, quarter.id).path == "Archive/2024/Q1"
    assert notifier.kinds()[-1] == "folder.updated"


def test_move_into_own_subtree_is_rejected(db_session_fixture, make_user):
    user = make_user()
    reports = _mkdir(db_session_fixture, user, "Reports")
    year = _mkdir(db_session_fixture, user, "2024", parent=reports)

    for target in (year, reports):
        with pytest.raises(InvalidPlacementError) as exc_info:
            folder_service.update_folder(
                db_session_fixture, reports.id, actor_id=user.id, actor_roles=["member"], parent_id=target.id
            )
        assert exc_info.value.msg == "cannot move folder into its own descendant"


def test_move_between_parents_and_to_root(db_session_fixture, make_user):
    user = make_user()
    left = _mkdir(db_session_fixture, user, "Left")
    right = _mkdir(db_session_fixture, user, "Right")
    child = _mkdir(db_session_fixture, user, "Child", parent=left)
    leaf = _mkdir(db_session_fixture, user, "Leaf", parent=child)

    moved = folder_service.update_folder(
        db_session_fixture, child.id, actor_id=user.id, actor_roles=["member"], parent_id=right.id
    )
    assert moved.path == "Right/Child"
    db_session_fixture.expire_all()
    assert folder_crud.get(db_session_fixture, leaf.id).path == "Right/Child/Leaf"

    moved = folder_service.update_folder(
        db_session_fixture, child.id, actor_id=user.id, actor_roles=["member"], parent_id=None
    )
    assert moved.parent_id is None
    assert moved.path == "Child"
    db_session_fixture.expire_all()
    assert folder_crud.get(db_session_fixture, leaf.id).path == "Child/Leaf"


def test_move_rules_across_owners_and_partitions(db_session_fixture, make_user):
    alice = make_user("admin")
    bob = make_user()
    mine = _mkdir(db_session_fixture, alice, _name(), roles=["admin"])
    theirs = _mkdir(db_session_fixture, bob, _name())
    general = _mkdir(db_session_fixture, alice, _name("general"), partition=GENERAL, roles=["admin"])

    with pytest.raises(AccessDeniedError):
        folder_service.update_folder(
            db_session_fixture, mine.id, actor_id=alice.id, actor_roles=["admin"], parent_id=theirs.id
        )
    with pytest.raises(InvalidPlacementError):
        folder_service.update_folder(
            db_session_fixture, mine.id, actor_id=alice.id, actor_roles=["admin"], parent_id=general.id
        )
    with pytest.raises(NotFoundError):
        folder_service.update_folder(
            db_session_fixture, mine.id, actor_id=alice.id, actor_roles=["admin"], parent_id=10_000_000
        )


def test_update_requires_ownership_except_general_admins(db_session_fixture, make_user):
    owner = make_user("admin")
    other_admin = make_user("admin")
    member = make_user()
    private = _mkdir(db_session_fixture, owner, _name(), roles=["admin"])
    general = _mkdir(db_session_fixture, owner, _name("general"), partition=GENERAL, roles=["admin"])

    with pytest.raises(AccessDeniedError):
        folder_service.update_folder(
            db_session_fixture, private.id, actor_id=other_admin.id, actor_roles=["admin"], name="x"
        )
    with pytest.raises(AccessDeniedError):
        folder_service.update_folder(
            db_session_fixture, general.id, actor_id=member.id, actor_roles=["member"], name="x"
        )
    renamed = folder_service.update_folder(
        db_session_fixture, general.id, actor_id=other_admin.id, actor_roles=["admin"], name=_name("renamed")
    )
    assert renamed.path == renamed.name


def test_update_permissions_only(db_session_fixture, make_user, notifier):
    user = make_user()
    folder = _mkdir(db_session_fixture, user, _name())
    updated = folder_service.update_folder(
        db_session_fixture, folder.id, actor_id=user.id, actor_roles=["member"], permissions="700"
    )
    assert updated.permissions == "700"
    assert updated.path == folder.name
    with pytest.raises(ValidationError):
        folder_service.update_folder(
            db_session_fixture, folder.id, actor_id=user.id, actor_roles=["member"], permissions="77"
        )


def test_rename_conflict(db_session_fixture, make_user):
    user = make_user()
    _mkdir(db_session_fixture, user, "Taken")
    other = _mkdir(db_session_fixture, user, "Free")
    with pytest.raises(ConflictError):
        folder_service.update_folder(
            db_session_fixture, other.id, actor_id=user.id, actor_roles=["member"], name="Taken"
        )


def test_partition_root_cannot_be_modified_or_deleted(db_session_fixture, make_user):
    user = make_user()
    root = _mkdir(db_session_fixture, user, "My Folders")
    with pytest.raises(InvalidPlacementError) as exc_info:
        folder_service.update_folder(
            db_session_fixture, root.id, actor_id=user.id, actor_roles=["member"], name="Renamed"
        )
    assert exc_info.value.msg == "cannot modify system folder"
    with pytest.raises(InvalidPlacementError):
        folder_service.delete_folder(db_session_fixture, root.id, actor_id=user.id)


def test_delete_cascades_folders_files_and_blobs(db_session_fixture, make_user, blob_store, notifier):
    user = make_user()
    root = _mkdir(db_session_fixture, user, "Reports")
    child = _mkdir(db_session_fixture, user, "2024", parent=root)
    grandchild = _mkdir(db_session_fixture, user, "Q1", parent=child)
    uploaded = []
    for folder, payload in ((root, b"root"), (grandchild, b"deep"), (grandchild, b"deeper")):
        uploaded.append(
            file_service.upload_file(
                db_session_fixture,
                name="data.bin",
                folder_id=folder.id,
                owner_id=user.id,
                actor_roles=["member"],
                content=payload,
            )
        )
    keys = [
        record.storage_key
        for record in file_version_crud.list_for_files(db_session_fixture, [f.id for f in uploaded])
    ]
    assert len(keys) == 3
    assert all(blob_store.exists(key) for key in keys)

    stranger = make_user()
    with pytest.raises(AccessDeniedError):
        folder_service.delete_folder(db_session_fixture, root.id, actor_id=stranger.id)

    folder_service.delete_folder(db_session_fixture, root.id, actor_id=user.id)
    db_session_fixture.expire_all()

    for folder in (root, child, grandchild):
        assert folder_crud.get(db_session_fixture, folder.id) is None
    for file in uploaded:
        assert file_crud.get(db_session_fixture, file.id) is None
    assert file_version_crud.list_for_files(db_session_fixture, [f.id for f in uploaded]) == []
    assert not any(blob_store.exists(key) for key in keys)
    assert notifier.kinds()[-1] == "folder.deleted"
    assert notifier.events[-1][1]["folder"]["path"] == "Reports"

    with pytest.raises(NotFoundError):
        folder_service.delete_folder(db_session_fixture, root.id, actor_id=user.id)


def test_folder_size_is_recursive(db_session_fixture, make_user):
    user = make_user()
    root = _mkdir(db_session_fixture, user, "Sizes")
    child = _mkdir(db_session_fixture, user, "Child", parent=root)
    leaf = _mkdir(db_session_fixture, user, "Leaf", parent=child)
    for folder, size in ((root, 3), (child, 5), (leaf, 7)):
        file_service.upload_file(
            db_session_fixture,
            name="f.txt",
            folder_id=folder.id,
            owner_id=user.id,
            actor_roles=["member"],
            content=b"x" * size,
        )

    assert folder_service.calculate_folder_size(db_session_fixture, leaf.id) == 7
    assert folder_service.calculate_folder_size(db_session_fixture, child.id) == 12
    assert folder_service.calculate_folder_size(db_session_fixture, root.id) == 15


def test_is_ancestor_walks_parent_chain(db_session_fixture, make_user):
    user = make_user()
    a = _mkdir(db_session_fixture, user, "A")
    b = _mkdir(db_session_fixture, user, "B", parent=a)
    c = _mkdir(db_session_fixture, user, "C", parent=b)
    assert folder_service.is_ancestor(db_session_fixture, a.id, c.id)
    assert folder_service.is_ancestor(db_session_fixture, c.id, c.id)
    assert not folder_service.is_ancestor(db_session_fixture, c.id, a.id)
    assert not folder_service.is_ancestor(db_session_fixture, a.id, None)


def test_folder_tree_has_virtual_roots_and_visibility(db_session_fixture, make_user):
    alice = make_user("admin")
    bob = make_user()
    general_name = _name("general")
    _mkdir(db_session_fixture, alice, general_name, partition=GENERAL, roles=["admin"])
    alice_private = _mkdir(db_session_fixture, alice, "AlicePrivate", roles=["admin"])
    bob_private = _mkdir(db_session_fixture, bob, "BobPrivate")
    nested = _mkdir(db_session_fixture, bob, "Nested", parent=bob_private)
    file_service.upload_file(
        db_session_fixture,
        name="n.txt",
        folder_id=nested.id,
        owner_id=bob.id,
        actor_roles=["member"],
        content=b"12345",
    )

    tree = folder_service.get_folder_tree(db_session_fixture, bob.id)
    assert [node["name"] for node in tree] == ["General", "My Folders", "Shared With Me"]
    for node in tree:
        assert node["folderId"] is None
        assert node["isSystemFolder"] is True

    general, private, shared = tree
    assert general_name in [child["name"] for child in general["children"]]
    private_names = [child["name"] for child in private["children"]]
    assert private_names == ["BobPrivate"]
    assert alice_private.name not in private_names
    assert shared["children"] == []

    bob_node = private["children"][0]
    assert bob_node["size"] == 5
    assert bob_node["systemFolderType"] == "MY_FOLDERS"
    assert bob_node["children"][0]["path"] == "BobPrivate/Nested"
    assert private["size"] == 5


def test_folder_children_for_partition_and_folder(db_session_fixture, make_user):
    alice = make_user()
    bob = make_user()
    parent = _mkdir(db_session_fixture, alice, "Parent")
    _mkdir(db_session_fixture, alice, "Kid", parent=parent)

    roots = folder_service.get_folder_children(
        db_session_fixture, MY_FOLDERS_PARTITION_ID, actor_id=alice.id, partition=True
    )
    assert [item["name"] for item in roots] == ["Parent"]

    children = folder_service.get_folder_children(db_session_fixture, parent.id, actor_id=alice.id)
    assert [item["path"] for item in children] == ["Parent/Kid"]

    with pytest.raises(AccessDeniedError):
        folder_service.get_folder_children(db_session_fixture, parent.id, actor_id=bob.id)
    with pytest.raises(NotFoundError):
        folder_service.get_folder_children(db_session_fixture, 10_000_000, actor_id=alice.id)
    with pytest.raises(AccessDeniedError):
        folder_service.get_folder(db_session_fixture, parent.id, actor_id=bob.id)


def test_parent_cycle_does_not_hang_tree_operations(db_session_fixture, make_user, blob_store):
    user = make_user()
    top = _mkdir(db_session_fixture, user, "Top")
    b = _mkdir(db_session_fixture, user, "B", parent=top)
    c = _mkdir(db_session_fixture, user, "C", parent=b)
    stored = file_service.upload_file(
        db_session_fixture,
        name="loop.bin",
        folder_id=c.id,
        owner_id=user.id,
        actor_roles=["member"],
        content=b"abcd",
    )
    key = file_version_crud.list_for_file(db_session_fixture, stored.id)[0].storage_key

    # 直接改库制造 B -> C -> B 的环
    db_session_fixture.query(Folder).filter(Folder.id == b.id).update(
        {"parent_id": c.id}, synchronize_session=False
    )
    db_session_fixture.commit()
    db_session_fixture.expire_all()

    assert folder_service.calculate_folder_size(db_session_fixture, b.id) == 4
    assert folder_service.calculate_folder_size(db_session_fixture, c.id) == 4
    assert not folder_service.is_ancestor(db_session_fixture, top.id, b.id)
    assert folder_service.is_ancestor(db_session_fixture, c.id, b.id)

    tree = folder_service.get_folder_tree(db_session_fixture, user.id)
    private = tree[1]
    assert [node["name"] for node in private["children"]] == ["Top"]
    assert private["children"][0]["children"] == []

    renamed = folder_service.update_folder(
        db_session_fixture, b.id, actor_id=user.id, actor_roles=["member"], name="B2"
    )
    assert renamed.name == "B2"

    folder_service.delete_folder(db_session_fixture, b.id, actor_id=user.id)
    db_session_fixture.expire_all()
    assert folder_crud.get(db_session_fixture, b.id) is None
    assert folder_crud.get(db_session_fixture, c.id) is None
    assert folder_crud.get(db_session_fixture, top.id) is not None
    assert file_crud.get(db_session_fixture, stored.id) is None
    assert not blob_store.exists(key)


def test_tree_skips_folder_removed_during_walk(db_session_fixture, make_user, monkeypatch):
    user = make_user()
    parent = _mkdir(db_session_fixture, user, "Walk")
    _mkdir(db_session_fixture, user, "Keep", parent=parent)
    gone = _mkdir(db_session_fixture, user, "Gone", parent=parent)
    list_children = folder_crud.list_children

    def list_then_remove(db, parent_id, *, owner_id=None):
        rows = list_children(db, parent_id, owner_id=owner_id)
        if parent_id == parent.id:
            # 子目录列表取出后，该目录被并发删除
            db.query(Folder).filter(Folder.id == gone.id).delete(synchronize_session=False)
        return rows

    monkeypatch.setattr(folder_crud, "list_children", list_then_remove)

    tree = folder_service.get_folder_tree(db_session_fixture, user.id)
    walk = tree[1]["children"][0]
    assert walk["name"] == "Walk"
    assert [child["name"] for child in walk["children"]] == ["Keep"]
