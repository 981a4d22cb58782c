"""测试夹具：为 pytest 提供数据库、Blob 存储、通知器与客户端的共享配置。"""

import os
import uuid
from typing import Callable, Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker

from filehub.main import app
from filehub.packages.drive.core.dependencies import get_db
from filehub.packages.drive.crud.users import user_crud
from filehub.packages.drive.db import session as db_session
from filehub.packages.drive.db.init_db import init_db
from filehub.packages.drive.models.user import User
from filehub.packages.drive.services.blob_store import LocalBlobStore, set_blob_store
from filehub.packages.drive.services.notifier import InMemoryNotifier, set_notifier

TEST_DB_PATH = os.path.join(os.path.dirname(__file__), "test.db")
TEST_DATABASE_URL = f"sqlite:///{TEST_DB_PATH}"


@pytest.fixture(scope="session", autouse=True)
def setup_test_database() -> Generator[None, None, None]:
    """创建隔离的 SQLite 测试数据库，并在会话结束后清理。"""
    if os.path.exists(TEST_DB_PATH):
        os.remove(TEST_DB_PATH)

    engine = db_session.build_engine(TEST_DATABASE_URL)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)

    db_session.engine = engine
    db_session.SessionLocal = TestingSessionLocal

    init_db()
    yield

    engine.dispose()
    if os.path.exists(TEST_DB_PATH):
        os.remove(TEST_DB_PATH)


@pytest.fixture(autouse=True)
def blob_store(tmp_path) -> Generator[LocalBlobStore, None, None]:
    """每个用例使用独立的本地 Blob 目录。"""
    store = LocalBlobStore(tmp_path / "blobs")
    set_blob_store(store)
    yield store
    set_blob_store(None)


@pytest.fixture(autouse=True)
def notifier() -> Generator[InMemoryNotifier, None, None]:
    """记录已发布事件的进程内通知器，便于断言事件类型与载荷。"""
    recorder = InMemoryNotifier()
    set_notifier(recorder)
    yield recorder
    set_notifier(None)


@pytest.fixture()
def db_session_fixture() -> Generator[Session, None, None]:
    """提供给测试用例使用的数据库会话。"""
    session = db_session.SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def make_user(db_session_fixture) -> Callable[..., User]:
    """创建带指定角色的用户，用户名随机避免跨用例冲突。"""

    def _make(*role_keys: str) -> User:
        user = user_crud.create_with_roles(
            db_session_fixture,
            username=f"user-{uuid.uuid4().hex[:10]}",
            role_keys=role_keys or ("member",),
        )
        db_session_fixture.commit()
        return user

    return _make


@pytest.fixture()
def client(db_session_fixture, notifier):
    """构建 FastAPI TestClient，并注入测试专用的数据库依赖。"""
    def override_get_db() -> Generator[Session, None, None]:
        session = db_session.SessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()