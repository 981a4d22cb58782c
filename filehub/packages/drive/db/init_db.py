"""Database bootstrapping utilities."""

from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from filehub.packages.drive.core.constants import DEFAULT_MEMBER_ROLE
from filehub.packages.drive.core.enums import RoleEnum
from filehub.packages.drive.db import session as db_session
from filehub.packages.drive.models.base import Base
from filehub.packages.drive.models.role import Role
from filehub.packages.drive.services.partition_service import partition_service

logger = logging.getLogger(__name__)

_ROLE_NAMES = {
    RoleEnum.MEMBER.value: "Member",
    RoleEnum.ADMIN.value: "Administrator",
    RoleEnum.SUPER_ADMIN.value: "Super Administrator",
}


def init_db() -> None:
    """Create all database tables if they do not exist and seed baseline data."""
    import filehub.packages.drive.models  # noqa: F401 - ensure table registration

    Base.metadata.create_all(bind=db_session.engine)

    session = db_session.SessionLocal()
    try:
        partition_service.bootstrap(session)
        _seed_roles(session)
        session.commit()
    except Exception:
        session.rollback()
        logger.exception("Failed to seed default data during database initialization")
        raise
    finally:
        session.close()


def _seed_roles(db: Session) -> None:
    """Ensure the member/admin/super_admin roles exist (idempotent)."""
    existing = {key for (key,) in db.query(Role.role_key).all()}
    for role_key, name in _ROLE_NAMES.items():
        if role_key in existing:
            continue
        db.add(Role(name=name, role_key=role_key, remark="system role" if role_key != DEFAULT_MEMBER_ROLE else None))
    db.flush()
