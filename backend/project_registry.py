# project_registry.py — Projects and users (both immutable once created)
import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from errors import NotFound, InvalidArgument, AlreadyExists
from models import Project, User, UserType

logger = logging.getLogger("fivetwo.registry")


# ============================================================
# PROJECTS
# ============================================================

async def create_project(db: AsyncSession, name: str, repository_url: str) -> Project:
    if not name or not name.strip() or not repository_url or not repository_url.strip():
        raise InvalidArgument("name and repository_url are required")

    existing = await db.execute(select(Project.id).where(Project.repository_url == repository_url))
    if existing.scalar_one_or_none() is not None:
        raise AlreadyExists("Project already exists")

    project = Project(name=name, repository_url=repository_url)
    db.add(project)
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        logger.warning(f"Duplicate project insert for {repository_url}")
        raise AlreadyExists("Project already exists") from exc

    await db.refresh(project)
    logger.info(f"Project {project.id} created for {repository_url}")
    return project


async def get_project(db: AsyncSession, project_id: int) -> Project:
    result = await db.execute(select(Project).where(Project.id == project_id))
    project = result.scalar_one_or_none()
    if not project:
        raise NotFound("Project not found")
    return project


async def list_projects(
    db: AsyncSession,
    project_id: Optional[int] = None,
    name: Optional[str] = None,
    repository_url: Optional[str] = None,
) -> List[Project]:
    stmt = select(Project)
    if project_id is not None:
        stmt = stmt.where(Project.id == project_id)
    if name is not None:
        stmt = stmt.where(Project.name == name)
    if repository_url is not None:
        stmt = stmt.where(Project.repository_url == repository_url)
    stmt = stmt.order_by(Project.created_at.desc(), Project.id.desc())
    result = await db.execute(stmt)
    return list(result.scalars().all())


# ============================================================
# USERS
# ============================================================

async def create_user(
    db: AsyncSession, username: str, user_type: str, email: Optional[str] = None,
) -> User:
    if not username or not username.strip():
        raise InvalidArgument("username is required")
    try:
        user_type = UserType(user_type).value
    except ValueError:
        raise InvalidArgument("type must be one of: human, ai")

    user = User(username=username, type=user_type, email=email)
    db.add(user)
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise AlreadyExists(f"User '{username}' already exists") from exc

    await db.refresh(user)
    logger.info(f"{user_type} user '{username}' created with id {user.id}")
    return user


async def get_user(db: AsyncSession, user_id: int) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise NotFound("User not found")
    return user


async def get_user_by_username(db: AsyncSession, username: str) -> User:
    result = await db.execute(select(User).where(User.username == username))
    user = result.scalar_one_or_none()
    if not user:
        raise NotFound(f"User '{username}' not found")
    return user
