"""
Shared fixtures.

Password hashing runs at the minimum work factor so the suite stays fast.
"""

import os
from dataclasses import dataclass

os.environ["PASSWORD_HASH_ITERATIONS"] = "1000"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["ENVIRONMENT"] = "test"

import pytest
import pytest_asyncio

from forgeguard.auth.context import SubjectContext
from forgeguard.auth.credentials import hash_password
from forgeguard.config import get_settings
from forgeguard.core.models import Role, User, to_record
from forgeguard.services import Services
from forgeguard.services.projects import ProjectCreate
from forgeguard.storage import Collections, create_local_storage

PASSWORD = "Str0ng!Pass"


# =============================================================================
# Settings
# =============================================================================


@pytest.fixture(autouse=True)
def fresh_settings():
    """Settings are re-read from the environment for every test."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def configure(monkeypatch):
    """Override settings through the environment for one test."""

    def apply(**values):
        for key, value in values.items():
            monkeypatch.setenv(key.upper(), str(value))
        get_settings.cache_clear()
        return get_settings()

    return apply


# =============================================================================
# Storage + Services
# =============================================================================


@pytest.fixture
def storage(tmp_path):
    return create_local_storage(str(tmp_path))


@pytest.fixture
def services(storage):
    return Services.create(storage)


def make_user(name: str, role: Role, **fields) -> User:
    user = User(
        username=f"{name}@example.com",
        email=f"{name}@example.com",
        full_name=name.title(),
        role=role,
        password_hash=hash_password(PASSWORD),
    )
    return user.model_copy(update=fields)


async def add_user(storage, name: str, role: Role, **fields) -> User:
    user = make_user(name, role, **fields)
    await storage.metadata.save(Collections.USERS, user.id, to_record(user))
    return user


def ctx(user: User) -> SubjectContext:
    return SubjectContext.from_user(user)


@dataclass
class Team:
    admin: User
    lead: User
    other_lead: User
    dev1: User
    dev2: User
    dev3: User


@pytest_asyncio.fixture
async def team(storage) -> Team:
    """An admin, two leads and three developers."""
    return Team(
        admin=await add_user(storage, "admin", Role.ADMIN),
        lead=await add_user(storage, "lead", Role.PROJECT_LEAD),
        other_lead=await add_user(storage, "otherlead", Role.PROJECT_LEAD),
        dev1=await add_user(storage, "devone", Role.DEVELOPER),
        dev2=await add_user(storage, "devtwo", Role.DEVELOPER),
        dev3=await add_user(storage, "devthree", Role.DEVELOPER),
    )


@pytest_asyncio.fixture
async def project(services, team):
    """Project led by `team.lead` with dev1 and dev2 assigned."""
    return await services.projects.create_project(
        ctx(team.lead),
        ProjectCreate(name="Apollo", assigned_developers=[team.dev1.id, team.dev2.id]),
    )
