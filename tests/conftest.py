"""
Shared test fixtures and helpers for the Quarry test suite.
"""

from types import SimpleNamespace

import pytest
import pytest_asyncio

from quarry.db import Database
from quarry.migrations import migrate
from quarry.models import (
    BooleanField,
    CharField,
    DateTimeField,
    ForeignKey,
    IntegerField,
    JSONField,
    ManyToManyField,
    Model,
    ModelRegistry,
    TextField,
    default_registry,
    now,
    register_relations,
)


@pytest.fixture(autouse=True)
def reset_registries():
    """Reset the model and relation registries between tests."""
    ModelRegistry.reset()
    default_registry.clear()
    yield
    ModelRegistry.reset()
    default_registry.clear()


@pytest_asyncio.fixture
async def db():
    database = Database("sqlite:///:memory:")
    await database.connect()
    yield database
    await database.disconnect()


def define_blog_models() -> SimpleNamespace:
    """Declare a small blog schema: users, posts (FK), tags (M2M)."""

    class User(Model):
        table = "users"

        username = CharField(max_length=150, unique=True)
        role = CharField(max_length=20, default="user", choices=["user", "admin"])
        age = IntegerField(null=True)
        is_active = BooleanField(default=True)
        created_at = DateTimeField(auto_now_add=True)
        updated_at = DateTimeField(auto_now=True)

    class Tag(Model):
        table = "tags"

        name = CharField(max_length=50, unique=True)

    class Post(Model):
        table = "posts"

        title = CharField(max_length=200)
        body = TextField(default="")
        status = CharField(max_length=20, default="draft")
        views = IntegerField(default=0)
        meta = JSONField(default=dict)
        published_at = DateTimeField(default=now)
        author = ForeignKey("User", on_delete="CASCADE", related_name="posts")
        tags = ManyToManyField("Tag", related_name="posts")

    return SimpleNamespace(User=User, Tag=Tag, Post=Post, all=[User, Tag, Post])


@pytest.fixture
def blog():
    return define_blog_models()


@pytest_asyncio.fixture
async def blog_db(db, blog):
    """Blog models bound to a migrated in-memory database."""
    ModelRegistry.bind(db)
    await migrate(db, blog.all)
    register_relations(blog.all)
    return blog
