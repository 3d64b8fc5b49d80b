import os
import sys
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

os.environ.setdefault('JWT_SECRET', 'test-secret')

# Ensure the package root is on sys.path when pytest changes CWD to this tests dir
HERE = Path(__file__).resolve()
PKG_ROOT = HERE.parents[2]
if str(PKG_ROOT) not in sys.path:
    sys.path.insert(0, str(PKG_ROOT))

from overcastly.main import app  # noqa: E402
from overcastly.auth import token_for_user  # noqa: E402
from overcastly.crud import pwd_ctx  # noqa: E402
from overcastly.store import MemoryStore, POSTS, USERS, get_store  # noqa: E402


@pytest.fixture
def store():
    memory = MemoryStore()
    app.dependency_overrides[get_store] = lambda: memory
    yield memory
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(store):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url='http://test') as ac:
        yield ac


async def add_user(store, username='JSmith', email='johnsmith123@gmail.com', password='password', **extra):
    user = {
        'username': username,
        'email': email,
        'passwordHash': pwd_ctx.hash(password),
        'firstName': 'John',
        'lastName': 'Smith',
        'active': True,
    }
    user.update(extra)
    await store.insert_one(USERS, user)
    return user


def auth_headers(user):
    return {'Authorization': f'Bearer {token_for_user(user)}'}


async def add_post(store, author, **fields):
    post = {
        'title': 'Test Post',
        'body': 'testing testing 123',
        'image': 'test-image.png',
        'authorId': str(author['_id']),
        'tags': ['test'],
    }
    post.update(fields)
    await store.insert_one(POSTS, post)
    return post


@pytest_asyncio.fixture
async def user(store):
    return await add_user(store)


@pytest_asyncio.fixture
async def other_user(store):
    return await add_user(store, username='JDoe', email='janedoe@gmail.com')
