import re
import secrets
import logging
from datetime import datetime, timezone

from passlib.context import CryptContext

from .auth import token_for_user
from .errors import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    OwnershipError,
    ValidationError,
)
from .geo import filter_nearby, to_feature_collection, validate_query
from .notifications import send_registration_pin
from .store import POSTS, USERS, DocumentStore, parse_object_id

logger = logging.getLogger(__name__)

pwd_ctx = CryptContext(schemes=['bcrypt'], deprecated='auto')

PIN_DIGITS = 6

POST_FIELDS = ('title', 'body', 'image', 'latitude', 'longitude', 'tags')
REPLY_FIELDS = ('title', 'body', 'image')
USER_FIELDS = ('firstName', 'lastName', 'email', 'image')


def _now():
    return datetime.now(timezone.utc)


def authorize(resource: dict, actor: dict) -> bool:
    """True when ``actor`` (token claims) authored ``resource``"""
    return str(resource.get('authorId')) == str(actor['userId'])


def _changed_fields(fields: dict, allowed) -> dict:
    return {k: v for k, v in fields.items() if k in allowed and v is not None and v != ''}


# users

async def authenticate_user(store: DocumentStore, login: str | None, password: str | None):
    if not login or not password:
        raise ValidationError('login and password are required')
    user = await store.find_one(USERS, {'$or': [{'username': login}, {'email': login}]})
    if not user or not pwd_ctx.verify(password, user['passwordHash']):
        raise AuthenticationError('Invalid credentials')
    if not user.get('active', True):
        raise AuthenticationError('Account is pending email verification', status_code=403)
    return {
        'token': token_for_user(user),
        'user_id': str(user['_id']),
        'username': user['username'],
        'email': user['email'],
    }


async def _ensure_unique(store: DocumentStore, username: str, email: str):
    existing = await store.find_one(USERS, {'$or': [{'username': username}, {'email': email}]})
    if existing:
        if existing['username'] == username:
            raise ConflictError('Username already exists')
        raise ConflictError('Email has already been registered to an account')


async def _insert_user(store: DocumentStore, payload, **extra) -> str:
    await _ensure_unique(store, payload.username, payload.email)
    user = {
        'username': payload.username,
        'email': payload.email,
        'passwordHash': pwd_ctx.hash(payload.password),
        'firstName': payload.first_name,
        'lastName': payload.last_name,
        'createdAt': _now(),
        **extra,
    }
    user_id = await store.insert_one(USERS, user)
    return str(user_id)


async def register_user(store: DocumentStore, payload) -> str:
    """Single step registration, the account is usable immediately"""
    user_id = await _insert_user(store, payload, active=True)
    logger.info({'msg': 'user_registered', 'userId': user_id})
    return user_id


async def initial_register_user(store: DocumentStore, payload) -> str:
    """First step of PIN registration: store an inactive user and send the PIN"""
    pin = f'{secrets.randbelow(10 ** PIN_DIGITS):0{PIN_DIGITS}d}'
    user_id = await _insert_user(store, payload, active=False, pinCode=pin)
    logger.info({'msg': 'user_pending_verification', 'userId': user_id})
    await send_registration_pin(user_id, payload.email, pin)
    return user_id


async def complete_registration(store: DocumentStore, user_id: str, pin: str | None):
    _id = parse_object_id(user_id)
    user = await store.find_one(USERS, {'_id': _id}) if _id else None
    if not user:
        raise NotFoundError('User not found')
    if user.get('active'):
        raise ConflictError('Registration is already complete')
    expected = user.get('pinCode')
    if expected is not None:
        if not pin:
            raise ValidationError('pin is required')
        if not secrets.compare_digest(str(pin), str(expected)):
            raise ValidationError('Incorrect PIN')
    await store.update_one(USERS, _id, {'active': True}, unset_fields=['pinCode'])
    logger.info({'msg': 'user_verified', 'userId': user_id})


async def get_user(store: DocumentStore, user_id: str) -> dict:
    _id = parse_object_id(user_id)
    user = await store.find_one(USERS, {'_id': _id}) if _id else None
    if not user:
        raise NotFoundError('User not found')
    return user


async def update_user(store: DocumentStore, user_id: str, actor: dict, fields: dict):
    if user_id != actor['userId']:
        raise OwnershipError('You can only update your own profile')
    changes = _changed_fields(fields, USER_FIELDS)
    if not changes:
        raise ValidationError('No fields provided')
    user = await get_user(store, user_id)
    if 'email' in changes and changes['email'] != user['email']:
        taken = await store.find_one(USERS, {'email': changes['email']})
        if taken:
            raise ConflictError('Email has already been registered to an account')
    await store.update_one(USERS, user['_id'], changes)


# posts

async def create_post(store: DocumentStore, actor: dict, fields: dict) -> str:
    post = {
        'title': fields['title'],
        'body': fields['body'],
        'image': fields.get('image'),
        'latitude': fields.get('latitude'),
        'longitude': fields.get('longitude'),
        'authorId': actor['userId'],
        'tags': fields.get('tags') or [],
        'createdAt': _now(),
    }
    # a post without a location is stored without the coordinate keys
    for key in ('latitude', 'longitude'):
        if post[key] is None:
            del post[key]
    post_id = await store.insert_one(POSTS, post)
    logger.info({'msg': 'post_created', 'postId': str(post_id), 'authorId': actor['userId']})
    return str(post_id)


async def create_reply(store: DocumentStore, actor: dict, fields: dict) -> str:
    original_id = parse_object_id(fields['original_post_id'])
    if original_id is None:
        raise ValidationError('originalPostId is not a valid id')
    if not await store.find_one(POSTS, {'_id': original_id}):
        raise NotFoundError('Original post not found')
    reply = {
        'body': fields['body'],
        'image': fields.get('image'),
        'authorId': actor['userId'],
        'replyTo': original_id,
        'createdAt': _now(),
    }
    if fields.get('title'):
        reply['title'] = fields['title']
    reply_id = await store.insert_one(POSTS, reply)
    logger.info({'msg': 'reply_created', 'replyId': str(reply_id), 'replyTo': str(original_id)})
    return str(reply_id)


async def get_post(store: DocumentStore, post_id: str) -> dict:
    _id = parse_object_id(post_id)
    post = await store.find_one(POSTS, {'_id': _id}) if _id else None
    if not post:
        raise NotFoundError('Post not found')
    return post


async def get_replies(store: DocumentStore, post_id: str) -> list:
    """Direct replies of a post, oldest first"""
    root = await get_post(store, post_id)
    return await store.find(POSTS, {'replyTo': root['_id']}, sort=[('_id', 1)])


def _contains(text: str) -> dict:
    return {'$regex': re.escape(text.strip()), '$options': 'i'}


async def search_posts(store: DocumentStore, title=None, body=None, author_id=None, tags=None) -> list:
    clauses = []
    if title and title.strip():
        clauses.append({'title': _contains(title)})
    if body and body.strip():
        clauses.append({'body': _contains(body)})
    if author_id:
        clauses.append({'authorId': author_id})
    if tags:
        clauses.append({'tags': {'$in': list(tags)}})
    query = {'$or': clauses} if clauses else {}
    return await store.find(POSTS, query, sort=[('_id', -1)])


async def get_local_posts(store: DocumentStore, latitude, longitude, distance) -> list:
    validate_query(latitude, longitude, distance)
    posts = await store.find(POSTS, {}, sort=[('_id', -1)])
    return filter_nearby(posts, latitude, longitude, distance)


async def get_pins(store: DocumentStore) -> dict:
    posts = await store.find(POSTS, {'latitude': {'$exists': True}, 'longitude': {'$exists': True}},
                             sort=[('_id', -1)])
    return to_feature_collection(posts)


async def update_post(store: DocumentStore, post_id: str, actor: dict, fields: dict):
    changes = _changed_fields(fields, POST_FIELDS)
    if not changes:
        raise ValidationError('No fields provided')
    post = await get_post(store, post_id)
    if not authorize(post, actor):
        raise OwnershipError('You can only edit your own posts')
    changes['updatedAt'] = _now()
    await store.update_one(POSTS, post['_id'], changes)


async def update_reply(store: DocumentStore, reply_id: str, actor: dict, fields: dict):
    changes = _changed_fields(fields, REPLY_FIELDS)
    if not changes:
        raise ValidationError('No fields provided')
    _id = parse_object_id(reply_id)
    reply = await store.find_one(POSTS, {'_id': _id, 'replyTo': {'$exists': True}}) if _id else None
    if not reply:
        raise NotFoundError('Reply not found')
    if not authorize(reply, actor):
        raise OwnershipError('You can only edit your own replies')
    changes['updatedAt'] = _now()
    await store.update_one(POSTS, _id, changes)


async def delete_post(store: DocumentStore, post_id: str, actor: dict) -> int:
    """Delete a post and its direct replies; returns the number of documents removed"""
    post = await get_post(store, post_id)
    if not authorize(post, actor):
        raise OwnershipError('You can only delete your own posts')
    replies = await store.delete_many(POSTS, {'replyTo': post['_id']})
    deleted = await store.delete_one(POSTS, post['_id'])
    if deleted == 0:
        raise NotFoundError('Could not delete - post does not exist')
    logger.info({'msg': 'post_deleted', 'postId': post_id, 'replies': replies})
    return replies + deleted
