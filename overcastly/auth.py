import os
from datetime import datetime, timedelta, timezone

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import jwt, JWTError, ExpiredSignatureError

from .errors import AuthenticationError

# Prefer JWT_SECRET but support legacy JWT_SECRET_KEY for compatibility
SECRET = os.getenv('JWT_SECRET') or os.getenv('JWT_SECRET_KEY', 'devsecret')
ALGORITHM = os.getenv('JWT_ALGORITHM', 'HS256')
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv('ACCESS_TOKEN_EXPIRE_MINUTES', str(60 * 24)))

bearer_scheme = HTTPBearer(auto_error=False)


def create_access_token(data: dict, expires_delta: timedelta = None):
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({'exp': expire})
    encoded = jwt.encode(to_encode, SECRET, algorithm=ALGORITHM)
    return encoded


def token_for_user(user: dict) -> str:
    """Issue a token carrying the claims the verifier hands back"""
    return create_access_token({
        'userId': str(user['_id']),
        'username': user['username'],
        'email': user['email'],
    })


def verify_token(token: str) -> dict:
    """Return ``{userId, username, email}`` for a valid token"""
    try:
        payload = jwt.decode(token, SECRET, algorithms=[ALGORITHM])
    except ExpiredSignatureError:
        raise AuthenticationError('Token has expired', status_code=403)
    except JWTError:
        raise AuthenticationError('Invalid token', status_code=403)
    if not payload.get('userId'):
        raise AuthenticationError('Invalid token', status_code=403)
    return {
        'userId': str(payload['userId']),
        'username': payload.get('username'),
        'email': payload.get('email'),
    }


async def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme)) -> dict:
    if credentials is None or not credentials.credentials:
        raise AuthenticationError('Authentication required')
    return verify_token(credentials.credentials)
