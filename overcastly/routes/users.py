from fastapi import APIRouter, Depends

from ..auth import get_current_user
from ..crud import (
    authenticate_user,
    complete_registration,
    get_user,
    initial_register_user,
    register_user,
    update_user,
)
from ..schemas.users import (
    CompleteRegistrationIn,
    CurrentUserOut,
    LoginIn,
    MessageOut,
    RegisteredOut,
    RegisterIn,
    TokenOut,
    UserOut,
    UserUpdateIn,
)
from ..store import DocumentStore, get_store

router = APIRouter()


@router.post('/login', response_model=TokenOut)
async def login(payload: LoginIn, store: DocumentStore = Depends(get_store)):
    return await authenticate_user(store, payload.login, payload.password)


@router.get('/authenticate', response_model=CurrentUserOut)
async def authenticate(current_user: dict = Depends(get_current_user)):
    return {
        'user_id': current_user['userId'],
        'username': current_user['username'],
        'email': current_user['email'],
    }


@router.post('/registeruser', response_model=RegisteredOut, status_code=201)
async def register(payload: RegisterIn, store: DocumentStore = Depends(get_store)):
    user_id = await register_user(store, payload)
    return {'user_id': user_id}


@router.post('/initialregisteruser', response_model=RegisteredOut, status_code=201)
async def initial_register(payload: RegisterIn, store: DocumentStore = Depends(get_store)):
    user_id = await initial_register_user(store, payload)
    return {'user_id': user_id}


@router.post('/completeregisteruser/{user_id}', response_model=MessageOut)
async def complete_register(
    user_id: str,
    payload: CompleteRegistrationIn,
    store: DocumentStore = Depends(get_store),
):
    await complete_registration(store, user_id, payload.pin)
    return {'message': 'Registration complete'}


@router.get('/users/{user_id}', response_model=UserOut, response_model_exclude_none=True)
async def read_user(user_id: str, store: DocumentStore = Depends(get_store)):
    user = await get_user(store, user_id)
    return UserOut.from_document(user)


@router.put('/users/{user_id}', response_model=MessageOut)
@router.put('/updateuser/{user_id}', response_model=MessageOut, include_in_schema=False)
async def update(
    user_id: str,
    payload: UserUpdateIn,
    current_user: dict = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
):
    await update_user(store, user_id, current_user, payload.model_dump(by_alias=True, exclude_none=True))
    return {'message': 'User updated'}
