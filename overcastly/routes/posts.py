from typing import List

from fastapi import APIRouter, Depends, Response

from ..auth import get_current_user
from ..crud import (
    create_post,
    create_reply,
    delete_post,
    get_local_posts,
    get_pins,
    get_post,
    get_replies,
    search_posts,
    update_post,
    update_reply,
)
from ..schemas.posts import (
    LocalPostsIn,
    PinCollection,
    PostCreatedOut,
    PostIn,
    PostOut,
    PostUpdateIn,
    ReplyCreatedOut,
    ReplyIn,
    ReplyOut,
    ReplyUpdateIn,
    SearchIn,
)
from ..store import DocumentStore, get_store

router = APIRouter()


@router.post('/createpost', response_model=PostCreatedOut, status_code=201)
async def create(
    payload: PostIn,
    current_user: dict = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
):
    post_id = await create_post(store, current_user, payload.model_dump())
    return {'post_id': post_id}


@router.post('/createreply', response_model=ReplyCreatedOut, status_code=201)
async def reply(
    payload: ReplyIn,
    current_user: dict = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
):
    reply_id = await create_reply(store, current_user, payload.model_dump())
    return {'reply_id': reply_id}


@router.post('/searchposts', response_model=List[PostOut], response_model_exclude_none=True)
async def search(payload: SearchIn, store: DocumentStore = Depends(get_store)):
    posts = await search_posts(
        store,
        title=payload.title,
        body=payload.body,
        author_id=payload.author_id,
        tags=payload.tags,
    )
    return [PostOut.from_document(p) for p in posts]


@router.post('/getlocalposts', response_model=List[PostOut], response_model_exclude_none=True)
async def local_posts(payload: LocalPostsIn, store: DocumentStore = Depends(get_store)):
    posts = await get_local_posts(store, payload.latitude, payload.longitude, payload.distance)
    return [PostOut.from_document(p) for p in posts]


@router.get('/getpins', response_model=PinCollection)
async def pins(store: DocumentStore = Depends(get_store)):
    return await get_pins(store)


@router.get('/posts/{post_id}', response_model=PostOut, response_model_exclude_none=True)
async def read(post_id: str, store: DocumentStore = Depends(get_store)):
    post = await get_post(store, post_id)
    return PostOut.from_document(post)


@router.get('/posts/{post_id}/getreplies', response_model=List[ReplyOut], response_model_exclude_none=True)
async def replies(post_id: str, store: DocumentStore = Depends(get_store)):
    found = await get_replies(store, post_id)
    return [ReplyOut.from_document(r) for r in found]


@router.put('/updatepost/{post_id}')
async def update(
    post_id: str,
    payload: PostUpdateIn,
    current_user: dict = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
):
    await update_post(store, post_id, current_user, payload.model_dump(exclude_none=True))
    return {}


@router.put('/updatereply/{reply_id}')
async def update_reply_route(
    reply_id: str,
    payload: ReplyUpdateIn,
    current_user: dict = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
):
    await update_reply(store, reply_id, current_user, payload.model_dump(exclude_none=True))
    return {}


@router.delete('/deletepost/{post_id}', status_code=204)
async def delete(
    post_id: str,
    current_user: dict = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
):
    await delete_post(store, post_id, current_user)
    return Response(status_code=204)
