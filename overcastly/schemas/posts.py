from datetime import datetime
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Wire names are camelCase (authorId, replyTo...), python names snake_case"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _author(doc: dict) -> Optional[str]:
    author = doc.get('authorId')
    return str(author) if author is not None else None


class PostIn(CamelModel):
    model_config = ConfigDict(allow_inf_nan=False)

    title: str = Field(min_length=1)
    body: str = Field(min_length=1)
    image: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    tags: List[str] = []


class ReplyIn(CamelModel):
    body: str = Field(min_length=1)
    original_post_id: str = Field(min_length=1)
    title: Optional[str] = None
    image: Optional[str] = None


class PostUpdateIn(CamelModel):
    model_config = ConfigDict(allow_inf_nan=False)

    title: Optional[str] = None
    body: Optional[str] = None
    image: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    tags: Optional[List[str]] = None


class ReplyUpdateIn(CamelModel):
    title: Optional[str] = None
    body: Optional[str] = None
    image: Optional[str] = None


class SearchIn(CamelModel):
    title: Optional[str] = None
    body: Optional[str] = None
    author_id: Optional[str] = None
    tags: Optional[List[str]] = None

    @field_validator('tags', mode='before')
    @classmethod
    def single_tag(cls, value: Union[str, List[str], None]):
        if isinstance(value, str):
            return [value]
        return value


class LocalPostsIn(CamelModel):
    # presence and range are checked by geo.validate_query
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    distance: Optional[float] = None


class PostOut(CamelModel):
    id: str
    title: Optional[str] = None
    body: Optional[str] = None
    image: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    author_id: Optional[str] = None
    tags: List[str] = []
    reply_to: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_document(cls, doc: dict) -> 'PostOut':
        return cls(
            id=str(doc['_id']),
            title=doc.get('title'),
            body=doc.get('body'),
            image=doc.get('image'),
            latitude=doc.get('latitude'),
            longitude=doc.get('longitude'),
            author_id=_author(doc),
            tags=doc.get('tags') or [],
            reply_to=str(doc['replyTo']) if doc.get('replyTo') else None,
            created_at=doc.get('createdAt'),
            updated_at=doc.get('updatedAt'),
        )


class ReplyOut(CamelModel):
    id: str
    author_id: Optional[str] = None
    body: Optional[str] = None
    image: Optional[str] = None

    @classmethod
    def from_document(cls, doc: dict) -> 'ReplyOut':
        return cls(
            id=str(doc['_id']),
            author_id=_author(doc),
            body=doc.get('body'),
            image=doc.get('image'),
        )


class PostCreatedOut(CamelModel):
    post_id: str


class ReplyCreatedOut(CamelModel):
    reply_id: str


class PinGeometry(BaseModel):
    type: str = 'Point'
    coordinates: List[float]


class PinProperties(BaseModel):
    id: str
    title: Optional[str] = None
    body: Optional[str] = None
    author: Optional[str] = None


class PinFeature(BaseModel):
    type: str = 'Feature'
    geometry: PinGeometry
    properties: PinProperties


class PinCollection(BaseModel):
    type: str = 'FeatureCollection'
    features: List[PinFeature]
