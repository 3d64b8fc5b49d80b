from typing import Optional

from pydantic import EmailStr, Field

from .posts import CamelModel


class RegisterIn(CamelModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    email: EmailStr


class RegisteredOut(CamelModel):
    user_id: str


class CompleteRegistrationIn(CamelModel):
    pin: Optional[str] = None


class LoginIn(CamelModel):
    # username or email
    login: Optional[str] = None
    password: Optional[str] = None


class TokenOut(CamelModel):
    token: str
    user_id: str
    username: str
    email: str


class CurrentUserOut(CamelModel):
    user_id: str
    username: Optional[str] = None
    email: Optional[str] = None


class UserOut(CamelModel):
    id: str
    username: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    image: Optional[str] = None
    active: bool = True

    @classmethod
    def from_document(cls, doc: dict) -> 'UserOut':
        # passwordHash and pinCode never leave the server
        return cls(
            id=str(doc['_id']),
            username=doc['username'],
            email=doc['email'],
            first_name=doc.get('firstName'),
            last_name=doc.get('lastName'),
            image=doc.get('image'),
            active=doc.get('active', True),
        )


class UserUpdateIn(CamelModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[EmailStr] = None
    image: Optional[str] = None


class MessageOut(CamelModel):
    message: str
