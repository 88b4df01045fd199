from typing import Optional

from .model import BaseModel


class Instance(BaseModel):
    arn: str
    identity_store_id: str
    display_name: str
    owner_account_id: Optional[str] = None


class Group(BaseModel):
    id: str
    display_name: str
    description: Optional[str] = None


class GroupUser(BaseModel):
    membership_id: str
    user_id: str
    display_name: str
    email: str = ""


class User(BaseModel):
    id: str
    display_name: str
    user_name: str = ""
    email: str = ""


class Account(BaseModel):
    id: str
    name: str
    email: str = ""


class PermissionSet(BaseModel):
    arn: str
    name: str


class Assignment(BaseModel):
    account_id: str
    account_name: str
    permission_set_arn: str
    permission_set_name: str
