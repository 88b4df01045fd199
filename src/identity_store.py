from __future__ import annotations

import concurrent.futures
from typing import TYPE_CHECKING, Any, Dict, Optional

import config
import entities
import errors

if TYPE_CHECKING:
    from mypy_boto3_identitystore import IdentityStoreClient
    from mypy_boto3_identitystore import type_defs as idc_type_defs

    from entities.aws import Group, GroupUser, User

# ruff: noqa: PGH003

logger = config.get_logger(service="identity_store")


def first_email(emails: Optional[list]) -> str:
    if not emails:
        return ""
    return emails[0].get("Value", "")


def display_name_or_fallback(display_name: Optional[str], user_name: Optional[str], user_id: str) -> str:
    return display_name or user_name or user_id


@errors.translate_client_errors
def list_groups(identity_store_id: str, identity_store_client: IdentityStoreClient) -> list[Group]:
    groups: list[Group] = []
    for page in identity_store_client.get_paginator("list_groups").paginate(IdentityStoreId=identity_store_id):
        groups.extend(
            entities.aws.Group(
                id=group.get("GroupId", ""),
                display_name=group.get("DisplayName", ""),
                description=group.get("Description"),
            )
            for group in page["Groups"]
        )
    logger.info("Got information about all groups.", extra={"count": len(groups)})
    return groups


@errors.translate_client_errors
def create_group(
    identity_store_id: str, display_name: str, identity_store_client: IdentityStoreClient
) -> idc_type_defs.CreateGroupResponseTypeDef:
    response = identity_store_client.create_group(IdentityStoreId=identity_store_id, DisplayName=display_name)
    logger.info("Group created", extra={"group_id": response.get("GroupId"), "display_name": display_name})
    return response


@errors.translate_client_errors
def delete_group(identity_store_id: str, group_id: str, identity_store_client: IdentityStoreClient) -> Dict[str, Any]:
    response = identity_store_client.delete_group(IdentityStoreId=identity_store_id, GroupId=group_id)
    logger.info("Group deleted", extra={"group_id": group_id})
    return response


@errors.translate_client_errors
def list_group_memberships(identity_store_id: str, group_id: str, identity_store_client: IdentityStoreClient) -> list[dict]:
    memberships: list[dict] = []
    paginator = identity_store_client.get_paginator("list_group_memberships")
    for page in paginator.paginate(IdentityStoreId=identity_store_id, GroupId=group_id):
        memberships.extend(page["GroupMemberships"])
    return memberships


def count_group_memberships(identity_store_id: str, group_id: str, identity_store_client: IdentityStoreClient) -> int:
    return len(list_group_memberships(identity_store_id, group_id, identity_store_client))


def describe_member(identity_store_id: str, membership: dict, identity_store_client: IdentityStoreClient) -> GroupUser:
    user_id = membership.get("MemberId", {}).get("UserId", "")
    user: dict = {}
    if user_id:
        try:
            user = identity_store_client.describe_user(IdentityStoreId=identity_store_id, UserId=user_id)
        except Exception as e:
            # Members stay listable even when their details cannot be resolved.
            logger.warning("Could not describe group member", extra={"user_id": user_id, "error": e})
    return entities.aws.GroupUser(
        membership_id=membership.get("MembershipId", ""),
        user_id=user_id,
        display_name=display_name_or_fallback(user.get("DisplayName"), user.get("UserName"), user_id),
        email=first_email(user.get("Emails")),
    )


def list_group_users(
    identity_store_id: str,
    group_id: str,
    identity_store_client: IdentityStoreClient,
    max_workers: int = 8,
) -> list[GroupUser]:
    """List the members of a group with their display names and emails.

    Memberships are collected first (any page error aborts the listing); the per-member
    lookups then run concurrently. The result keeps the membership order.
    """
    memberships = list_group_memberships(identity_store_id, group_id, identity_store_client)
    if not memberships:
        return []
    with concurrent.futures.ThreadPoolExecutor(max_workers=max_workers) as executor:
        users = list(executor.map(lambda m: describe_member(identity_store_id, m, identity_store_client), memberships))
    logger.info("Got group users", extra={"group_id": group_id, "count": len(users)})
    return users


@errors.translate_client_errors
def list_users(identity_store_id: str, identity_store_client: IdentityStoreClient) -> list[User]:
    users: list[User] = []
    for page in identity_store_client.get_paginator("list_users").paginate(IdentityStoreId=identity_store_id):
        for user in page["Users"]:
            user_id = user.get("UserId", "")
            user_name = user.get("UserName", "")
            users.append(
                entities.aws.User(
                    id=user_id,
                    display_name=display_name_or_fallback(user.get("DisplayName"), user_name, user_id),
                    user_name=user_name,
                    email=first_email(user.get("Emails")),
                )
            )
    logger.info("Got information about all users.", extra={"count": len(users)})
    return users


@errors.translate_client_errors
def add_user_to_a_group(
    sso_group_id: str,
    sso_user_id: str,
    identity_store_id: str,
    identity_store_client: IdentityStoreClient,
) -> idc_type_defs.CreateGroupMembershipResponseTypeDef:
    response = identity_store_client.create_group_membership(
        GroupId=sso_group_id,
        MemberId={"UserId": sso_user_id},
        IdentityStoreId=identity_store_id,
    )
    logger.info("User added to the group", extra={"group_id": sso_group_id, "user_id": sso_user_id})
    return response


@errors.translate_client_errors
def remove_user_from_group(
    identity_store_id: str, membership_id: str, identity_store_client: IdentityStoreClient
) -> Dict[str, Any]:
    response = identity_store_client.delete_group_membership(IdentityStoreId=identity_store_id, MembershipId=membership_id)
    logger.info("User removed from the group", extra={"membership_id": membership_id})
    return response
