from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Optional

import config
import entities
import errors

if TYPE_CHECKING:
    from mypy_boto3_sso_admin import SSOAdminClient, type_defs

    from entities.aws import Account, Assignment, Instance, PermissionSet

# ruff: noqa: PGH003

logger = config.get_logger(service="sso")


@dataclass
class AccountAssignmentStatus:
    status: str
    request_id: str
    failure_reason: Optional[str]

    @staticmethod
    def from_type_def(d: type_defs.AccountAssignmentOperationStatusTypeDef) -> AccountAssignmentStatus:
        return AccountAssignmentStatus(
            status=d.get("Status", ""),  # type: ignore
            request_id=d.get("RequestId", ""),  # type: ignore
            failure_reason=d.get("FailureReason"),  # type: ignore
        )

    @staticmethod
    def is_in_progress(status: AccountAssignmentStatus) -> bool:
        return status.status == "IN_PROGRESS"

    @staticmethod
    def is_ready(status: AccountAssignmentStatus) -> bool:
        return status.status == "SUCCEEDED"

    @staticmethod
    def is_failed(status: AccountAssignmentStatus) -> bool:
        return status.status == "FAILED"


@dataclass
class GroupAccountAssignment:
    instance_arn: str
    account_id: str
    permission_set_arn: str
    group_id: str

    def as_dict(self: GroupAccountAssignment) -> dict:
        return {
            "InstanceArn": self.instance_arn,
            "TargetId": self.account_id,
            "PermissionSetArn": self.permission_set_arn,
            "PrincipalId": self.group_id,
            "TargetType": "AWS_ACCOUNT",
            "PrincipalType": "GROUP",
        }


def short_arn(arn: str) -> str:
    return arn.split("/")[-1]


def parse_instance(td: type_defs.InstanceMetadataTypeDef) -> Instance:
    arn = td.get("InstanceArn", "")
    return entities.aws.Instance(
        arn=arn,
        identity_store_id=td.get("IdentityStoreId", ""),
        display_name=td.get("Name") or (short_arn(arn) if arn else "instance"),
        owner_account_id=td.get("OwnerAccountId"),
    )


@errors.translate_client_errors
def list_sso_instances(client: SSOAdminClient) -> list[Instance]:
    """List all IAM Identity Center instances visible to the caller.

    Returns:
        list[Instance]: instances in API order; empty when Identity Center is not enabled
    """
    instances: list[Instance] = []
    paginator = client.get_paginator("list_instances")
    for page in paginator.paginate():
        instances.extend(parse_instance(instance) for instance in page["Instances"])
    logger.info("Listed Identity Center instances", extra={"count": len(instances)})
    return instances


@errors.translate_client_errors
def list_permission_sets_arns(client: SSOAdminClient, sso_instance_arn: str) -> list[str]:
    arns: list[str] = []
    paginator = client.get_paginator("list_permission_sets")
    for page in paginator.paginate(InstanceArn=sso_instance_arn):
        arns.extend(page["PermissionSets"])
    return arns


def parse_permission_set(td: type_defs.DescribePermissionSetResponseTypeDef, arn: str) -> PermissionSet:
    ps = td.get("PermissionSet", {})
    return entities.aws.PermissionSet(arn=arn, name=ps.get("Name") or arn)


@errors.translate_client_errors
def describe_permission_set(client: SSOAdminClient, sso_instance_arn: str, permission_set_arn: str) -> PermissionSet:
    td = client.describe_permission_set(InstanceArn=sso_instance_arn, PermissionSetArn=permission_set_arn)
    return parse_permission_set(td, permission_set_arn)


def list_permission_sets(client: SSOAdminClient, sso_instance_arn: str) -> list[PermissionSet]:
    permission_sets = [
        describe_permission_set(client, sso_instance_arn, arn) for arn in list_permission_sets_arns(client, sso_instance_arn)
    ]
    logger.info("Listed permission sets", extra={"count": len(permission_sets)})
    return permission_sets


@errors.translate_client_errors
def list_group_account_assignments(
    client: SSOAdminClient,
    instance_arn: str,
    group_id: str,
    account: Account,
    permission_set: PermissionSet,
) -> list[Assignment]:
    paginator = client.get_paginator("list_account_assignments")
    assignments: list[Assignment] = []
    for page in paginator.paginate(
        InstanceArn=instance_arn,
        AccountId=account.id,
        PermissionSetArn=permission_set.arn,
    ):
        for account_assignment in page["AccountAssignments"]:
            if account_assignment.get("PrincipalType") == "GROUP" and account_assignment.get("PrincipalId") == group_id:
                assignments.append(
                    entities.aws.Assignment(
                        account_id=account.id,
                        account_name=account.name,
                        permission_set_arn=permission_set.arn,
                        permission_set_name=permission_set.name,
                    )
                )
    return assignments


def discover_group_assignments(
    client: SSOAdminClient,
    instance_arn: str,
    group_id: str,
    accounts: list[Account],
    permission_sets: list[PermissionSet],
    cancel: threading.Event,
) -> list[Assignment]:
    """Reconstruct the assignments of one group across every account and permission set.

    Issues one paginated listing per (account, permission set) pair. The cancel event is
    checked before each pair; once set, Canceled is raised with the matches found so far.
    """
    assignments: list[Assignment] = []
    for account in accounts:
        for permission_set in permission_sets:
            if cancel.is_set():
                logger.info("Assignment discovery canceled", extra={"group_id": group_id, "found": len(assignments)})
                raise errors.Canceled("assignment discovery canceled", partial=assignments)
            assignments.extend(list_group_account_assignments(client, instance_arn, group_id, account, permission_set))
    logger.info("Assignment discovery finished", extra={"group_id": group_id, "found": len(assignments)})
    return assignments


@errors.translate_client_errors
def create_account_assignment(client: SSOAdminClient, assignment: GroupAccountAssignment) -> AccountAssignmentStatus:
    response = client.create_account_assignment(**assignment.as_dict())
    return AccountAssignmentStatus.from_type_def(response["AccountAssignmentCreationStatus"])


@errors.translate_client_errors
def delete_account_assignment(client: SSOAdminClient, assignment: GroupAccountAssignment) -> AccountAssignmentStatus:
    response = client.delete_account_assignment(**assignment.as_dict())
    return AccountAssignmentStatus.from_type_def(response["AccountAssignmentDeletionStatus"])


@errors.translate_client_errors
def describe_account_assignment_creation_status(
    client: SSOAdminClient, instance_arn: str, request_id: str
) -> Optional[AccountAssignmentStatus]:
    response = client.describe_account_assignment_creation_status(
        InstanceArn=instance_arn,
        AccountAssignmentCreationRequestId=request_id,
    )
    if status := response.get("AccountAssignmentCreationStatus"):
        return AccountAssignmentStatus.from_type_def(status)
    return None


@errors.translate_client_errors
def describe_account_assignment_deletion_status(
    client: SSOAdminClient, instance_arn: str, request_id: str
) -> Optional[AccountAssignmentStatus]:
    response = client.describe_account_assignment_deletion_status(
        InstanceArn=instance_arn,
        AccountAssignmentDeletionRequestId=request_id,
    )
    if status := response.get("AccountAssignmentDeletionStatus"):
        return AccountAssignmentStatus.from_type_def(status)
    return None


def wait_for_result(
    operation: str,
    fn: Callable[[], Optional[AccountAssignmentStatus]],
    cancel: threading.Event,
    retry_period_seconds: float = 2,
) -> AccountAssignmentStatus:
    """Poll fn until the request reaches a terminal state.

    Every iteration first waits retry_period_seconds on the cancel event, so a
    cancellation interrupts the wait and raises Canceled right away.
    """
    while True:
        if cancel.wait(retry_period_seconds):
            raise errors.Canceled(f"{operation} canceled")
        status = fn()
        if status is None or AccountAssignmentStatus.is_in_progress(status):
            continue
        if AccountAssignmentStatus.is_ready(status):
            return status
        if AccountAssignmentStatus.is_failed(status):
            e = errors.AsyncOperationFailed(operation, status.failure_reason)
            logger.error(str(e), extra={"status": status})
            raise e


def _ensure_request_id(operation: str, status: AccountAssignmentStatus) -> str:
    if not status.request_id:
        raise errors.ApiError(f"missing {operation} request id")
    return status.request_id


def create_account_assignment_and_wait_for_result(
    client: SSOAdminClient,
    assignment: GroupAccountAssignment,
    cancel: threading.Event,
    retry_period_seconds: float = 2,
) -> AccountAssignmentStatus:
    operation = "assignment creation"
    response = create_account_assignment(client, assignment)
    if AccountAssignmentStatus.is_ready(response):
        result = response
    elif AccountAssignmentStatus.is_failed(response):
        raise errors.AsyncOperationFailed(operation, response.failure_reason)
    else:
        request_id = _ensure_request_id(operation, response)

        def fn() -> Optional[AccountAssignmentStatus]:
            return describe_account_assignment_creation_status(client, assignment.instance_arn, request_id)

        result = wait_for_result(operation, fn, cancel, retry_period_seconds)

    logger.info("Account assignment creation finished successfully.", extra={"assignment": assignment})
    return result


def delete_account_assignment_and_wait_for_result(
    client: SSOAdminClient,
    assignment: GroupAccountAssignment,
    cancel: threading.Event,
    retry_period_seconds: float = 2,
) -> AccountAssignmentStatus:
    operation = "assignment deletion"
    response = delete_account_assignment(client, assignment)
    if AccountAssignmentStatus.is_ready(response):
        result = response
    elif AccountAssignmentStatus.is_failed(response):
        raise errors.AsyncOperationFailed(operation, response.failure_reason)
    else:
        request_id = _ensure_request_id(operation, response)

        def fn() -> Optional[AccountAssignmentStatus]:
            return describe_account_assignment_deletion_status(client, assignment.instance_arn, request_id)

        result = wait_for_result(operation, fn, cancel, retry_period_seconds)

    logger.info("Account assignment deletion finished successfully.", extra={"assignment": assignment})
    return result
