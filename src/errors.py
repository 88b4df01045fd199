import functools
from typing import Callable, Optional, TypeVar

from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    SSOTokenLoadError,
    TokenRetrievalError,
    UnauthorizedSSOTokenError,
)

T = TypeVar("T")

AUTH_ERROR_CODES = ("ExpiredToken", "ExpiredTokenException", "UnauthorizedException")

AUTH_ERROR_SIGNALS = (
    "sso session",
    "token has expired",
    "expired token",
    "expiredtoken",
    "unauthorized",
    "invalid_grant",
    "error loading sso token",
)


class GatewayError(Exception):
    ...


class ApiError(GatewayError):
    """A remote call failed. The operator may retry it with refresh."""


class AuthExpired(ApiError):
    ...


class OrganizationsAccessDenied(GatewayError):
    """The caller may not list organization accounts. A policy outcome, not a failure."""


class AsyncOperationFailed(GatewayError):
    def __init__(self, operation: str, reason: Optional[str]) -> None:
        self.operation = operation
        self.reason = reason or "unknown failure"
        super().__init__(f"{operation} failed: {self.reason}")


class Canceled(GatewayError):
    def __init__(self, message: str = "operation canceled", partial: Optional[list] = None) -> None:
        super().__init__(message)
        self.partial = partial or []


class LoginFailed(GatewayError):
    ...


class NotConfigured(GatewayError):
    ...


def is_sso_auth_error(e: BaseException) -> bool:
    if isinstance(e, (SSOTokenLoadError, TokenRetrievalError, UnauthorizedSSOTokenError, AuthExpired)):
        return True
    if isinstance(e, ClientError) and error_code(e) in AUTH_ERROR_CODES:
        return True
    message = str(e).lower()
    return any(signal in message for signal in AUTH_ERROR_SIGNALS)


def error_code(e: ClientError) -> str:
    return e.response.get("Error", {}).get("Code", "")


def translate_client_errors(fn: Callable[..., T]) -> Callable[..., T]:
    """Re-raise botocore failures as gateway errors so callers never see botocore types."""

    @functools.wraps(fn)
    def wrapper(*args, **kwargs):  # noqa: ANN002, ANN003, ANN202
        try:
            return fn(*args, **kwargs)
        except (ClientError, BotoCoreError) as e:
            if is_sso_auth_error(e):
                raise AuthExpired(str(e)) from e
            raise ApiError(str(e)) from e

    return wrapper
