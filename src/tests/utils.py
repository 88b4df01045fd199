from typing import Optional
from unittest.mock import MagicMock

from botocore.exceptions import ClientError


def client_error(code: str, message: str = "", operation: str = "Operation") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message or code}}, operation)


def paginator(pages: list, fail_at: Optional[int] = None, error: Optional[Exception] = None) -> MagicMock:
    """Mock boto3 paginator yielding pages; raises error before page fail_at when given."""

    def paginate(**kwargs):  # noqa: ANN003, ANN202, ARG001
        for i, page in enumerate(pages):
            if fail_at is not None and i == fail_at:
                raise error or client_error("ThrottlingException", "Rate exceeded")
            yield page
        if fail_at is not None and fail_at >= len(pages):
            raise error or client_error("ThrottlingException", "Rate exceeded")

    mock = MagicMock()
    mock.paginate.side_effect = paginate
    return mock


def paginators(**by_operation: MagicMock) -> MagicMock:
    """get_paginator side effect returning a paginator per operation name."""
    return MagicMock(side_effect=lambda name: by_operation[name])
