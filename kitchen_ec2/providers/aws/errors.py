"""Translation of botocore errors into provider exceptions."""

from __future__ import annotations

import logging
from collections.abc import Generator
from contextlib import contextmanager

from botocore.exceptions import (
    ClientError,
    EndpointConnectionError,
    NoCredentialsError,
    PartialCredentialsError,
    ProfileNotFound,
)

from kitchen_ec2.providers.exceptions import (
    ProviderAPIError,
    ProviderConnectionError,
    ProviderCredentialsError,
)

logger = logging.getLogger(__name__)

NOT_FOUND_ERROR_CODES = frozenset(
    (
        "InvalidInstanceID.NotFound",
        "InvalidInstanceID.Malformed",
    )
)

CREDENTIAL_ERROR_CODES = frozenset(
    (
        "AuthFailure",
        "InvalidClientTokenId",
        "UnrecognizedClientException",
    )
)


def error_code(error: ClientError) -> str:
    """Return the AWS error code carried by a ClientError."""
    return error.response.get("Error", {}).get("Code", "")


def is_not_found(error: ClientError) -> bool:
    """Return True when a ClientError means the instance does not exist."""
    return error_code(error) in NOT_FOUND_ERROR_CODES


@contextmanager
def handle_aws_errors() -> Generator[None, None, None]:
    """Translate botocore exceptions raised inside the block.

    Raises
    ------
    ProviderCredentialsError
        If credentials are missing, partial or rejected
    ProviderConnectionError
        If the EC2 endpoint cannot be reached
    ProviderAPIError
        For any other API error response
    """
    try:
        yield
    except (NoCredentialsError, PartialCredentialsError, ProfileNotFound) as e:
        raise ProviderCredentialsError(str(e)) from e
    except EndpointConnectionError as e:
        raise ProviderConnectionError(str(e)) from e
    except ClientError as e:
        code = error_code(e)
        if code in CREDENTIAL_ERROR_CODES:
            raise ProviderCredentialsError(str(e)) from e

        operation = getattr(e, "operation_name", None)
        logger.debug("AWS API error %s during %s: %s", code, operation, e)
        raise ProviderAPIError(str(e), error_code=code, operation=operation) from e
