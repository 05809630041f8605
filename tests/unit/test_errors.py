import pytest
from botocore.exceptions import (
    ClientError,
    EndpointConnectionError,
    NoCredentialsError,
    ProfileNotFound,
)

from kitchen_ec2.providers import (
    ProviderAPIError,
    ProviderConnectionError,
    ProviderCredentialsError,
)
from kitchen_ec2.providers.aws.errors import handle_aws_errors, is_not_found


def client_error(code: str, operation: str = "DescribeInstances") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": "message"}}, operation)


@pytest.mark.parametrize(
    ("code", "expected"),
    [
        ("InvalidInstanceID.NotFound", True),
        ("InvalidInstanceID.Malformed", True),
        ("UnauthorizedOperation", False),
    ],
)
def test_is_not_found(code, expected) -> None:
    assert is_not_found(client_error(code)) is expected


@pytest.mark.parametrize(
    "error",
    [NoCredentialsError(), ProfileNotFound(profile="ci"), client_error("AuthFailure")],
)
def test_credentials_errors(error) -> None:
    with pytest.raises(ProviderCredentialsError):
        with handle_aws_errors():
            raise error


def test_connection_errors() -> None:
    with pytest.raises(ProviderConnectionError):
        with handle_aws_errors():
            raise EndpointConnectionError(endpoint_url="https://ec2.us-east-1.amazonaws.com")


def test_api_errors_keep_code_and_operation() -> None:
    with pytest.raises(ProviderAPIError) as excinfo:
        with handle_aws_errors():
            raise client_error("InvalidAMIID.NotFound", "DescribeImages")

    assert excinfo.value.error_code == "InvalidAMIID.NotFound"
    assert excinfo.value.operation == "DescribeImages"


def test_other_exceptions_pass_through() -> None:
    with pytest.raises(ValueError):
        with handle_aws_errors():
            raise ValueError("unrelated")
