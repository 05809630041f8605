from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError, WaiterError

from kitchen_ec2.providers.aws.server import Server


@pytest.fixture
def boto_instance():
    instance = MagicMock(name="ec2.Instance")
    instance.id = "i-12345"
    instance.state = {"Code": 16, "Name": "running"}
    instance.meta.data = {"InstanceId": "i-12345"}
    return instance


@pytest.fixture
def boto_client():
    return MagicMock(name="ec2 client")


@pytest.fixture
def server(boto_instance, boto_client):
    return Server(boto_instance, boto_client)


def test_exposes_instance_attributes(server, boto_instance):
    boto_instance.public_dns_name = "ec2-1-2-3-4.compute.amazonaws.com"
    boto_instance.public_ip_address = "1.2.3.4"
    boto_instance.private_ip_address = "10.0.0.1"

    assert server.id == "i-12345"
    assert server.state_name == "running"
    assert server.public_dns_name == "ec2-1-2-3-4.compute.amazonaws.com"
    assert server.public_ip_address == "1.2.3.4"
    assert server.private_ip_address == "10.0.0.1"


def test_state_name_none_without_state(server, boto_instance):
    boto_instance.state = None

    assert server.state_name is None


class TestExists:
    def test_true_after_reload(self, server, boto_instance):
        assert server.exists() is True
        boto_instance.reload.assert_called_once()

    def test_false_when_not_found(self, server, boto_instance):
        boto_instance.reload.side_effect = ClientError(
            {"Error": {"Code": "InvalidInstanceID.NotFound", "Message": "gone"}},
            "DescribeInstances",
        )

        assert server.exists() is False

    def test_false_without_data(self, server, boto_instance):
        boto_instance.meta.data = None

        assert server.exists() is False

    def test_other_errors_propagate(self, server, boto_instance):
        boto_instance.reload.side_effect = ClientError(
            {"Error": {"Code": "RequestLimitExceeded", "Message": "slow down"}},
            "DescribeInstances",
        )

        with pytest.raises(ClientError):
            server.exists()


def test_wait_until_exists_passes_waiter_config(server, boto_instance):
    server.wait_until_exists(max_attempts=60, delay=5)

    boto_instance.wait_until_exists.assert_called_once_with(
        WaiterConfig={"Delay": 5, "MaxAttempts": 60}
    )


@patch("kitchen_ec2.providers.aws.server.time.sleep")
class TestWaitUntil:
    def test_returns_when_predicate_holds(self, mock_sleep, server):
        results = iter([False, False, True])
        attempts = []

        assert server.wait_until(
            lambda s: next(results),
            max_attempts=5,
            delay=2,
            before_attempt=attempts.append,
        )

        assert attempts == [0, 1, 2]
        assert mock_sleep.call_count == 2
        mock_sleep.assert_called_with(2)

    def test_predicate_receives_server(self, mock_sleep, server):
        seen = []

        server.wait_until(lambda s: seen.append(s) or True, max_attempts=1, delay=1)

        assert seen == [server]

    def test_raises_waiter_error_when_budget_exhausted(self, mock_sleep, server):
        with pytest.raises(WaiterError, match="Max attempts exceeded"):
            server.wait_until(lambda s: False, max_attempts=3, delay=1)

        assert mock_sleep.call_count == 2


def test_create_tags_sends_one_batch(server, boto_instance):
    server.create_tags({"key1": "value1", "count": 2})

    boto_instance.create_tags.assert_called_once_with(
        Tags=[{"Key": "key1", "Value": "value1"}, {"Key": "count", "Value": "2"}]
    )


@pytest.mark.parametrize(
    ("response", "expected"),
    [
        ({"Output": "Windows is Ready to use"}, "Windows is Ready to use"),
        ({"InstanceId": "i-12345"}, ""),
        ({"Output": None}, ""),
    ],
)
def test_console_output(server, boto_instance, response, expected):
    boto_instance.console_output.return_value = response

    assert server.console_output() == expected


def test_password_data(server, boto_client):
    boto_client.get_password_data.return_value = {"PasswordData": "c2VjcmV0"}

    assert server.password_data() == "c2VjcmV0"
    boto_client.get_password_data.assert_called_once_with(InstanceId="i-12345")


def test_password_data_blank_until_generated(server, boto_client):
    boto_client.get_password_data.return_value = {"PasswordData": ""}

    assert server.password_data() == ""


def test_decrypt_windows_password(server, boto_client):
    boto_client.get_password_data.return_value = {"PasswordData": "encrypted"}

    with patch(
        "kitchen_ec2.providers.aws.server.decrypt_windows_password",
        return_value="plaintext",
    ) as mock_decrypt:
        assert server.decrypt_windows_password("/keys/id_rsa") == "plaintext"

    mock_decrypt.assert_called_once_with("encrypted", "/keys/id_rsa")


def test_terminate(server, boto_instance):
    server.terminate()

    boto_instance.terminate.assert_called_once()
