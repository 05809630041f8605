import base64
from pathlib import Path

import pytest

from kitchen_ec2.providers.aws.instance_generator import LaunchRequest, read_user_data


@pytest.fixture
def config() -> dict:
    return {
        "image_id": "ami-1234567",
        "instance_type": "t2.micro",
        "aws_ssh_key_id": "ci",
        "availability_zone": "US-EAST-1B",
        "tags": {"created-by": "test-kitchen"},
    }


def test_from_config_minimal(config) -> None:
    request = LaunchRequest.from_config(config)

    assert request.image_id == "ami-1234567"
    assert request.key_name == "ci"
    assert request.security_group_ids == ()
    assert request.spot_price is None
    assert request.tags == {"created-by": "test-kitchen"}


def test_request_is_immutable(config) -> None:
    request = LaunchRequest.from_config(config)

    with pytest.raises(AttributeError):
        request.image_id = "ami-other"


def test_request_tags_are_read_only(config) -> None:
    request = LaunchRequest.from_config(config)

    with pytest.raises(TypeError):
        request.tags["owner"] = "someone"

    config["tags"]["owner"] = "someone"

    assert dict(request.tags) == {"created-by": "test-kitchen"}


def test_from_config_normalizes_values(config) -> None:
    config.update(
        {
            "security_group_ids": "sg-1",
            "spot_price": 0.1,
            "tags": {"build": 7},
        }
    )

    request = LaunchRequest.from_config(config)

    assert request.security_group_ids == ("sg-1",)
    assert request.spot_price == "0.1"
    assert request.tags == {"build": "7"}


def test_run_arguments_minimal(config) -> None:
    arguments = LaunchRequest.from_config(config).to_run_arguments()

    assert arguments == {
        "ImageId": "ami-1234567",
        "InstanceType": "t2.micro",
        "KeyName": "ci",
        "Placement": {"AvailabilityZone": "us-east-1b"},
        "MinCount": 1,
        "MaxCount": 1,
    }


def test_run_arguments_full(config) -> None:
    config.update(
        {
            "subnet_id": "subnet-1",
            "security_group_ids": ["sg-1", "sg-2"],
            "iam_profile_name": "kitchen",
            "ebs_optimized": True,
            "tenancy": "dedicated",
            "user_data": "#!/bin/sh\necho hi\n",
            "block_device_mappings": [
                {"DeviceName": "/dev/sda1", "Ebs": {"VolumeSize": 20}}
            ],
            "private_ip_address": "10.0.0.9",
        }
    )

    arguments = LaunchRequest.from_config(config).to_run_arguments()

    assert arguments["Placement"] == {
        "AvailabilityZone": "us-east-1b",
        "Tenancy": "dedicated",
    }
    assert arguments["EbsOptimized"] is True
    assert arguments["IamInstanceProfile"] == {"Name": "kitchen"}
    assert arguments["BlockDeviceMappings"] == [
        {"DeviceName": "/dev/sda1", "Ebs": {"VolumeSize": 20}}
    ]
    assert arguments["SubnetId"] == "subnet-1"
    assert arguments["SecurityGroupIds"] == ["sg-1", "sg-2"]
    assert arguments["PrivateIpAddress"] == "10.0.0.9"
    assert arguments["UserData"] == "#!/bin/sh\necho hi\n"
    assert "NetworkInterfaces" not in arguments


@pytest.mark.parametrize("associate", [True, False])
def test_run_arguments_public_ip_uses_network_interface(config, associate) -> None:
    config.update(
        {
            "associate_public_ip": associate,
            "subnet_id": "subnet-1",
            "security_group_ids": ["sg-1"],
        }
    )

    arguments = LaunchRequest.from_config(config).to_run_arguments()

    assert arguments["NetworkInterfaces"] == [
        {
            "DeviceIndex": 0,
            "AssociatePublicIpAddress": associate,
            "SubnetId": "subnet-1",
            "Groups": ["sg-1"],
        }
    ]
    assert "SubnetId" not in arguments
    assert "SecurityGroupIds" not in arguments


def test_launch_specification_has_no_count(config) -> None:
    specification = LaunchRequest.from_config(config).to_launch_specification()

    assert "MinCount" not in specification
    assert "MaxCount" not in specification
    assert specification["ImageId"] == "ami-1234567"


def test_launch_specification_encodes_user_data(config) -> None:
    config["user_data"] = "#!/bin/sh\necho hi\n"

    specification = LaunchRequest.from_config(config).to_launch_specification()

    assert base64.b64decode(specification["UserData"]).decode() == "#!/bin/sh\necho hi\n"


def test_launch_specification_private_ip_uses_network_interface(config) -> None:
    config["private_ip_address"] = "10.0.0.9"

    specification = LaunchRequest.from_config(config).to_launch_specification()

    assert specification["NetworkInterfaces"] == [
        {"DeviceIndex": 0, "PrivateIpAddress": "10.0.0.9"}
    ]
    assert "PrivateIpAddress" not in specification


class TestReadUserData:
    def test_none(self) -> None:
        assert read_user_data(None) is None
        assert read_user_data("") is None

    def test_inline_script(self) -> None:
        assert read_user_data("#!/bin/sh\necho hi") == "#!/bin/sh\necho hi"

    def test_reads_file(self, tmp_path: Path) -> None:
        script = tmp_path / "user_data.sh"
        script.write_text("#!/bin/sh\napt-get update\n")

        assert read_user_data(str(script)) == "#!/bin/sh\napt-get update\n"
