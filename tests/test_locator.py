import pytest

from mint.aws.ami import resolve_ami
from mint.aws.locator import ResourceLocator
from mint.constants import InstanceState, MintTag
from mint.exceptions import (
    AmbiguousResourceError,
    ResolutionError,
    VMNotFoundError,
    VolumeNotFoundError,
)

from fakes import (
    OWNER,
    FakeEC2,
    FakeSSM,
    client_error,
    make_address,
    make_instance,
    make_security_group,
    make_subnet,
    make_volume,
)

pytestmark = [pytest.mark.unit, pytest.mark.xdist_group("unit")]


class TestFindVM:
    def test_finds_by_owner_and_name(self):
        ec2 = FakeEC2(instances=[make_instance("i-1", "dev"), make_instance("i-2", "other")])
        vm = ResourceLocator(ec2, OWNER).find_vm("dev")
        assert vm is not None
        assert vm.instance_id == "i-1"
        assert vm.name == "dev"
        assert vm.owner == OWNER
        assert vm.state == InstanceState.RUNNING
        assert vm.availability_zone == "us-east-1a"
        assert vm.public_ip == "203.0.113.10"

    def test_ignores_other_owners(self):
        ec2 = FakeEC2(instances=[make_instance("i-1", "dev", owner="bob")])
        assert ResourceLocator(ec2, OWNER).find_vm("dev") is None

    @pytest.mark.parametrize("state", ["terminated", "shutting-down"])
    def test_ignores_dead_instances(self, state: str):
        ec2 = FakeEC2(instances=[make_instance("i-1", "dev", state)])
        assert ResourceLocator(ec2, OWNER).find_vm("dev") is None

    def test_multiple_live_matches_is_ambiguous(self):
        ec2 = FakeEC2(instances=[make_instance("i-1"), make_instance("i-2", state="stopped")])
        with pytest.raises(AmbiguousResourceError, match="i-1, i-2"):
            ResourceLocator(ec2, OWNER).find_vm("default")

    def test_require_vm_raises_when_missing(self):
        with pytest.raises(VMNotFoundError, match="create the VM first"):
            ResourceLocator(FakeEC2(), OWNER).require_vm("default")

    def test_reads_bootstrap_tags(self):
        ec2 = FakeEC2(instances=[make_instance(**{MintTag.BOOTSTRAP: "failed", MintTag.BOOTSTRAP_FAILURE_PHASE: "docker"})])
        vm = ResourceLocator(ec2, OWNER).describe_vm("i-old")
        assert vm.bootstrap == "failed"
        assert vm.bootstrap_failure_phase == "docker"

    def test_describe_unknown_instance(self):
        with pytest.raises(ResolutionError):
            ResourceLocator(FakeEC2(), OWNER).describe_vm("i-missing")


class TestFindProjectVolume:
    def test_exactly_one(self):
        ec2 = FakeEC2(volumes=[make_volume("vol-1"), make_volume("vol-x", vm="other")])
        volume = ResourceLocator(ec2, OWNER).find_project_volume("default")
        assert volume.volume_id == "vol-1"
        assert volume.availability_zone == "us-east-1a"
        assert volume.attached_to == ("i-old",)
        assert not volume.pending_attach

    def test_zero_is_an_error(self):
        with pytest.raises(VolumeNotFoundError):
            ResourceLocator(FakeEC2(), OWNER).find_project_volume("default")

    def test_two_is_an_error(self):
        ec2 = FakeEC2(volumes=[make_volume("vol-1"), make_volume("vol-2")])
        with pytest.raises(AmbiguousResourceError, match="vol-1, vol-2"):
            ResourceLocator(ec2, OWNER).find_project_volume("default")


class TestFindElasticIP:
    def test_bound_address(self):
        ec2 = FakeEC2(addresses=[make_address()])
        address = ResourceLocator(ec2, OWNER).find_elastic_ip("default")
        assert address is not None
        assert address.allocation_id == "eipalloc-1"
        assert address.is_bound
        assert address.association_id == "eipassoc-stale"

    def test_unbound_address(self):
        ec2 = FakeEC2(addresses=[make_address(association_id=None)])
        address = ResourceLocator(ec2, OWNER).find_elastic_ip("default")
        assert address is not None
        assert not address.is_bound

    def test_missing_address(self):
        assert ResourceLocator(FakeEC2(), OWNER).find_elastic_ip("default") is None


class TestLaunchInputs:
    def test_security_groups(self):
        ec2 = FakeEC2(
            security_groups=[
                make_security_group("sg-user", "security-group"),
                make_security_group("sg-admin", "admin", owner=None),
                make_security_group("sg-bob", "security-group", owner="bob"),
            ]
        )
        locator = ResourceLocator(ec2, OWNER)
        assert locator.find_security_group() == "sg-user"
        assert locator.find_admin_security_group() == "sg-admin"

    def test_missing_security_groups(self):
        locator = ResourceLocator(FakeEC2(), OWNER)
        with pytest.raises(ResolutionError, match="mint:component=security-group"):
            locator.find_security_group()
        with pytest.raises(ResolutionError, match="mint:component=admin"):
            locator.find_admin_security_group()

    def test_subnet_must_match_zone(self):
        ec2 = FakeEC2(subnets=[make_subnet("subnet-b", az="us-east-1b"), make_subnet("subnet-a")])
        assert ResourceLocator(ec2, OWNER).find_default_subnet("us-east-1a") == "subnet-a"

    def test_non_default_subnet_ignored(self):
        ec2 = FakeEC2(subnets=[make_subnet("subnet-a", default=False)])
        with pytest.raises(ResolutionError, match="us-east-1a"):
            ResourceLocator(ec2, OWNER).find_default_subnet("us-east-1a")


class TestResolveAMI:
    def test_reads_parameter(self):
        ssm = FakeSSM("ami-abc")
        assert resolve_ami(ssm) == "ami-abc"
        assert "ubuntu/server/24.04" in ssm.calls[0]

    def test_missing_parameter(self):
        ssm = FakeSSM(error=client_error("ParameterNotFound", "nope", "GetParameter"))
        with pytest.raises(ResolutionError, match="not found"):
            resolve_ami(ssm)

    def test_other_errors_propagate(self):
        from botocore.exceptions import ClientError

        ssm = FakeSSM(error=client_error("AccessDenied", "denied", "GetParameter"))
        with pytest.raises(ClientError):
            resolve_ami(ssm)

    def test_empty_value(self):
        with pytest.raises(ResolutionError):
            resolve_ami(FakeSSM(""))
