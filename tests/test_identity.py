import pytest

from mint.exceptions import ConfigurationError
from mint.identity import normalize_owner, resolve_identity

from fakes import FakeSTS

pytestmark = [pytest.mark.unit, pytest.mark.xdist_group("unit")]


class TestNormalizeOwner:
    @pytest.mark.parametrize(
        ("arn", "owner"),
        [
            ("arn:aws:iam::123456789012:user/alice", "alice"),
            ("arn:aws:iam::123456789012:user/Jane.Doe", "jane-doe"),
            ("arn:aws:iam::123456789012:user/engineering/Bob_Smith", "bob-smith"),
            ("arn:aws:sts::123456789012:assumed-role/Developer/jane@example.com", "jane"),
            ("arn:aws:sts::123456789012:assumed-role/AWSReservedSSO_Dev/--Carol--", "carol"),
        ],
    )
    def test_normalizes(self, arn: str, owner: str):
        assert normalize_owner(arn) == owner

    @pytest.mark.parametrize(
        "arn",
        ["", "not-an-arn", "arn:aws:iam::123456789012", "arn:aws:iam::123456789012:user/@example.com"],
    )
    def test_rejects_unusable_arns(self, arn: str):
        with pytest.raises(ConfigurationError):
            normalize_owner(arn)


class TestResolveIdentity:
    def test_uses_caller_identity(self):
        identity = resolve_identity(FakeSTS("arn:aws:iam::123456789012:user/Dana"))
        assert identity.owner == "dana"
        assert identity.arn == "arn:aws:iam::123456789012:user/Dana"
        assert identity.account == "123456789012"
