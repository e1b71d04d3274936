"""
tests/test_identity.py

Credential resolution: membership → organization, certificate CN → caller id.
"""

import json

import pytest
from cryptography import x509
from cryptography.x509.oid import NameOID

from acadledger.core.config import LedgerConfig
from acadledger.core.exceptions import IdentityResolutionError
from acadledger.core.identity import Identity, IdentityResolver, serialize_identity
from acadledger.core.models import Organization

from conftest import T0, certificate_pem, make_credential


@pytest.fixture
def resolver():
    return IdentityResolver(LedgerConfig())


class TestResolution:

    def test_institution_member(self, resolver):
        identity = resolver.resolve(make_credential("SchoolMSP", "prof.martin"))
        assert identity.organization is Organization.INSTITUTION
        assert identity.caller_id == "prof.martin"
        assert identity.msp_id == "SchoolMSP"
        assert identity.is_institution and not identity.is_learner

    def test_learner(self, resolver):
        identity = resolver.resolve(make_credential("StudentsMSP", "alice"))
        assert identity.organization is Organization.LEARNER
        assert identity.caller_id == "alice"
        assert identity.is_affiliated

    def test_unknown_membership_is_unaffiliated(self, resolver):
        identity = resolver.resolve(make_credential("VisitorsMSP", "mallory"))
        assert identity.organization is None
        assert identity.caller_id == "mallory"
        assert not identity.is_affiliated

    def test_empty_credential_is_anonymous(self, resolver):
        assert resolver.resolve(b"") == Identity.anonymous()
        assert resolver.resolve(None) == Identity.anonymous()
        assert Identity.anonymous().describe() == "anonymous"

    def test_membership_mapping_comes_from_config(self):
        config = LedgerConfig.from_dict({"organizations": {"FacultyMSP": "Institution"}})
        identity = IdentityResolver(config).resolve(make_credential("FacultyMSP", "dean"))
        assert identity.is_institution
        # default mapping replaced, not merged
        assert IdentityResolver(config).resolve(
            make_credential("SchoolMSP", "prof")
        ).organization is None


class TestMalformedCredentials:

    @pytest.mark.parametrize("credential", [
        b"not json",
        b"\xff\xfe",
        b"[1, 2, 3]",
        json.dumps({"certificate": "x"}).encode(),
        json.dumps({"mspid": "SchoolMSP"}).encode(),
        json.dumps({"mspid": "SchoolMSP", "certificate": "garbage"}).encode(),
    ])
    def test_rejected(self, resolver, credential):
        with pytest.raises(IdentityResolutionError) as info:
            resolver.resolve(credential)
        assert info.value.kind == "IdentityResolutionFailure"

    def test_certificate_without_common_name(self, resolver):
        pem = certificate_pem([x509.NameAttribute(NameOID.ORGANIZATION_NAME, "School")])
        with pytest.raises(IdentityResolutionError, match="Common Name"):
            resolver.resolve(serialize_identity("SchoolMSP", pem))

    def test_fails_operation_before_state_access(self, ledger):
        with pytest.raises(IdentityResolutionError):
            ledger.executor.submit("CreateClass", ["C1", "Algorithms", ""], b"{broken", T0)
        assert ledger.world.items() == []
        assert ledger.world.height == 0
