"""
Identity Resolver.

The substrate attaches an opaque credential to every operation. Here it
is a serialized identity:

    {"mspid": "SchoolMSP", "certificate": "-----BEGIN CERTIFICATE-----..."}

Resolution yields (organization, caller_id):
    organization: mapped from mspid through LedgerConfig.organizations;
                   None when the membership is not one we know
    caller_id   : the certificate subject Common Name

A malformed credential aborts the operation before any state is read.
"""

import json
import logging
from dataclasses import dataclass
from typing import Optional

from cryptography import x509
from cryptography.x509.oid import NameOID

from acadledger.core.config import LedgerConfig
from acadledger.core.exceptions import IdentityResolutionError
from acadledger.core.models import Organization

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    """A resolved caller."""

    organization: Optional[Organization]
    caller_id:    Optional[str]
    msp_id:       Optional[str] = None

    @classmethod
    def anonymous(cls) -> "Identity":
        return cls(organization=None, caller_id=None, msp_id=None)

    @classmethod
    def learner(cls, student_id: str) -> "Identity":
        """A Learner subject, used when checks run on a student's behalf."""
        return cls(organization=Organization.LEARNER, caller_id=student_id)

    @property
    def is_institution(self) -> bool:
        return self.organization is Organization.INSTITUTION

    @property
    def is_learner(self) -> bool:
        return self.organization is Organization.LEARNER

    @property
    def is_affiliated(self) -> bool:
        return self.organization is not None and self.caller_id is not None

    def describe(self) -> str:
        if self.caller_id is None:
            return "anonymous"
        org = self.organization.value if self.organization else "unaffiliated"
        return f"{self.caller_id} ({org})"


def serialize_identity(msp_id: str, certificate_pem: bytes) -> bytes:
    """Build the credential bytes the resolver accepts."""
    if isinstance(certificate_pem, bytes):
        certificate_pem = certificate_pem.decode("ascii")
    return json.dumps(
        {"mspid": msp_id, "certificate": certificate_pem},
        sort_keys=True,
    ).encode("utf-8")


class IdentityResolver:
    """Turns credential bytes into an Identity. Stateless across operations."""

    def __init__(self, config: Optional[LedgerConfig] = None) -> None:
        self.config = config or LedgerConfig()

    def resolve(self, credential: Optional[bytes]) -> Identity:
        """
        Raises IdentityResolutionError on any malformed credential.
        An empty credential is the anonymous caller.
        """
        if credential is None or len(credential) == 0:
            return Identity.anonymous()

        try:
            data = json.loads(credential.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as exc:
            raise IdentityResolutionError(
                f"Credential is not a serialized identity: {exc}"
            ) from exc

        if not isinstance(data, dict):
            raise IdentityResolutionError("Credential must be a JSON object")

        msp_id = data.get("mspid")
        cert_pem = data.get("certificate")
        if not isinstance(msp_id, str) or not msp_id:
            raise IdentityResolutionError("Credential has no mspid")
        if not isinstance(cert_pem, str) or not cert_pem:
            raise IdentityResolutionError("Credential has no certificate")

        caller_id = self._common_name(cert_pem)
        organization = self.config.organization_for(msp_id)
        if organization is None:
            logger.info("Caller %s presented unknown membership %s", caller_id, msp_id)

        return Identity(organization=organization, caller_id=caller_id, msp_id=msp_id)

    @staticmethod
    def _common_name(cert_pem: str) -> str:
        try:
            cert = x509.load_pem_x509_certificate(cert_pem.encode("ascii"))
        except (ValueError, UnicodeEncodeError) as exc:
            raise IdentityResolutionError(
                f"Credential certificate is not valid PEM X.509: {exc}"
            ) from exc

        attributes = cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
        if not attributes:
            raise IdentityResolutionError("Certificate subject has no Common Name")
        common_name = attributes[0].value
        if isinstance(common_name, bytes):
            common_name = common_name.decode("utf-8")
        if not common_name:
            raise IdentityResolutionError("Certificate subject Common Name is empty")
        return common_name
