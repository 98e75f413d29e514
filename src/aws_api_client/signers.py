#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
import datetime
import hmac
import logging
from copy import deepcopy
from dataclasses import dataclass, field
from hashlib import sha256
from typing import Required, TypedDict
from urllib.parse import quote

from ._http import AWSRequest, Field, Fields
from ._identity import AWSCredentialIdentity
from .canonical import UNSIGNED_PAYLOAD, CanonicalRequest, canonicalize
from .interfaces.identity import AWSCredentialsIdentity as _AWSCredentialsIdentity

logger = logging.getLogger(__name__)

SIGV4_TIMESTAMP_FORMAT: str = "%Y%m%dT%H%M%SZ"
SIGV4_ALGORITHM: str = "AWS4-HMAC-SHA256"
MAX_PRESIGN_EXPIRES: int = 604800


class SigV4SigningProperties(TypedDict, total=False):
    region: Required[str]
    service: Required[str]
    date: str
    """The ``X-Amz-Date`` timestamp, e.g. ``20150830T123600Z``."""

    content_checksum_enabled: bool
    """Whether to send the payload hash in ``X-Amz-Content-SHA256``."""

    payload_signing_enabled: bool
    """If false, ``UNSIGNED-PAYLOAD`` is signed in place of the body hash."""

    uri_encode_path: bool


@dataclass(kw_only=True, frozen=True)
class SigningContext:
    """The key material and scope for one signing operation."""

    timestamp: str
    date_stamp: str
    region: str
    service: str
    credential_scope: str
    signing_key: bytes = field(repr=False)

    @classmethod
    def create(
        cls, *, secret_key: str, timestamp: str, region: str, service: str
    ) -> "SigningContext":
        date_stamp = timestamp[0:8]
        return cls(
            timestamp=timestamp,
            date_stamp=date_stamp,
            region=region,
            service=service,
            # Scope format: <YYYYMMDD>/<AWS Region>/<AWS Service>/aws4_request
            credential_scope=f"{date_stamp}/{region}/{service}/aws4_request",
            signing_key=derive_signing_key(
                secret_key=secret_key,
                date_stamp=date_stamp,
                region=region,
                service=service,
            ),
        )


def derive_signing_key(
    *, secret_key: str, date_stamp: str, region: str, service: str
) -> bytes:
    """Derive the signing key scoped to a specific day, region and service.

    The date, region, service and resulting signing key are individually hashed,
    then the composite hash is used to sign the string to sign.
    """
    # Components of Signing Key Calculation
    #
    # DateKey              = HMAC-SHA256("AWS4"+"<SecretAccessKey>", "<YYYYMMDD>")
    # DateRegionKey        = HMAC-SHA256(<DateKey>, "<aws-region>")
    # DateRegionServiceKey = HMAC-SHA256(<DateRegionKey>, "<aws-service>")
    # SigningKey = HMAC-SHA256(<DateRegionServiceKey>, "aws4_request")
    k_date = _hash(key=f"AWS4{secret_key}".encode(), value=date_stamp)
    k_region = _hash(key=k_date, value=region)
    k_service = _hash(key=k_region, value=service)
    return _hash(key=k_service, value="aws4_request")


def _hash(key: bytes, value: str) -> bytes:
    return hmac.new(key=key, msg=value.encode(), digestmod=sha256).digest()


class SigV4Signer:
    """Request signer for applying the AWS Signature Version 4 algorithm.

    The signer holds no state. Key material is derived on every call and is never
    cached.
    """

    def sign(
        self,
        canonical_request: CanonicalRequest,
        identity: AWSCredentialIdentity,
        timestamp: str,
        region: str,
        service: str,
    ) -> tuple[str, str]:
        """Compute the signature of a canonical request.

        :param canonical_request: The canonical form of the request to sign.
        :param identity: The credentials to sign with.
        :param timestamp: The ``X-Amz-Date`` value the request carries.
        :param region: The signing region.
        :param service: The signing name of the service.
        :returns: The hex signature and the full ``Authorization`` header value.
        """
        self._validate_identity(identity=identity)
        context = SigningContext.create(
            secret_key=identity.secret_access_key,
            timestamp=timestamp,
            region=region,
            service=service,
        )
        signature = self._signature(
            string_to_sign=self.string_to_sign(
                canonical_request=canonical_request, context=context
            ),
            context=context,
        )
        authorization = self.generate_authorization_field(
            credential=f"{identity.access_key_id}/{context.credential_scope}",
            signed_headers=canonical_request.signed_headers,
            signature=signature,
        )
        return signature, authorization.as_string()

    def sign_request(
        self,
        *,
        request: AWSRequest,
        identity: AWSCredentialIdentity,
        signing_properties: SigV4SigningProperties,
    ) -> AWSRequest:
        """Generate and apply a SigV4 Signature to a copy of the supplied request.

        :param request: An AWSRequest to sign prior to sending to the service.
        :param identity: A set of credentials representing an AWS Identity or role
            capacity.
        :param signing_properties: SigV4SigningProperties to define signing primitives
            such as the target service, region, and date.
        """
        self._validate_identity(identity=identity)
        properties = self._normalize_signing_properties(
            signing_properties=signing_properties
        )
        timestamp = properties["date"]  # type: ignore

        new_request = deepcopy(request)
        self._apply_required_fields(
            request=new_request, timestamp=timestamp, identity=identity
        )
        payload_hash = self._payload_hash_override(
            request=new_request, signing_properties=properties
        )
        canonical_request = canonicalize(
            new_request,
            uri_encode_path=properties.get("uri_encode_path", True),
            payload_hash=payload_hash,
        )
        if properties.get("content_checksum_enabled", False):
            new_request.fields.set_field(
                Field(
                    name="X-Amz-Content-SHA256",
                    values=[canonical_request.payload_hash],
                )
            )
            # The new field must be part of the signed set.
            canonical_request = canonicalize(
                new_request,
                uri_encode_path=properties.get("uri_encode_path", True),
                payload_hash=payload_hash,
            )

        _, authorization = self.sign(
            canonical_request,
            identity,
            timestamp,
            properties["region"],
            properties["service"],
        )
        new_request.fields.set_field(
            Field(name="Authorization", values=[authorization])
        )
        logger.debug(
            "Signed %s request to %s for %s/%s at %s",
            new_request.method,
            new_request.destination.host,
            properties["service"],
            properties["region"],
            timestamp,
        )
        return new_request

    def presign_url(
        self,
        *,
        request: AWSRequest,
        identity: AWSCredentialIdentity,
        signing_properties: SigV4SigningProperties,
        expires_in: int = 3600,
    ) -> str:
        """Generate a URL that carries its own signature in the query string.

        Only the ``host`` header is signed. ``expires_in`` is clamped to the seven
        day maximum that SigV4 allows.
        """
        self._validate_identity(identity=identity)
        properties = self._normalize_signing_properties(
            signing_properties=signing_properties
        )
        timestamp = properties["date"]  # type: ignore
        expires_in = max(1, min(expires_in, MAX_PRESIGN_EXPIRES))
        context_scope = (
            f"{timestamp[0:8]}/{properties['region']}/"
            f"{properties['service']}/aws4_request"
        )

        auth_params = [
            ("X-Amz-Algorithm", SIGV4_ALGORITHM),
            ("X-Amz-Credential", f"{identity.access_key_id}/{context_scope}"),
            ("X-Amz-Date", timestamp),
            ("X-Amz-Expires", str(expires_in)),
            ("X-Amz-SignedHeaders", "host"),
        ]
        if identity.session_token is not None:
            auth_params.append(("X-Amz-Security-Token", identity.session_token))

        query = _append_query(request.destination.query, auth_params)
        unsigned = request.with_destination(query=query)
        unsigned.fields = Fields()

        payload_hash = self._payload_hash_override(
            request=unsigned, signing_properties=properties
        )
        canonical_request = canonicalize(
            unsigned,
            uri_encode_path=properties.get("uri_encode_path", True),
            payload_hash=payload_hash,
        )
        signature, _ = self.sign(
            canonical_request,
            identity,
            timestamp,
            properties["region"],
            properties["service"],
        )
        signed_query = _append_query(query, [("X-Amz-Signature", signature)])
        return unsigned.with_destination(query=signed_query).destination.build()

    def string_to_sign(
        self, *, canonical_request: CanonicalRequest, context: SigningContext
    ) -> str:
        """The string to sign concatenates the formal identifier of our signing
        algorithm, the signing DateTime, the scope of our credentials, and a hash of
        the canonical request.

        The SigV4 specification defines the string to sign as:
            Algorithm \\n
            RequestDateTime \\n
            CredentialScope  \\n
            HashedCanonicalRequest
        """
        return (
            f"{SIGV4_ALGORITHM}\n"
            f"{context.timestamp}\n"
            f"{context.credential_scope}\n"
            f"{sha256(str(canonical_request).encode()).hexdigest()}"
        )

    def generate_authorization_field(
        self, *, credential: str, signed_headers: str, signature: str
    ) -> Field:
        """Generate the `Authorization` field.

        :param credential:
            Credential scope string for generating the Authorization header.
            Defined as:
                <access_key>/<date>/<region>/<service>/<request_type>
        :param signed_headers:
            The ``;``-joined field names used in signing.
        :param signature:
            Final hash of the SigV4 signing algorithm generated from the
            canonical request and string to sign.
        """
        auth_str = (
            f"{SIGV4_ALGORITHM} Credential={credential}, "
            f"SignedHeaders={signed_headers}, Signature={signature}"
        )
        return Field(name="Authorization", values=[auth_str])

    def _signature(self, *, string_to_sign: str, context: SigningContext) -> str:
        return _hash(key=context.signing_key, value=string_to_sign).hex()

    def _validate_identity(self, *, identity: AWSCredentialIdentity) -> None:
        """Perform runtime and expiration checks before attempting signing."""
        if not isinstance(identity, _AWSCredentialsIdentity):  # pyright: ignore
            raise ValueError(
                "Received unexpected value for identity parameter. Expected "
                f"AWSCredentialIdentity but received {type(identity)}."
            )
        elif identity.is_expired:
            raise ValueError(
                f"Provided identity expired at {identity.expiration}. Please "
                "refresh the credentials or update the expiration parameter."
            )

    def _normalize_signing_properties(
        self, *, signing_properties: SigV4SigningProperties
    ) -> SigV4SigningProperties:
        # Create copy of signing properties to avoid mutating the original
        new_signing_properties = SigV4SigningProperties(**signing_properties)
        if "date" not in new_signing_properties:
            date_obj = datetime.datetime.now(datetime.UTC)
            new_signing_properties["date"] = date_obj.strftime(SIGV4_TIMESTAMP_FORMAT)
        return new_signing_properties

    def _apply_required_fields(
        self,
        *,
        request: AWSRequest,
        timestamp: str,
        identity: AWSCredentialIdentity,
    ) -> None:
        # Each attempt is signed with a fresh timestamp, so any stale value is
        # replaced rather than kept.
        request.fields.set_field(Field(name="X-Amz-Date", values=[timestamp]))
        if identity.session_token is not None:
            request.fields.set_field(
                Field(name="X-Amz-Security-Token", values=[identity.session_token])
            )
        if "Authorization" in request.fields:
            del request.fields["Authorization"]

    def _payload_hash_override(
        self, *, request: AWSRequest, signing_properties: SigV4SigningProperties
    ) -> str | None:
        # All insecure connections should be signed
        if request.destination.scheme != "https":
            return None
        if not signing_properties.get("payload_signing_enabled", True):
            return UNSIGNED_PAYLOAD
        return None


def _append_query(query: str | None, params: list[tuple[str, str]]) -> str:
    encoded = "&".join(
        f"{quote(key, safe='')}={quote(value, safe='')}" for key, value in params
    )
    return f"{query}&{encoded}" if query else encoded
