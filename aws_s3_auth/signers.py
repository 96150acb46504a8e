#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

import datetime
import hmac
from base64 import b64encode
from collections.abc import Callable, Iterable
from copy import deepcopy
from dataclasses import dataclass
from email.utils import format_datetime
from enum import Enum
from hashlib import sha1, sha256
from typing import Any, Final, Required, TypedDict
from urllib.parse import quote, urlencode

from ._http import Field, S3Request
from .canonical import (
    SIGV4_TIMESTAMP_FORMAT,
    STREAMING_PAYLOAD,
    UNSIGNED_PAYLOAD,
    CanonicalRequestV2,
    CanonicalRequestV4,
    canonical_headers_v4,
    canonical_request_v2,
    canonical_request_v4,
    hash_payload,
    uri_encode,
)
from .exceptions import (
    CanonicalizationError,
    InvalidCredentialsError,
    UnsupportedSchemeError,
)
from .interfaces.identity import AWSCredentialsIdentity

SIGV4_ALGORITHM: Final = "AWS4-HMAC-SHA256"
MAX_PRESIGN_EXPIRES: Final = 604800

type CanonicalRequest = CanonicalRequestV2 | CanonicalRequestV4


class SignatureScheme(Enum):
    """The request signing algorithm."""

    V2 = "v2"
    """HMAC-SHA1 over the V2 string to sign."""

    V4 = "v4"
    """HMAC-SHA256 with a date, region and service scoped signing key."""

    @classmethod
    def from_value(cls, value: str | SignatureScheme) -> SignatureScheme:
        """Parse the names configuration files and environment variables use.

        Accepts ``v2``, ``2`` or ``s3`` for V2 and ``v4``, ``4`` or ``s3v4`` for V4.
        """
        if isinstance(value, SignatureScheme):
            return value
        scheme = _SCHEME_ALIASES.get(str(value).strip().lower())
        if scheme is None:
            raise UnsupportedSchemeError(
                f"Unsupported signature version {value!r}. Expected one of "
                f"{', '.join(sorted(_SCHEME_ALIASES))}."
            )
        return scheme


_SCHEME_ALIASES: Final = {
    "2": SignatureScheme.V2,
    "v2": SignatureScheme.V2,
    "s3": SignatureScheme.V2,
    "4": SignatureScheme.V4,
    "v4": SignatureScheme.V4,
    "s3v4": SignatureScheme.V4,
}


@dataclass(frozen=True, kw_only=True)
class SigningMaterial:
    """Scheme specific values to attach to an outgoing request.

    Header signing produces ``headers``; presigning produces ``query_params``.
    """

    scheme: SignatureScheme
    signature: str
    headers: tuple[tuple[str, str], ...] = ()
    query_params: tuple[tuple[str, str], ...] = ()

    def apply(self, request: S3Request) -> S3Request:
        """Return a copy of ``request`` with the material merged in.

        Headers replace any existing header of the same name. Query parameters are
        appended after the existing query string.
        """
        new_request = deepcopy(request)
        for name, value in self.headers:
            new_request.fields.set_field(Field(name=name, values=[value]))
        if self.query_params:
            new_request.destination = new_request.destination.with_query(
                _append_query(new_request.destination.query, self.query_params)
            )
        return new_request


class SigningProperties(TypedDict, total=False):
    region: Required[str]
    service: str
    timestamp: datetime.datetime
    payload_hash: str
    payload_signing_enabled: bool
    content_sha256_header: bool
    streaming: bool


def sign_canonical_request(
    *,
    canonical_request: CanonicalRequest,
    credentials: AWSCredentialsIdentity,
    scheme: SignatureScheme,
) -> SigningMaterial:
    """Sign a canonical request with ``credentials``.

    :param canonical_request: Output of ``canonical_request_v2`` or
        ``canonical_request_v4``.
    :param credentials: The key material to sign with.
    :param scheme: The scheme to sign with. It must match the form
        ``canonical_request`` was built for.
    :raises InvalidCredentialsError: The access key id or secret is empty.
    :raises UnsupportedSchemeError: ``scheme`` doesn't match ``canonical_request``.
    """
    validate_credentials(credentials)
    if canonical_request.scheme != scheme.value:
        raise UnsupportedSchemeError(
            f"Can't sign a {canonical_request.scheme} canonical request with "
            f"scheme {scheme.value}."
        )
    return _SIGNERS[scheme](canonical_request, credentials)


def validate_credentials(credentials: AWSCredentialsIdentity) -> None:
    if not isinstance(credentials, AWSCredentialsIdentity):  # pyright: ignore
        raise InvalidCredentialsError(
            "Received unexpected value for credentials. Expected "
            f"AWSCredentialsIdentity but received {type(credentials)}."
        )
    if not credentials.access_key_id or not credentials.secret_access_key:
        raise InvalidCredentialsError(
            "Both an access key id and a secret access key are required to sign."
        )


def derive_signing_key(
    secret_access_key: str, date: str, region: str, service: str
) -> bytes:
    """Derive the V4 signing key.

    DateKey              = HMAC-SHA256("AWS4"+"<SecretAccessKey>", "<YYYYMMDD>")
    DateRegionKey        = HMAC-SHA256(<DateKey>, "<aws-region>")
    DateRegionServiceKey = HMAC-SHA256(<DateRegionKey>, "<aws-service>")
    SigningKey           = HMAC-SHA256(<DateRegionServiceKey>, "aws4_request")
    """
    k_date = _hmac_sha256(f"AWS4{secret_access_key}".encode(), date)
    k_region = _hmac_sha256(k_date, region)
    k_service = _hmac_sha256(k_region, service)
    return _hmac_sha256(k_service, "aws4_request")


def string_to_sign_v4(canonical_request: CanonicalRequestV4) -> str:
    """The string to sign is the second step of the V4 algorithm.

    Defined as:
        Algorithm \\n
        RequestDateTime \\n
        CredentialScope  \\n
        HashedCanonicalRequest
    """
    hashed = sha256(canonical_request.canonical_string.encode()).hexdigest()
    return (
        f"{SIGV4_ALGORITHM}\n"
        f"{canonical_request.amz_date}\n"
        f"{canonical_request.credential_scope}\n"
        f"{hashed}"
    )


def _hmac_sha256(key: bytes, value: str) -> bytes:
    return hmac.new(key=key, msg=value.encode(), digestmod=sha256).digest()


def _sign_v2(
    canonical_request: CanonicalRequestV2, credentials: AWSCredentialsIdentity
) -> SigningMaterial:
    token = credentials.session_token
    if token and f"x-amz-security-token:{token}\n" not in canonical_request.amz_headers:
        raise CanonicalizationError(
            "The session token must be set as the x-amz-security-token header "
            "before canonicalizing."
        )
    digest = hmac.new(
        key=credentials.secret_access_key.encode(),
        msg=canonical_request.string_to_sign.encode(),
        digestmod=sha1,
    ).digest()
    signature = b64encode(digest).decode()

    if canonical_request.query_auth:
        query_params = [
            ("AWSAccessKeyId", credentials.access_key_id),
            ("Expires", canonical_request.date),
            ("Signature", signature),
        ]
        if token:
            query_params.append(("x-amz-security-token", token))
        return SigningMaterial(
            scheme=SignatureScheme.V2,
            signature=signature,
            query_params=tuple(query_params),
        )

    headers = [("Authorization", f"AWS {credentials.access_key_id}:{signature}")]
    if canonical_request.date:
        headers.append(("Date", canonical_request.date))
    if token:
        headers.append(("x-amz-security-token", token))
    return SigningMaterial(
        scheme=SignatureScheme.V2, signature=signature, headers=tuple(headers)
    )


def _sign_v4(
    canonical_request: CanonicalRequestV4, credentials: AWSCredentialsIdentity
) -> SigningMaterial:
    token = credentials.session_token
    if token:
        if canonical_request.query_auth:
            covered = (
                f"X-Amz-Security-Token={uri_encode(token)}"
                in canonical_request.canonical_query
            )
        else:
            covered = "x-amz-security-token" in canonical_request.signed_headers
        if not covered:
            raise CanonicalizationError(
                "The session token must be part of the canonical request before "
                "signing."
            )

    signing_key = derive_signing_key(
        credentials.secret_access_key,
        canonical_request.timestamp.strftime("%Y%m%d"),
        canonical_request.region,
        canonical_request.service,
    )
    signature = hmac.new(
        key=signing_key,
        msg=string_to_sign_v4(canonical_request).encode(),
        digestmod=sha256,
    ).hexdigest()

    if canonical_request.query_auth:
        return SigningMaterial(
            scheme=SignatureScheme.V4,
            signature=signature,
            query_params=(("X-Amz-Signature", signature),),
        )

    credential = f"{credentials.access_key_id}/{canonical_request.credential_scope}"
    authorization = (
        f"{SIGV4_ALGORITHM} Credential={credential}, "
        f"SignedHeaders={';'.join(canonical_request.signed_headers)}, "
        f"Signature={signature}"
    )
    headers = [
        ("Authorization", authorization),
        ("X-Amz-Date", canonical_request.amz_date),
    ]
    if "x-amz-content-sha256" in canonical_request.signed_headers:
        headers.append(("X-Amz-Content-SHA256", canonical_request.payload_hash))
    if token:
        headers.append(("X-Amz-Security-Token", token))
    return SigningMaterial(
        scheme=SignatureScheme.V4, signature=signature, headers=tuple(headers)
    )


_SIGNERS: Final[
    dict[SignatureScheme, Callable[[Any, AWSCredentialsIdentity], SigningMaterial]]
] = {
    SignatureScheme.V2: _sign_v2,
    SignatureScheme.V4: _sign_v4,
}


class S3Signer:
    """Prepares, canonicalizes and signs requests with a fixed scheme.

    The signer holds no state besides the scheme and never modifies the request it is
    given; each call works on a copy.
    """

    def __init__(self, scheme: SignatureScheme | str = SignatureScheme.V4) -> None:
        self._scheme = SignatureScheme.from_value(scheme)

    @property
    def scheme(self) -> SignatureScheme:
        return self._scheme

    def sign(
        self,
        *,
        request: S3Request,
        credentials: AWSCredentialsIdentity,
        signing_properties: SigningProperties,
    ) -> S3Request:
        """Generate and apply a signature to a copy of the supplied request.

        :param request: The request to sign prior to sending it.
        :param credentials: The key material to sign with.
        :param signing_properties: Region, service and timestamp of the signature.
        """
        material, prepared = self._sign(
            request=request,
            credentials=credentials,
            signing_properties=signing_properties,
        )
        return material.apply(prepared)

    def signing_material(
        self,
        *,
        request: S3Request,
        credentials: AWSCredentialsIdentity,
        signing_properties: SigningProperties,
    ) -> SigningMaterial:
        """Compute the headers a collaborator must merge into ``request``.

        The returned material includes the headers added while preparing the request,
        such as ``X-Amz-Date`` and ``X-Amz-Content-SHA256``.
        """
        material, _ = self._sign(
            request=request,
            credentials=credentials,
            signing_properties=signing_properties,
        )
        return material

    def presign(
        self,
        *,
        request: S3Request,
        credentials: AWSCredentialsIdentity,
        signing_properties: SigningProperties,
        expires: int = 3600,
    ) -> S3Request:
        """Return a copy of ``request`` authenticated through its query string.

        :param expires: Seconds the presigned request stays valid, at most a week.
        """
        if not 1 <= expires <= MAX_PRESIGN_EXPIRES:
            raise CanonicalizationError(
                f"Presigned requests must expire within 1 and {MAX_PRESIGN_EXPIRES} "
                f"seconds, got {expires}."
            )
        material, prepared = self._sign(
            request=request,
            credentials=credentials,
            signing_properties=signing_properties,
            expires=expires,
        )
        return material.apply(prepared)

    def _sign(
        self,
        *,
        request: S3Request,
        credentials: AWSCredentialsIdentity,
        signing_properties: SigningProperties,
        expires: int | None = None,
    ) -> tuple[SigningMaterial, S3Request]:
        self._validate_identity(credentials)
        properties = self._normalize_signing_properties(signing_properties)
        new_request = deepcopy(request)

        canonical: CanonicalRequest
        if self._scheme is SignatureScheme.V4:
            if expires is None:
                canonical = self._prepare_v4(new_request, properties, credentials)
            else:
                canonical = self._prepare_v4_query(
                    new_request, properties, credentials, expires
                )
        else:
            canonical = self._prepare_v2(new_request, properties, credentials, expires)

        material = sign_canonical_request(
            canonical_request=canonical, credentials=credentials, scheme=self._scheme
        )
        return material, new_request

    def _validate_identity(self, credentials: AWSCredentialsIdentity) -> None:
        validate_credentials(credentials)
        if credentials.is_expired:
            raise InvalidCredentialsError(
                f"Provided credentials expired at {credentials.expiration}. Please "
                "refresh the credentials before signing."
            )

    def _normalize_signing_properties(
        self, signing_properties: SigningProperties
    ) -> SigningProperties:
        # Copy to avoid mutating the caller's properties
        properties = SigningProperties(**signing_properties)
        properties.setdefault("service", "s3")
        if "timestamp" not in properties:
            properties["timestamp"] = datetime.datetime.now(datetime.UTC)
        else:
            timestamp = properties["timestamp"]
            if timestamp.tzinfo is None:
                properties["timestamp"] = timestamp.replace(tzinfo=datetime.UTC)
            else:
                properties["timestamp"] = timestamp.astimezone(datetime.UTC)
        return properties

    def _prepare_v4(
        self,
        request: S3Request,
        properties: SigningProperties,
        credentials: AWSCredentialsIdentity,
    ) -> CanonicalRequestV4:
        fields = request.fields
        if "X-Amz-Date" not in fields:
            fields.set_field(
                Field(
                    name="X-Amz-Date",
                    values=[properties["timestamp"].strftime(SIGV4_TIMESTAMP_FORMAT)],
                )
            )
        if credentials.session_token is not None:
            fields.set_field(
                Field(name="X-Amz-Security-Token", values=[credentials.session_token])
            )

        payload_hash = self._payload_hash(request, properties)
        if (
            properties.get("content_sha256_header", True)
            and "X-Amz-Content-SHA256" not in fields
        ):
            fields.set_field(Field(name="X-Amz-Content-SHA256", values=[payload_hash]))

        assert "service" in properties
        return canonical_request_v4(
            request,
            region=properties["region"],
            service=properties["service"],
            payload_hash=payload_hash,
        )

    def _prepare_v4_query(
        self,
        request: S3Request,
        properties: SigningProperties,
        credentials: AWSCredentialsIdentity,
        expires: int,
    ) -> CanonicalRequestV4:
        for name in ("Authorization", "X-Amz-Date", "X-Amz-Security-Token"):
            if name in request.fields:
                del request.fields[name]

        assert "service" in properties
        timestamp = properties["timestamp"]
        scope = (
            f"{timestamp.strftime('%Y%m%d')}/{properties['region']}/"
            f"{properties['service']}/aws4_request"
        )
        _, signed_headers = canonical_headers_v4(request.fields, request.destination)
        query_params = [
            ("X-Amz-Algorithm", SIGV4_ALGORITHM),
            ("X-Amz-Credential", f"{credentials.access_key_id}/{scope}"),
            ("X-Amz-Date", timestamp.strftime(SIGV4_TIMESTAMP_FORMAT)),
            ("X-Amz-Expires", str(expires)),
            ("X-Amz-SignedHeaders", ";".join(signed_headers)),
        ]
        if credentials.session_token is not None:
            query_params.append(("X-Amz-Security-Token", credentials.session_token))
        request.destination = request.destination.with_query(
            _append_query(request.destination.query, query_params)
        )

        return canonical_request_v4(
            request,
            region=properties["region"],
            service=properties["service"],
            payload_hash=properties.get("payload_hash", UNSIGNED_PAYLOAD),
            query_auth=True,
        )

    def _prepare_v2(
        self,
        request: S3Request,
        properties: SigningProperties,
        credentials: AWSCredentialsIdentity,
        expires: int | None,
    ) -> CanonicalRequestV2:
        assert "timestamp" in properties
        fields = request.fields
        token_field = None
        if credentials.session_token is not None:
            token_field = Field(
                name="x-amz-security-token", values=[credentials.session_token]
            )
            fields.set_field(token_field)

        if expires is not None:
            expires_at = int(properties["timestamp"].timestamp()) + expires
            canonical = canonical_request_v2(request, expires=expires_at)
            # Presigned URLs carry the token as a query parameter instead.
            if token_field is not None:
                del fields[token_field.name]
            return canonical

        if "Date" not in fields and "X-Amz-Date" not in fields:
            fields.set_field(
                Field(
                    name="Date",
                    values=[format_datetime(properties["timestamp"], usegmt=True)],
                )
            )
        return canonical_request_v2(request)

    def _payload_hash(self, request: S3Request, properties: SigningProperties) -> str:
        if "payload_hash" in properties:
            return properties["payload_hash"]
        if properties.get("streaming", False):
            return STREAMING_PAYLOAD
        # Payloads sent over plain http are always signed
        if request.destination.scheme == "https" and not properties.get(
            "payload_signing_enabled", True
        ):
            return UNSIGNED_PAYLOAD
        if "X-Amz-Content-SHA256" in request.fields:
            values = request.fields["X-Amz-Content-SHA256"].values
            if len(values) == 1:
                return values[0]
        return hash_payload(request.body)


def _append_query(query: str | None, params: Iterable[tuple[str, str]]) -> str:
    encoded = urlencode(params, quote_via=quote)
    return f"{query}&{encoded}" if query else encoded
