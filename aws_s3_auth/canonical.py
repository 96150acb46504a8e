#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
"""Canonical request construction for AWS Signature Version 2 and Version 4.

Everything in this module is a pure function of its arguments. Nothing is cached
and the request passed in is never modified, so the helpers may be called
concurrently from any number of tasks.
"""

from __future__ import annotations

import warnings
from collections.abc import AsyncIterable, Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from hashlib import sha256
from typing import ClassVar, Final
from urllib.parse import quote, unquote

from ._http import URI, S3Request
from .exceptions import CanonicalizationError, S3AuthWarning
from .interfaces.http import Fields
from .interfaces.io import Seekable

HEADERS_EXCLUDED_FROM_SIGNING: tuple[str, ...] = (
    "accept",
    "accept-encoding",
    "authorization",
    "connection",
    "expect",
    "user-agent",
    "x-amzn-trace-id",
)
DEFAULT_PORTS: dict[str, int] = {"http": 80, "https": 443}

SIGV4_TIMESTAMP_FORMAT: Final = "%Y%m%dT%H%M%SZ"
UNSIGNED_PAYLOAD: Final = "UNSIGNED-PAYLOAD"
STREAMING_PAYLOAD: Final = "STREAMING-AWS4-HMAC-SHA256-PAYLOAD"
EMPTY_SHA256_HASH: Final = (
    "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
)

# Query parameters that identify a sub-resource and so take part in the V2
# canonical resource. Anything else in the query string is ignored.
SUB_RESOURCES: frozenset[str] = frozenset(
    {
        "acl",
        "cors",
        "delete",
        "lifecycle",
        "location",
        "logging",
        "notification",
        "object-lock",
        "partNumber",
        "policy",
        "requestPayment",
        "response-cache-control",
        "response-content-disposition",
        "response-content-encoding",
        "response-content-language",
        "response-content-type",
        "response-expires",
        "restore",
        "tagging",
        "torrent",
        "uploadId",
        "uploads",
        "versionId",
        "versioning",
        "versions",
        "website",
    }
)

_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True, kw_only=True)
class CanonicalRequestV2:
    """The components covered by a Signature Version 2 signature."""

    scheme: ClassVar[str] = "v2"

    method: str
    content_md5: str
    content_type: str
    date: str
    amz_headers: str
    resource: str
    query_auth: bool = False

    @property
    def string_to_sign(self) -> str:
        """The string signed by V2.

        Defined as:
            <HTTP-Verb>\\n
            <Content-MD5>\\n
            <Content-Type>\\n
            <Date>\\n
            <CanonicalizedAmzHeaders><CanonicalizedResource>
        """
        return (
            f"{self.method}\n"
            f"{self.content_md5}\n"
            f"{self.content_type}\n"
            f"{self.date}\n"
            f"{self.amz_headers}{self.resource}"
        )


@dataclass(frozen=True, kw_only=True)
class CanonicalRequestV4:
    """The components covered by a Signature Version 4 signature."""

    scheme: ClassVar[str] = "v4"

    method: str
    canonical_uri: str
    canonical_query: str
    canonical_headers: str
    signed_headers: tuple[str, ...]
    payload_hash: str
    timestamp: datetime
    region: str
    service: str
    query_auth: bool = False

    @property
    def amz_date(self) -> str:
        return self.timestamp.strftime(SIGV4_TIMESTAMP_FORMAT)

    @property
    def credential_scope(self) -> str:
        # <YYYYMMDD>/<region>/<service>/aws4_request
        return (
            f"{self.timestamp.strftime('%Y%m%d')}/{self.region}/"
            f"{self.service}/aws4_request"
        )

    @property
    def canonical_string(self) -> str:
        """The canonical request.

        Defined as:
            <HTTPMethod>\\n
            <CanonicalURI>\\n
            <CanonicalQueryString>\\n
            <CanonicalHeaders>\\n
            <SignedHeaders>\\n
            <HashedPayload>
        """
        return (
            f"{self.method}\n"
            f"{self.canonical_uri}\n"
            f"{self.canonical_query}\n"
            f"{self.canonical_headers}\n"
            f"{';'.join(self.signed_headers)}\n"
            f"{self.payload_hash}"
        )


def canonical_request_v2(
    request: S3Request, *, expires: int | None = None
) -> CanonicalRequestV2:
    """Build the V2 canonical form of ``request``.

    :param request: The request to canonicalize. It must carry either a ``Date`` or an
        ``X-Amz-Date`` header unless ``expires`` is given.
    :param expires: For query string authentication, the epoch second at which the
        presigned request stops being valid. It takes the place of the date.
    """
    fields = request.fields
    if expires is not None:
        date = str(expires)
    elif _has_field(fields, "x-amz-date"):
        # The x-amz-date header is covered by the amz headers instead.
        date = ""
    elif _has_field(fields, "date"):
        date = _field_value(fields, "date")
    else:
        raise CanonicalizationError(
            "Signature Version 2 requires either a Date or an X-Amz-Date header."
        )

    return CanonicalRequestV2(
        method=request.method.upper(),
        content_md5=_field_value(fields, "content-md5"),
        content_type=_field_value(fields, "content-type"),
        date=date,
        amz_headers=canonical_amz_headers(fields),
        resource=canonical_resource_v2(request),
        query_auth=expires is not None,
    )


def canonical_amz_headers(fields: Fields) -> str:
    """Render the ``x-amz-*`` headers as ``name:value\\n`` lines sorted by name."""
    amz: dict[str, list[str]] = {}
    for field in fields:
        name = field.name.lower()
        if name.startswith("x-amz-"):
            amz.setdefault(name, []).extend(
                _fold_whitespace(name, value) for value in field.values
            )
    return "".join(f"{name}:{','.join(amz[name])}\n" for name in sorted(amz))


def canonical_resource_v2(request: S3Request) -> str:
    """Render the V2 canonicalized resource.

    Virtual-hosted requests are rewritten into path form so the bucket always leads
    the resource. Only whitelisted sub-resources from the query are kept.
    """
    path = request.destination.path or ""
    if request.virtual_hosted and request.bucket:
        path = f"/{request.bucket}{path or '/'}"
    resource = uri_encode(path or "/", safe="/")

    sub_resources = sorted(
        (key, value)
        for key, value in _parse_query(request.destination.query)
        if key in SUB_RESOURCES
    )
    if sub_resources:
        resource += "?" + "&".join(
            f"{key}={value}" if value else key for key, value in sub_resources
        )
    return resource


def canonical_request_v4(
    request: S3Request,
    *,
    region: str,
    service: str = "s3",
    payload_hash: str | None = None,
    query_auth: bool = False,
) -> CanonicalRequestV4:
    """Build the V4 canonical form of ``request``.

    The signing timestamp is read from the ``X-Amz-Date`` header, or from the
    ``X-Amz-Date`` query parameter when ``query_auth`` is set.

    :param request: The request to canonicalize.
    :param region: The region the signature is scoped to.
    :param service: The signing name of the service, ``s3`` for object stores.
    :param payload_hash: Pre-computed payload hash or one of the unsigned or streaming
        sentinels. When omitted the ``X-Amz-Content-SHA256`` header is used if it has
        exactly one value, otherwise the body is hashed.
    :param query_auth: Whether the signature travels in the query string.
    """
    canonical_headers, signed_headers = canonical_headers_v4(
        request.fields, request.destination
    )
    if query_auth:
        amz_date = _query_value(request.destination.query, "X-Amz-Date")
        if amz_date is None:
            raise CanonicalizationError(
                "Presigned requests must carry X-Amz-Date in the query string."
            )
        if payload_hash is None:
            payload_hash = UNSIGNED_PAYLOAD
    else:
        if "x-amz-date" not in signed_headers:
            raise CanonicalizationError(
                "Signature Version 4 requires an X-Amz-Date header."
            )
        amz_date = _field_value(request.fields, "x-amz-date")

    if payload_hash is None:
        payload_hash = _payload_hash_from_request(request)

    return CanonicalRequestV4(
        method=request.method.upper(),
        canonical_uri=canonical_uri(request.destination.path),
        canonical_query=canonical_query_string(request.destination.query),
        canonical_headers=canonical_headers,
        signed_headers=signed_headers,
        payload_hash=payload_hash,
        timestamp=parse_amz_date(amz_date),
        region=region,
        service=service,
        query_auth=query_auth,
    )


def canonical_uri(path: str | None) -> str:
    """Resolve dot segments and percent-encode every segment, preserving ``/``.

    Consecutive slashes are significant in object keys and are kept.
    """
    if not path:
        return "/"
    return uri_encode(remove_dot_segments(path) or "/", safe="/")


def canonical_query_string(query: str | None) -> str:
    """Percent-encode and sort query parameters by name, then value.

    Parameters without a value are kept as ``name=``. Repeated names stay as separate
    entries.
    """
    query_parts = (
        (uri_encode(key), uri_encode(value)) for key, value in _parse_query(query)
    )
    # key-value pairs must be in sorted order for their encoded forms.
    return "&".join(f"{key}={value}" for key, value in sorted(query_parts))


def canonical_headers_v4(fields: Fields, uri: URI) -> tuple[str, tuple[str, ...]]:
    """Render the canonical header block and the list of signed header names.

    ``host`` is derived from ``uri`` when the request doesn't set it explicitly.
    """
    normalized: dict[str, list[str]] = {}
    for field in fields:
        name = field.name.lower()
        if name in HEADERS_EXCLUDED_FROM_SIGNING:
            continue
        normalized.setdefault(name, []).extend(
            _fold_whitespace(name, value) for value in field.values
        )
    if "host" not in normalized:
        normalized["host"] = [host_header(uri)]

    signed = tuple(sorted(normalized))
    block = "".join(f"{name}:{','.join(normalized[name])}\n" for name in signed)
    return block, signed


def host_header(uri: URI) -> str:
    """The ``Host`` value for ``uri``, omitting the port when it is the default."""
    if uri.port is not None and DEFAULT_PORTS.get(uri.scheme) != uri.port:
        return f"{uri.host}:{uri.port}"
    return uri.host


def hash_payload(body: bytes | bytearray | Iterable[bytes] | None) -> str:
    """Lowercase hex SHA-256 of ``body``.

    An absent or empty body hashes to the digest of the empty string. Seekable
    streams are rewound to their original position afterwards. Single pass
    iterators can't be hashed without consuming them and are rejected.
    """
    if body is None:
        return EMPTY_SHA256_HASH
    if isinstance(body, bytes | bytearray | memoryview):
        return sha256(body).hexdigest()
    if isinstance(body, AsyncIterable):
        raise CanonicalizationError(
            "Asynchronous bodies can't be hashed while signing. Supply the payload "
            "hash explicitly or disable payload signing."
        )

    checksum = sha256()
    if isinstance(body, Seekable):
        warnings.warn(
            "Payload signing is enabled. This may result in "
            "decreased performance for large request bodies.",
            S3AuthWarning,
        )
        position = body.tell()
        read = getattr(body, "read", None)
        if read is not None:
            while chunk := read(_CHUNK_SIZE):
                checksum.update(chunk)
        else:
            for chunk in body:
                checksum.update(chunk)
        body.seek(position)
    elif isinstance(body, list | tuple):
        for chunk in body:
            checksum.update(chunk)
    else:
        raise CanonicalizationError(
            f"Can't hash a body of type {type(body).__name__} without consuming it. "
            "Supply the payload hash explicitly."
        )
    return checksum.hexdigest()


def uri_encode(value: str, safe: str = "") -> str:
    """Percent-encode everything except the RFC 3986 unreserved characters.

    Hex digits are uppercase. Characters in ``safe`` are left as-is.
    """
    return quote(value, safe=safe)


def remove_dot_segments(path: str) -> str:
    """Removes dot segments from a path per :rfc:`3986#section-5.2.4`.

    :param path: The path to modify.
    :returns: The path with dot segments removed.
    """
    output: list[str] = []
    for segment in path.split("/"):
        if segment == ".":
            continue
        elif segment != "..":
            output.append(segment)
        elif output:
            output.pop()
    if path.startswith("/") and (not output or output[0]):
        output.insert(0, "")
    if output and path.endswith(("/.", "/..")):
        output.append("")
    return "/".join(output)


def parse_amz_date(value: str) -> datetime:
    try:
        return datetime.strptime(value, SIGV4_TIMESTAMP_FORMAT).replace(tzinfo=UTC)
    except ValueError as e:
        raise CanonicalizationError(
            f"X-Amz-Date must be formatted as {SIGV4_TIMESTAMP_FORMAT}, got {value!r}."
        ) from e


def _parse_query(query: str | None) -> list[tuple[str, str]]:
    # RFC 3986 decoding: a literal "+" is a plus sign, not a space.
    if not query:
        return []
    pairs = []
    for part in query.split("&"):
        if not part:
            continue
        key, _, value = part.partition("=")
        pairs.append((unquote(key), unquote(value)))
    return pairs


def _query_value(query: str | None, name: str) -> str | None:
    for key, value in _parse_query(query):
        if key == name:
            return value
    return None


def _has_field(fields: Fields, name: str) -> bool:
    return name in fields


def _field_value(fields: Fields, name: str) -> str:
    if name not in fields:
        return ""
    field = fields[name]
    return ",".join(_fold_whitespace(name, value) for value in field.values)


def _fold_whitespace(name: str, value: str) -> str:
    if any(ord(char) < 0x20 and char != "\t" or ord(char) == 0x7F for char in value):
        raise CanonicalizationError(
            f"Value of header {name!r} contains control characters and can't be "
            "signed."
        )
    return " ".join(value.split())


def _payload_hash_from_request(request: S3Request) -> str:
    if "x-amz-content-sha256" in request.fields:
        values = request.fields["x-amz-content-sha256"].values
        if len(values) == 1:
            return values[0]
    return hash_payload(request.body)
