#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
"""Minimal HTTP primitives used to describe a request that is about to be signed.

These are intentionally transport agnostic. Collaborators translate them to and
from whatever client actually sends the bytes.
"""

from __future__ import annotations

from collections import OrderedDict
from collections.abc import AsyncIterable, Iterable, Iterator
from copy import deepcopy
from dataclasses import dataclass, replace
from urllib.parse import quote, urlunsplit

from .interfaces import http as interfaces_http


class Field(interfaces_http.Field):
    """A header name with one or more values.

    Names are matched case-insensitively by :py:class:`Fields`; the casing given
    here is what goes on the wire.
    """

    def __init__(self, *, name: str, values: Iterable[str] | None = None):
        self.name = name
        self.values: list[str] = list(values) if values is not None else []

    def add(self, value: str) -> None:
        self.values.append(value)

    def as_string(self, delimiter: str = ",") -> str:
        """Join all values with ``delimiter``.

        Values are joined as-is; a value that itself contains the delimiter is not
        split or quoted.
        """
        return delimiter.join(self.values)

    def as_tuples(self) -> list[tuple[str, str]]:
        return [(self.name, val) for val in self.values]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Field):
            return False
        return self.name == other.name and self.values == other.values

    def __repr__(self) -> str:
        return f"Field(name={self.name!r}, values={self.values!r})"


class Fields(interfaces_http.Fields):
    """Request headers keyed by lower-cased name, in insertion order."""

    def __init__(self, initial: Iterable[interfaces_http.Field] | None = None):
        self.entries: OrderedDict[str, interfaces_http.Field] = OrderedDict()
        for field in initial or ():
            key = field.name.lower()
            if key in self.entries:
                raise ValueError(f"Header {field.name!r} appears more than once.")
            self.entries[key] = field

    @classmethod
    def from_pairs(cls, pairs: Iterable[tuple[str, str]]) -> Fields:
        """Build a collection from ``(name, value)`` pairs.

        Repeated names are merged into a single multi-valued ``Field``.
        """
        fields = cls()
        for name, value in pairs:
            if name in fields:
                fields[name].add(value)
            else:
                fields.set_field(Field(name=name, values=[value]))
        return fields

    def set_field(self, field: interfaces_http.Field) -> None:
        """Add ``field``, replacing any header with the same name."""
        self.entries[field.name.lower()] = field

    def __setitem__(self, name: str, field: interfaces_http.Field) -> None:
        if name.lower() != field.name.lower():
            raise ValueError(f"Key {name!r} does not match field name {field.name!r}")
        self.set_field(field)

    def __getitem__(self, name: str) -> interfaces_http.Field:
        return self.entries[name.lower()]

    def __delitem__(self, name: str) -> None:
        del self.entries[name.lower()]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self.entries

    def __iter__(self) -> Iterator[interfaces_http.Field]:
        yield from self.entries.values()

    def __len__(self) -> int:
        return len(self.entries)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Fields):
            return False
        return self.entries == other.entries

    def __repr__(self) -> str:
        return f"Fields({list(self.entries.values())!r})"


@dataclass(kw_only=True, frozen=True)
class URI(interfaces_http.URI):
    """Target location of an :py:class:`S3Request`.

    ``path`` holds the decoded object path, for example ``/my bucket/key.txt``.
    It is percent-encoded when the URI is built or canonicalized. ``query`` is
    kept in its wire form.
    """

    scheme: str = "https"
    host: str
    port: int | None = None
    path: str | None = None
    query: str | None = None

    @property
    def netloc(self) -> str:
        """``host`` or ``host:port`` when a port is set."""
        if self.port is None:
            return self.host
        return f"{self.host}:{self.port}"

    def build(self) -> str:
        return urlunsplit(
            (
                self.scheme,
                self.netloc,
                quote(self.path or "", safe="/~"),
                self.query or "",
                "",
            )
        )

    def with_query(self, query: str | None) -> URI:
        return replace(self, query=query or None)


class S3Request(interfaces_http.Request):
    """An HTTP request addressed to an S3-compatible endpoint.

    :param destination: Where the request is sent.
    :param method: The HTTP method, for example ``GET``.
    :param fields: Request headers.
    :param body: Payload bytes, an iterable of byte chunks, or ``None``.
    :param bucket: The bucket the request targets, if any.
    :param virtual_hosted: Whether ``bucket`` is part of the hostname rather than the
        first path segment. V2 signing needs this to rebuild the resource path.
    """

    def __init__(
        self,
        *,
        destination: URI,
        method: str,
        fields: Fields | None = None,
        body: AsyncIterable[bytes] | Iterable[bytes] | bytes | None = None,
        bucket: str | None = None,
        virtual_hosted: bool = False,
    ):
        self.destination = destination
        self.method = method
        self.fields = fields if fields is not None else Fields()
        self.body = body
        self.bucket = bucket
        self.virtual_hosted = virtual_hosted

    def __deepcopy__(self, memo: dict[int, S3Request] | None = None) -> S3Request:
        if memo is None:
            memo = {}

        if id(self) in memo:
            return memo[id(self)]

        # the destination is immutable and the body may be an iterator
        new_instance = self.__class__(
            destination=self.destination,
            method=self.method,
            fields=deepcopy(self.fields, memo),
            body=self.body,
            bucket=self.bucket,
            virtual_hosted=self.virtual_hosted,
        )
        memo[id(self)] = new_instance
        return new_instance

    def __repr__(self) -> str:
        return (
            f"S3Request(method={self.method!r}, destination={self.destination!r}, "
            f"fields={self.fields!r}, bucket={self.bucket!r})"
        )
