#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

from collections import OrderedDict
from collections.abc import AsyncIterable, Iterable, Iterator
from typing import Protocol, runtime_checkable


class Field(Protocol):
    """A header name with its values. Names are case insensitive."""

    name: str
    values: list[str]

    def add(self, value: str) -> None: ...

    def as_string(self, delimiter: str = ",") -> str:
        """Serialize the ``Field``'s values into a single line string."""
        ...

    def as_tuples(self) -> list[tuple[str, str]]:
        """One ``(name, value)`` tuple per value."""
        ...


class Fields(Protocol):
    """Case-insensitive mapping of header name to :py:class:`Field`."""

    # Entries are keyed off the lower-cased name of a provided Field
    entries: OrderedDict[str, Field]

    def set_field(self, field: Field) -> None: ...

    def __setitem__(self, name: str, field: Field) -> None: ...

    def __getitem__(self, name: str) -> Field: ...

    def __delitem__(self, name: str) -> None: ...

    def __iter__(self) -> Iterator[Field]: ...

    def __len__(self) -> int: ...

    def __contains__(self, name: object) -> bool: ...


@runtime_checkable
class URI(Protocol):
    """Target location of a :py:class:`Request`."""

    scheme: str
    """For example ``http`` or ``https``."""

    host: str
    """The hostname, for example ``s3.amazonaws.com``."""

    port: int | None
    """An explicit port number."""

    path: str | None
    """Path component of the URI, not percent-encoded."""

    query: str | None
    """Query component of the URI as string."""

    def build(self) -> str:
        """Construct the string form ``{scheme}://{host}:{port}{path}?{query}``."""
        ...

    @property
    def netloc(self) -> str: ...


class Request(Protocol):
    """A request about to be signed or sent."""

    destination: URI
    method: str
    fields: Fields
    body: AsyncIterable[bytes] | Iterable[bytes] | bytes | None


class HTTPResponse(Protocol):
    """HTTP primitives returned from a transport."""

    @property
    def status(self) -> int:
        """The 3 digit response status code (1xx, 2xx, 3xx, 4xx, 5xx)."""
        ...

    @property
    def fields(self) -> Fields: ...

    @property
    def reason(self) -> str | None:
        """Optional string provided by the server explaining the status."""
        ...

    async def consume_body_async(self) -> bytes:
        """Iterate over response body and return as bytes."""
        ...


class HTTPClient(Protocol):
    """An asynchronous HTTP client interface."""

    async def send(self, *, request: Request) -> HTTPResponse:
        """Send HTTP request over the wire and return the response.

        :param request: The request including destination URI, fields, payload.
        """
        ...
