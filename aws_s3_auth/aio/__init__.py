#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
from collections.abc import AsyncIterable
from dataclasses import dataclass, field

from .._http import URI, Fields


@dataclass(kw_only=True)
class HTTPRequest:
    """A plain HTTP request sent by the credential providers."""

    destination: URI
    method: str
    fields: Fields
    body: bytes = field(repr=False, default=b"")


@dataclass(kw_only=True)
class HTTPResponse:
    """Basic implementation of :py:class:`..interfaces.http.HTTPResponse`."""

    body: bytes | AsyncIterable[bytes] = field(repr=False, default=b"")
    """The response payload as bytes or an iterable of chunks of bytes."""

    status: int
    """The 3 digit response status code (1xx, 2xx, 3xx, 4xx, 5xx)."""

    fields: Fields
    """HTTP header and trailer fields."""

    reason: str | None = None
    """Optional string provided by the server explaining the status."""

    async def consume_body_async(self) -> bytes:
        """Iterate over response body and return as bytes."""
        if isinstance(self.body, bytes | bytearray):
            return bytes(self.body)
        chunks = [chunk async for chunk in self.body]
        return b"".join(chunks)
