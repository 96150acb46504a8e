#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
from types import TracebackType
from typing import Self

import aiohttp
from yarl import URL

from .._http import Field, Fields
from ..interfaces.http import HTTPClient, Request
from . import HTTPResponse


class AIOHTTPClient(HTTPClient):
    """Implementation of :py:class:`..interfaces.http.HTTPClient` using aiohttp.

    The session is created on first use so the client can be constructed outside a
    running event loop.
    """

    def __init__(
        self,
        *,
        timeout: float | None = None,
        _session: aiohttp.ClientSession | None = None,
    ) -> None:
        """
        :param timeout: Total seconds allowed for each request, including reading the
            response body.
        """
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = _session

    async def send(self, *, request: Request) -> HTTPResponse:
        """Send HTTP request using aiohttp client.

        :param request: The request including destination URI, fields, payload.
        """
        headers_list = [pair for fld in request.fields for pair in fld.as_tuples()]
        body = request.body
        if body is not None and not isinstance(body, bytes | bytearray):
            body = b"".join(body)  # type: ignore[arg-type]

        session = self._get_session()
        async with session.request(
            method=request.method,
            # The URI is already percent-encoded; don't let yarl encode it twice.
            url=URL(request.destination.build(), encoded=True),
            headers=headers_list,
            data=body or None,
        ) as resp:
            return await self._marshal_response(resp)

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def _marshal_response(
        self, aiohttp_resp: aiohttp.ClientResponse
    ) -> HTTPResponse:
        """Convert a ``aiohttp.ClientResponse`` to a ``HTTPResponse``"""
        headers = Fields()
        for header_name, header_val in aiohttp_resp.headers.items():
            if header_name in headers:
                headers[header_name].add(header_val)
            else:
                headers[header_name] = Field(name=header_name, values=[header_val])

        return HTTPResponse(
            status=aiohttp_resp.status,
            fields=headers,
            body=await aiohttp_resp.read(),
            reason=aiohttp_resp.reason,
        )

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        await self.close()
