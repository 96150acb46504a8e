#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from types import MappingProxyType
from typing import Final, Literal
from urllib.parse import urlsplit

import aiohttp

from .. import __version__
from .._http import URI, Field, Fields
from .._identity import CredentialSet
from ..aio import HTTPRequest, HTTPResponse
from ..aio.aiohttp import AIOHTTPClient
from ..exceptions import ProviderError
from ..interfaces.http import HTTPClient
from .interfaces import Failed, Found, NotConfigured, ProviderResult

logger: Final = logging.getLogger(__name__)

DEFAULT_IMDS_TIMEOUT: Final = 1.0

_USER_AGENT_FIELD = Field(
    name="User-Agent",
    values=[f"aws-s3-auth-imds-client/{__version__}"],
)
# Token endpoint statuses meaning IMDSv2 is unavailable and IMDSv1 should be used.
_IMDSV1_FALLBACK_STATUSES = frozenset({403, 404, 405})


@dataclass(init=False)
class IMDSConfig:
    """Configuration for the EC2 instance metadata client."""

    _HOST_MAPPING = MappingProxyType(
        {"IPv4": "169.254.169.254", "IPv6": "[fd00:ec2::254]"}
    )
    _MIN_TTL = 5
    _MAX_TTL = 21600

    endpoint_uri: URI
    endpoint_mode: Literal["IPv4", "IPv6"]
    token_ttl: int
    timeout: float
    ec2_instance_profile_name: str | None

    def __init__(
        self,
        *,
        endpoint_uri: URI | str | None = None,
        endpoint_mode: Literal["IPv4", "IPv6"] = "IPv4",
        token_ttl: int = _MAX_TTL,
        timeout: float = DEFAULT_IMDS_TIMEOUT,
        ec2_instance_profile_name: str | None = None,
    ):
        self.endpoint_mode = endpoint_mode
        self.endpoint_uri = self._resolve_endpoint(endpoint_uri, endpoint_mode)
        self.token_ttl = self._validate_token_ttl(token_ttl)
        if timeout <= 0:
            raise ValueError("The metadata service timeout must be positive.")
        self.timeout = timeout
        self.ec2_instance_profile_name = ec2_instance_profile_name

    def _validate_token_ttl(self, ttl: int) -> int:
        if not self._MIN_TTL <= ttl <= self._MAX_TTL:
            raise ValueError(
                f"Token TTL must be between {self._MIN_TTL} and {self._MAX_TTL} "
                "seconds."
            )
        return ttl

    def _resolve_endpoint(
        self, endpoint_uri: URI | str | None, endpoint_mode: Literal["IPv4", "IPv6"]
    ) -> URI:
        if isinstance(endpoint_uri, str):
            parsed = urlsplit(endpoint_uri)
            if not parsed.hostname:
                raise ValueError(f"Invalid metadata service endpoint {endpoint_uri!r}")
            host = parsed.hostname
            if ":" in host:
                host = f"[{host}]"
            return URI(scheme=parsed.scheme or "http", host=host, port=parsed.port)
        if endpoint_uri is not None:
            return endpoint_uri

        return URI(
            scheme="http",
            host=self._HOST_MAPPING.get(endpoint_mode, self._HOST_MAPPING["IPv4"]),
            port=80,
        )


class Token:
    """An IMDSv2 session token with a value and method for checking expiration."""

    def __init__(self, value: str, ttl: int):
        self._value = value
        self._ttl = ttl
        self._created_time = datetime.now(UTC)

    def is_expired(self) -> bool:
        return datetime.now(UTC) - self._created_time >= timedelta(seconds=self._ttl)

    @property
    def value(self) -> str:
        return self._value


class EC2Metadata:
    """A small client for the instance metadata service.

    Session tokens are fetched lazily and shared between requests. When the token
    endpoint is unavailable the client falls back to unauthenticated IMDSv1 requests.
    """

    _TOKEN_PATH = "/latest/api/token"  # noqa: S105

    def __init__(self, http_client: HTTPClient, config: IMDSConfig | None = None):
        self._http_client = http_client
        self._config = config or IMDSConfig()
        self._refresh_lock = asyncio.Lock()
        self._token: Token | None = None
        self._imdsv1_fallback = False

    def _should_refresh(self) -> bool:
        if self._imdsv1_fallback:
            return False
        return self._token is None or self._token.is_expired()

    async def _refresh(self) -> None:
        async with self._refresh_lock:
            if not self._should_refresh():
                return
            headers = Fields(
                [
                    _USER_AGENT_FIELD,
                    Field(
                        name="x-aws-ec2-metadata-token-ttl-seconds",
                        values=[str(self._config.token_ttl)],
                    ),
                ]
            )
            response = await self._send(
                method="PUT", path=self._TOKEN_PATH, fields=headers
            )
            if response.status in _IMDSV1_FALLBACK_STATUSES:
                logger.debug(
                    "Metadata token endpoint returned %s, falling back to IMDSv1.",
                    response.status,
                )
                self._imdsv1_fallback = True
                return
            if response.status != 200:
                raise ProviderError(
                    f"Metadata token request failed with status {response.status}",
                    provider=IMDSCredentialsProvider.name,
                )
            token_value = _decode_body(await response.consume_body_async())
            self._token = Token(token_value, self._config.token_ttl)

    async def get_token(self) -> Token | None:
        if self._should_refresh():
            await self._refresh()
        return self._token

    async def get(self, *, path: str) -> HTTPResponse:
        token = await self.get_token()
        headers = Fields([_USER_AGENT_FIELD])
        if token is not None:
            headers.set_field(
                Field(name="x-aws-ec2-metadata-token", values=[token.value])
            )
        return await self._send(method="GET", path=path, fields=headers)

    async def _send(self, *, method: str, path: str, fields: Fields) -> HTTPResponse:
        endpoint = self._config.endpoint_uri
        request = HTTPRequest(
            method=method,
            destination=URI(
                scheme=endpoint.scheme,
                host=endpoint.host,
                port=endpoint.port,
                path=path,
            ),
            fields=fields,
        )
        try:
            async with asyncio.timeout(self._config.timeout):
                response = await self._http_client.send(request=request)
                # Read the body under the same deadline.
                body = await response.consume_body_async()
        except TimeoutError as e:
            raise ProviderError(
                f"Timed out after {self._config.timeout}s calling the metadata service",
                provider=IMDSCredentialsProvider.name,
            ) from e
        except (aiohttp.ClientError, OSError) as e:
            raise ProviderError(
                f"Unable to reach the metadata service: {e}",
                provider=IMDSCredentialsProvider.name,
            ) from e
        return HTTPResponse(
            status=response.status,
            fields=response.fields,
            body=body,
            reason=response.reason,
        )


class IMDSCredentialsProvider:
    """Resolves role credentials from the EC2 instance metadata service."""

    name = "imds"

    _METADATA_PATH_BASE = "/latest/meta-data/iam/security-credentials"

    def __init__(
        self, http_client: HTTPClient | None = None, config: IMDSConfig | None = None
    ):
        """
        :param http_client: Client used to reach the metadata service. An
            :py:class:`AIOHTTPClient` is created when omitted.
        :param config: Endpoint, token and timeout settings.
        """
        # Only a client created here is closed by close().
        self._owned_client: AIOHTTPClient | None = None
        if http_client is None:
            http_client = self._owned_client = AIOHTTPClient()
        self._config = config or IMDSConfig()
        self._ec2_metadata_client = EC2Metadata(
            http_client=http_client, config=self._config
        )

    async def load(self) -> ProviderResult:
        try:
            profile = self._config.ec2_instance_profile_name
            if profile is None:
                profile = await self._get_profile_name()
            if profile is None:
                return NotConfigured(
                    self.name, "no IAM role is attached to this instance"
                )
            credentials = await self._get_credentials(profile)
        except ProviderError as e:
            return Failed(self.name, e)
        return Found(credentials, f"{self.name}:{profile}")

    async def close(self) -> None:
        """Close the HTTP client if this provider created it."""
        if self._owned_client is not None:
            await self._owned_client.close()

    async def _get_profile_name(self) -> str | None:
        response = await self._ec2_metadata_client.get(
            path=f"{self._METADATA_PATH_BASE}/"
        )
        if response.status == 404:
            return None
        self._raise_for_status(response, "listing instance roles")
        body = _decode_body(await response.consume_body_async())
        roles = body.split()
        return roles[0] if roles else None

    async def _get_credentials(self, profile: str) -> CredentialSet:
        response = await self._ec2_metadata_client.get(
            path=f"{self._METADATA_PATH_BASE}/{profile}"
        )
        self._raise_for_status(response, f"fetching credentials for role {profile}")
        body = await response.consume_body_async()
        try:
            creds = json.loads(body)
        except ValueError as e:
            raise ProviderError(
                f"Metadata service returned invalid JSON: {e}", provider=self.name
            ) from e
        if not isinstance(creds, dict):
            raise ProviderError(
                "Metadata service returned an unexpected document", provider=self.name
            )

        code = creds.get("Code", "Success")
        if code != "Success":
            raise ProviderError(
                f"Metadata service reported {code}: {creds.get('Message', '')}",
                provider=self.name,
            )

        for key in ("AccessKeyId", "SecretAccessKey", "Token", "Expiration"):
            if creds.get(key) is not None and not isinstance(creds[key], str):
                raise ProviderError(
                    f"Metadata service returned a non-string {key}", provider=self.name
                )

        expiration = creds.get("Expiration")
        if expiration is not None:
            try:
                expiration = datetime.fromisoformat(expiration)
            except (TypeError, ValueError) as e:
                raise ProviderError(
                    f"Invalid Expiration {expiration!r}", provider=self.name
                ) from e

        credentials = CredentialSet.from_values(
            access_key_id=creds.get("AccessKeyId"),
            secret_access_key=creds.get("SecretAccessKey"),
            session_token=creds.get("Token"),
            expiration=expiration,
        )
        if credentials is None:
            raise ProviderError(
                "AccessKeyId and SecretAccessKey are required", provider=self.name
            )
        return credentials

    def _raise_for_status(self, response: HTTPResponse, action: str) -> None:
        if response.status != 200:
            raise ProviderError(
                f"Metadata service returned {response.status} while {action}",
                provider=self.name,
            )


def _decode_body(body: bytes) -> str:
    try:
        return body.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ProviderError(
            f"Metadata service returned a body that is not UTF-8: {e}",
            provider=IMDSCredentialsProvider.name,
        ) from e
