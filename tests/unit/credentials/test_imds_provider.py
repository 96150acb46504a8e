#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0

# pyright: reportPrivateUsage=false
import asyncio
import json
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest
from aws_s3_auth import URI, Fields
from aws_s3_auth.aio import HTTPRequest, HTTPResponse
from aws_s3_auth.credentials import (
    Failed,
    Found,
    IMDSConfig,
    IMDSCredentialsProvider,
    NotConfigured,
)
from aws_s3_auth.credentials.imds import EC2Metadata, Token
from aws_s3_auth.exceptions import ProviderError
from freezegun import freeze_time

CREDENTIALS_DOCUMENT = {
    "Code": "Success",
    "LastUpdated": "2024-05-01T12:00:00Z",
    "Type": "AWS-HMAC",
    "AccessKeyId": "ASIAEXAMPLE",
    "SecretAccessKey": "secret",
    "Token": "session",
    "Expiration": "2024-05-01T18:00:00Z",
}


def _response(status: int = 200, body: bytes | str = b"") -> HTTPResponse:
    if isinstance(body, str):
        body = body.encode()
    return HTTPResponse(status=status, fields=Fields(), body=body)


def _client(*responses: HTTPResponse | Exception) -> AsyncMock:
    http_client = AsyncMock()
    http_client.send.side_effect = list(responses)
    return http_client


def _sent_requests(http_client: AsyncMock) -> list[HTTPRequest]:
    return [call.kwargs["request"] for call in http_client.send.call_args_list]


def test_config_defaults():
    config = IMDSConfig()
    assert config.endpoint_uri == URI(
        scheme="http", host=IMDSConfig._HOST_MAPPING["IPv4"], port=80
    )
    assert config.endpoint_mode == "IPv4"
    assert config.token_ttl == 21600
    assert config.timeout == 1.0


def test_endpoint_resolution():
    assert IMDSConfig(endpoint_mode="IPv6").endpoint_uri.host == "[fd00:ec2::254]"
    config = IMDSConfig(endpoint_uri="http://localhost:1338", endpoint_mode="IPv6")
    assert config.endpoint_uri == URI(scheme="http", host="localhost", port=1338)
    config = IMDSConfig(endpoint_uri="http://[fd00:ec2::254]")
    assert config.endpoint_uri.host == "[fd00:ec2::254]"


def test_config_validation():
    with pytest.raises(ValueError):
        IMDSConfig(token_ttl=IMDSConfig._MIN_TTL - 1)
    with pytest.raises(ValueError):
        IMDSConfig(token_ttl=IMDSConfig._MAX_TTL + 1)
    with pytest.raises(ValueError):
        IMDSConfig(timeout=0)
    with pytest.raises(ValueError):
        IMDSConfig(endpoint_uri="not a uri")


def test_token_expiration():
    with freeze_time("2024-05-01 12:00:00") as frozen:
        token = Token(value="test-token", ttl=100)
        assert not token.is_expired()
        frozen.tick(timedelta(seconds=99))
        assert not token.is_expired()
        frozen.tick(timedelta(seconds=1))
        assert token.is_expired()


async def test_ec2_metadata_get_uses_token():
    http_client = _client(_response(body="token-value"), _response(body="ok"))
    metadata = EC2Metadata(http_client, IMDSConfig(token_ttl=300))

    response = await metadata.get(path="/latest/meta-data/")

    assert await response.consume_body_async() == b"ok"
    token_request, get_request = _sent_requests(http_client)
    assert token_request.method == "PUT"
    assert token_request.destination.path == "/latest/api/token"
    assert token_request.fields["x-aws-ec2-metadata-token-ttl-seconds"].values == [
        "300"
    ]
    assert get_request.method == "GET"
    assert get_request.destination.host == "169.254.169.254"
    assert get_request.fields["x-aws-ec2-metadata-token"].values == ["token-value"]
    assert get_request.fields["User-Agent"].values[0].startswith(
        "aws-s3-auth-imds-client/"
    )


async def test_ec2_metadata_reuses_token():
    http_client = _client(
        _response(body="token-value"), _response(body="a"), _response(body="b")
    )
    metadata = EC2Metadata(http_client)
    await metadata.get(path="/a")
    await metadata.get(path="/b")
    assert http_client.send.await_count == 3


@pytest.mark.parametrize("status", [403, 404, 405])
async def test_ec2_metadata_falls_back_to_imdsv1(status: int):
    http_client = _client(_response(status=status), _response(body="ok"))
    metadata = EC2Metadata(http_client)

    await metadata.get(path="/latest/meta-data/")

    get_request = _sent_requests(http_client)[1]
    assert "x-aws-ec2-metadata-token" not in get_request.fields
    assert await metadata.get_token() is None


async def test_ec2_metadata_token_error():
    metadata = EC2Metadata(_client(_response(status=500)))
    with pytest.raises(ProviderError):
        await metadata.get(path="/latest/meta-data/")


async def test_ec2_metadata_undecodable_token():
    metadata = EC2Metadata(_client(_response(body=b"\xff\xfe")))
    with pytest.raises(ProviderError, match="UTF-8"):
        await metadata.get(path="/latest/meta-data/")


async def test_ec2_metadata_timeout():
    async def slow_send(*, request: HTTPRequest) -> HTTPResponse:
        await asyncio.sleep(1)
        return _response()

    http_client = AsyncMock()
    http_client.send.side_effect = slow_send
    metadata = EC2Metadata(http_client, IMDSConfig(timeout=0.01))
    with pytest.raises(ProviderError, match="Timed out"):
        await metadata.get(path="/latest/meta-data/")


async def test_ec2_metadata_connection_error():
    metadata = EC2Metadata(_client(aiohttp.ClientConnectionError("unreachable")))
    with pytest.raises(ProviderError, match="unreachable"):
        await metadata.get(path="/latest/meta-data/")


async def test_provider_resolves_role_credentials():
    http_client = _client(
        _response(body="token-value"),
        _response(body="my-role\n"),
        _response(body=json.dumps(CREDENTIALS_DOCUMENT)),
    )
    provider = IMDSCredentialsProvider(http_client=http_client)

    result = await provider.load()

    assert isinstance(result, Found)
    assert result.source == "imds:my-role"
    credentials = result.credentials
    assert credentials.access_key_id == "ASIAEXAMPLE"
    assert credentials.secret_access_key == "secret"
    assert credentials.session_token == "session"
    assert credentials.expiration == datetime(2024, 5, 1, 18, tzinfo=UTC)
    assert _sent_requests(http_client)[2].destination.path == (
        "/latest/meta-data/iam/security-credentials/my-role"
    )


async def test_provider_uses_configured_role():
    http_client = _client(
        _response(body="token-value"),
        _response(body=json.dumps(CREDENTIALS_DOCUMENT)),
    )
    provider = IMDSCredentialsProvider(
        http_client=http_client,
        config=IMDSConfig(ec2_instance_profile_name="configured-role"),
    )
    result = await provider.load()
    assert isinstance(result, Found)
    assert result.source == "imds:configured-role"
    assert http_client.send.await_count == 2


@pytest.mark.parametrize(
    "role_response", [_response(status=404), _response(body="")]
)
async def test_provider_without_role(role_response: HTTPResponse):
    http_client = _client(_response(body="token-value"), role_response)
    result = await IMDSCredentialsProvider(http_client=http_client).load()
    assert isinstance(result, NotConfigured)


@pytest.mark.parametrize(
    "document",
    [
        "not json",
        "[]",
        json.dumps({**CREDENTIALS_DOCUMENT, "Code": "AssumeRoleUnauthorizedAccess"}),
        json.dumps({**CREDENTIALS_DOCUMENT, "AccessKeyId": ""}),
        json.dumps({**CREDENTIALS_DOCUMENT, "Expiration": "tomorrow"}),
        json.dumps({**CREDENTIALS_DOCUMENT, "Expiration": 1700000000}),
        json.dumps({**CREDENTIALS_DOCUMENT, "AccessKeyId": 12345}),
        json.dumps({**CREDENTIALS_DOCUMENT, "SecretAccessKey": ["secret"]}),
        json.dumps({**CREDENTIALS_DOCUMENT, "Token": {"value": "session"}}),
    ],
)
async def test_provider_bad_document(document: str):
    http_client = _client(
        _response(body="token-value"),
        _response(body="my-role"),
        _response(body=document),
    )
    result = await IMDSCredentialsProvider(http_client=http_client).load()
    assert isinstance(result, Failed)
    assert result.source == "imds"
    assert result.error.provider == "imds"


async def test_provider_unreachable():
    http_client = _client(OSError("no route to host"))
    result = await IMDSCredentialsProvider(http_client=http_client).load()
    assert isinstance(result, Failed)


async def test_provider_undecodable_role_listing():
    http_client = _client(_response(body="token-value"), _response(body=b"\xff\xfe"))
    result = await IMDSCredentialsProvider(http_client=http_client).load()
    assert isinstance(result, Failed)
    assert result.error.provider == "imds"


async def test_provider_closes_its_own_client():
    provider = IMDSCredentialsProvider()
    session = MagicMock()
    session.close = AsyncMock()
    assert provider._owned_client is not None
    provider._owned_client._session = session

    await provider.close()

    session.close.assert_awaited_once()


async def test_provider_leaves_injected_client_open():
    http_client = AsyncMock()
    provider = IMDSCredentialsProvider(http_client=http_client)
    await provider.close()
    http_client.close.assert_not_awaited()
