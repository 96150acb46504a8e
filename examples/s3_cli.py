"""
Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
SPDX-License-Identifier: Apache-2.0

Sample request builder: presigns object URLs, prints signed curl commands, or
fetches an object with aiohttp.

    python examples/s3_cli.py presign my-bucket photos/cat.jpg --expires 600
    python examples/s3_cli.py curl my-bucket photos/cat.jpg --signature-version v2
    python examples/s3_cli.py get my-bucket cat.jpg --endpoint http://localhost:8000
"""

import argparse
import asyncio
import logging
import sys
from urllib.parse import urlsplit

import aiohttp
from yarl import URL

from aws_s3_auth import (
    URI,
    Fields,
    NoCredentialsError,
    S3AuthConfig,
    S3Authenticator,
    S3AuthError,
    S3Request,
)


def build_request(
    config: S3AuthConfig,
    bucket: str,
    key: str,
    *,
    path_style: bool,
    method: str = "GET",
) -> S3Request:
    """Address ``bucket``/``key`` in virtual-hosted or path style."""
    if config.endpoint_uri:
        endpoint = urlsplit(config.endpoint_uri)
        scheme, host, port = endpoint.scheme, endpoint.hostname or "", endpoint.port
    else:
        scheme, host, port = "https", f"s3.{config.region}.amazonaws.com", None

    key_path = "/" + key.lstrip("/")
    if path_style:
        destination = URI(
            scheme=scheme, host=host, port=port, path=f"/{bucket}{key_path}"
        )
    else:
        destination = URI(
            scheme=scheme, host=f"{bucket}.{host}", port=port, path=key_path
        )
    return S3Request(
        destination=destination,
        method=method,
        fields=Fields(),
        bucket=bucket,
        virtual_hosted=not path_style,
    )


def curl_command(request: S3Request) -> str:
    cmd_list = ["curl", f"-X {request.method.upper()}"]
    for header in request.fields:
        cmd_list.append(f'-H "{header.name}: {header.as_string()}"')
    cmd_list.append(f"'{request.destination.build()}'")
    return " ".join(cmd_list)


async def fetch(request: S3Request) -> bytes:
    headers = [pair for field in request.fields for pair in field.as_tuples()]
    async with aiohttp.ClientSession() as session:
        async with session.request(
            request.method,
            URL(request.destination.build(), encoded=True),
            headers=headers,
        ) as resp:
            body = await resp.read()
            if resp.status >= 300:
                raise RuntimeError(f"{resp.status} {resp.reason}: {body.decode()}")
            return body


async def run(args: argparse.Namespace) -> int:
    config = S3AuthConfig(
        **{
            name: value
            for name, value in (
                ("region", args.region),
                ("endpoint_uri", args.endpoint),
                ("signature_version", args.signature_version),
                ("profile", args.profile),
            )
            if value is not None
        }
    )
    await config.resolve()
    request = build_request(config, args.bucket, args.key, path_style=args.path_style)

    async with S3Authenticator(config) as auth:
        if args.command == "presign":
            presigned = await auth.presign(request, expires=args.expires)
            print(presigned.destination.build())
        elif args.command == "curl":
            print(curl_command(await auth.sign(request)))
        else:
            sys.stdout.buffer.write(await fetch(await auth.sign(request)))
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__.split("\n\n")[1])
    parser.add_argument("command", choices=("presign", "curl", "get"))
    parser.add_argument("bucket")
    parser.add_argument("key")
    parser.add_argument("--region")
    parser.add_argument("--endpoint", help="e.g. http://localhost:7480 for Ceph RGW")
    parser.add_argument("--profile")
    parser.add_argument("--signature-version", choices=("v2", "v4"))
    parser.add_argument("--path-style", action="store_true")
    parser.add_argument("--expires", type=int, default=3600)
    parser.add_argument("--debug", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.debug else logging.WARNING)
    try:
        return asyncio.run(run(args))
    except NoCredentialsError as e:
        print(f"No credentials found: {e}", file=sys.stderr)
        return 2
    except S3AuthError as e:
        print(f"Unable to sign request: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
