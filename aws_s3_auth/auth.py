#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
from datetime import datetime
from types import TracebackType
from typing import Self

from ._http import S3Request
from .config import S3AuthConfig
from .credentials.chain import CredentialResolutionChain, create_default_chain
from .signers import S3Signer, SigningMaterial, SigningProperties


class S3Authenticator:
    """Signs requests with credentials resolved from a resolution chain.

    This is the entry point for request builders: hand it a prepared request and it
    returns either the material to attach or a signed copy of the request.
    """

    def __init__(
        self,
        config: S3AuthConfig,
        *,
        chain: CredentialResolutionChain | None = None,
        signer: S3Signer | None = None,
    ) -> None:
        """
        :param config: A resolved configuration supplying the signature version, region
            and service name.
        :param chain: Where credentials come from. Defaults to the standard chain built
            from ``config``.
        :param signer: Overrides the signer built from ``config.signature_version``.
        """
        self._config = config
        self._chain = chain if chain is not None else create_default_chain(config)
        self._signer = signer or S3Signer(config.signature_version)

    @property
    def chain(self) -> CredentialResolutionChain:
        return self._chain

    async def close(self) -> None:
        """Close the credential chain, releasing any metadata service session."""
        await self._chain.close()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        await self.close()

    async def signing_material(
        self, request: S3Request, *, timestamp: datetime | None = None
    ) -> SigningMaterial:
        credentials = await self._chain.resolve()
        return self._signer.signing_material(
            request=request,
            credentials=credentials,
            signing_properties=self._signing_properties(timestamp),
        )

    async def sign(
        self, request: S3Request, *, timestamp: datetime | None = None
    ) -> S3Request:
        credentials = await self._chain.resolve()
        return self._signer.sign(
            request=request,
            credentials=credentials,
            signing_properties=self._signing_properties(timestamp),
        )

    async def presign(
        self,
        request: S3Request,
        *,
        expires: int = 3600,
        timestamp: datetime | None = None,
    ) -> S3Request:
        credentials = await self._chain.resolve()
        return self._signer.presign(
            request=request,
            credentials=credentials,
            signing_properties=self._signing_properties(timestamp),
            expires=expires,
        )

    def _signing_properties(self, timestamp: datetime | None) -> SigningProperties:
        properties = SigningProperties(
            region=self._config.region, service=self._config.service_name
        )
        if timestamp is not None:
            properties["timestamp"] = timestamp
        return properties
