#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from datetime import timedelta
from types import TracebackType
from typing import TYPE_CHECKING, Final, Self

from .._identity import CredentialSet
from ..exceptions import NoCredentialsError, ProviderError
from ..interfaces.http import HTTPClient
from .environment import EnvironmentCredentialsProvider
from .imds import IMDSConfig, IMDSCredentialsProvider
from .interfaces import (
    ClosableProvider,
    CredentialsProvider,
    Failed,
    Found,
    NotConfigured,
    ProviderResult,
)
from .parameters import ParametersCredentialsProvider
from .profile import ProfileCredentialsProvider

if TYPE_CHECKING:
    from ..config import S3AuthConfig

logger: Final = logging.getLogger(__name__)

DEFAULT_EXPIRY_MARGIN: Final = timedelta(seconds=20)
DEFAULT_PROVIDER_TIMEOUT: Final = 5.0


class CredentialResolutionChain:
    """Resolves credentials from an ordered sequence of providers.

    The first provider to return credentials wins. The result is cached until it is
    within ``expiry_margin`` of its expiration, at which point the whole sequence is
    walked again. Refreshes are serialized: while one caller refreshes, others either
    wait for it or keep using the current set if it hasn't literally expired yet.
    """

    def __init__(
        self,
        providers: Sequence[CredentialsProvider],
        *,
        expiry_margin: timedelta = DEFAULT_EXPIRY_MARGIN,
        provider_timeout: float = DEFAULT_PROVIDER_TIMEOUT,
    ) -> None:
        """
        :param providers: The providers to try, in order.
        :param expiry_margin: How long before their expiration cached credentials are
            treated as stale.
        :param provider_timeout: Seconds each provider may take before it is treated as
            failed.
        """
        self._providers = tuple(providers)
        self._expiry_margin = expiry_margin
        self._provider_timeout = provider_timeout
        self._cached: Found | None = None
        self._refresh_lock = asyncio.Lock()

    @property
    def providers(self) -> tuple[CredentialsProvider, ...]:
        return self._providers

    @property
    def source(self) -> str | None:
        """Where the cached credentials came from, if any are cached."""
        return self._cached.source if self._cached is not None else None

    def invalidate(self) -> None:
        """Drop the cached credentials so the next call resolves them again."""
        self._cached = None

    async def close(self) -> None:
        """Release resources held by the providers, such as HTTP sessions."""
        for provider in self._providers:
            if isinstance(provider, ClosableProvider):
                await provider.close()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        await self.close()

    async def resolve(self) -> CredentialSet:
        """Return usable credentials, refreshing them if needed.

        :raises NoCredentialsError: No provider could produce credentials.
        """
        cached = self._cached
        if self._is_fresh(cached):
            assert cached is not None  # noqa: S101
            return cached.credentials

        if (
            self._refresh_lock.locked()
            and cached is not None
            and not cached.credentials.is_expired
        ):
            # Another task is refreshing; the current set is still valid.
            return cached.credentials

        async with self._refresh_lock:
            cached = self._cached
            if self._is_fresh(cached):
                assert cached is not None  # noqa: S101
                return cached.credentials
            if cached is not None:
                logger.debug(
                    "Credentials from %s are about to expire, refreshing.",
                    cached.source,
                )
            try:
                found = await self._resolve_uncached()
            except NoCredentialsError:
                self._cached = None
                raise
            self._cached = found
            return found.credentials

    def _is_fresh(self, cached: Found | None) -> bool:
        return cached is not None and not cached.credentials.expires_within(
            self._expiry_margin
        )

    async def _resolve_uncached(self) -> Found:
        logger.debug("Attempting to resolve credentials from provider chain.")
        attempts: list[ProviderResult] = []
        last_error: ProviderError | None = None
        for provider in self._providers:
            result = await self._load(provider)
            attempts.append(result)
            match result:
                case Found(source=source):
                    logger.debug("Resolved credentials from %s.", source)
                    return result
                case NotConfigured(source=source, reason=reason):
                    logger.debug("Skipping %s: %s.", source, reason)
                case Failed(source=source, error=error):
                    logger.debug("Credentials provider %s failed: %s", source, error)
                    last_error = error

        error = NoCredentialsError(attempts=attempts, last_error=last_error)
        raise error from last_error

    async def _load(self, provider: CredentialsProvider) -> ProviderResult:
        logger.debug("Attempting to resolve credentials from %s.", provider.name)
        try:
            async with asyncio.timeout(self._provider_timeout):
                result = await provider.load()
        except TimeoutError:
            return Failed(
                provider.name,
                ProviderError(
                    f"Timed out after {self._provider_timeout}s",
                    provider=provider.name,
                ),
            )
        except ProviderError as e:
            return Failed(provider.name, e)

        if isinstance(result, Found) and result.credentials.is_expired:
            return Failed(
                provider.name,
                ProviderError(
                    "Provider returned credentials that expired at "
                    f"{result.credentials.expiration}",
                    provider=provider.name,
                ),
            )
        return result


def create_default_chain(
    config: S3AuthConfig | None = None,
    *,
    http_client: HTTPClient | None = None,
    environ: Mapping[str, str] | None = None,
) -> CredentialResolutionChain:
    """Build the standard chain: environment, parameters, profile, then IMDS.

    :param config: A resolved configuration. The parameters provider is only included
        when it supplies explicit credentials, and the metadata service is skipped
        when it is disabled.
    :param http_client: Transport for the metadata service.
    :param environ: Environment mapping for the environment provider.
    """
    providers: list[CredentialsProvider] = [EnvironmentCredentialsProvider(environ)]

    if config is None:
        providers.append(ProfileCredentialsProvider())
        providers.append(IMDSCredentialsProvider(http_client=http_client))
        return CredentialResolutionChain(providers)

    parameters = ParametersCredentialsProvider(
        access_key_id=config.aws_access_key_id,
        secret_access_key=config.aws_secret_access_key,
        session_token=config.aws_session_token,
    )
    if parameters.is_configured:
        providers.append(parameters)

    providers.append(
        ProfileCredentialsProvider(
            profile=config.profile, path=config.shared_credentials_file
        )
    )

    if config.imds_disabled:
        logger.debug("Instance metadata credentials are disabled by configuration.")
    else:
        imds_config = IMDSConfig(
            endpoint_uri=config.imds_endpoint, timeout=config.imds_timeout
        )
        providers.append(
            IMDSCredentialsProvider(http_client=http_client, config=imds_config)
        )
    return CredentialResolutionChain(providers)
