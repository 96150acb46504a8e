#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from .._identity import CredentialSet
from ..exceptions import ProviderError


@dataclass(frozen=True)
class Found:
    """The provider produced a usable credential set."""

    credentials: CredentialSet
    source: str


@dataclass(frozen=True)
class NotConfigured:
    """The provider has nothing to offer. This is expected, not an error."""

    source: str
    reason: str


@dataclass(frozen=True)
class Failed:
    """The provider is configured but could not produce credentials."""

    source: str
    error: ProviderError


type ProviderResult = Found | NotConfigured | Failed


@runtime_checkable
class CredentialsProvider(Protocol):
    """A single source of credentials in the resolution chain."""

    name: str

    async def load(self) -> ProviderResult:
        """Attempt to produce a credential set.

        Expected absence is reported as :py:class:`NotConfigured` and failures as
        :py:class:`Failed` rather than raised.
        """
        ...


@runtime_checkable
class ClosableProvider(CredentialsProvider, Protocol):
    """A provider holding resources, such as an HTTP session, that must be closed."""

    async def close(self) -> None: ...
