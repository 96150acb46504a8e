#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .credentials.interfaces import ProviderResult


class S3AuthWarning(UserWarning): ...


class S3AuthError(Exception):
    """Top-level exception to capture signing and credential errors."""


class ProviderError(S3AuthError):
    """A credentials provider was configured but could not produce credentials.

    These are recorded by the resolution chain and only surface as context on a
    :py:class:`NoCredentialsError`.
    """

    def __init__(self, message: str, *, provider: str) -> None:
        super().__init__(message)
        self.provider = provider

    def __str__(self) -> str:
        return f"[{self.provider}] {super().__str__()}"


class NoCredentialsError(S3AuthError):
    """Every provider in the chain was either not configured or failed."""

    def __init__(
        self,
        message: str = "Unable to locate credentials",
        *,
        attempts: Sequence[ProviderResult] = (),
        last_error: ProviderError | None = None,
    ) -> None:
        if last_error is not None:
            message = f"{message}: {last_error}"
        super().__init__(message)
        self.attempts = tuple(attempts)
        self.last_error = last_error


class InvalidCredentialsError(S3AuthError, ValueError):
    """Empty, malformed or expired key material was supplied for signing."""


class UnsupportedSchemeError(S3AuthError, ValueError):
    """A signature scheme was requested that does not match the canonical form."""


class CanonicalizationError(S3AuthError, ValueError):
    """Request metadata can't be expressed in canonical form."""
