#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime

from .interfaces.identity import AWSCredentialsIdentity


def ensure_utc(value: datetime) -> datetime:
    """Ensures that the given datetime is a UTC timezone-aware datetime.

    If the datetime isn't timezone-aware, its timezone is set to UTC. If it is aware,
    it's replaced with the equivalent datetime under UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


@dataclass(kw_only=True, frozen=True)
class CredentialSet(AWSCredentialsIdentity):
    """An immutable snapshot of the key material used to sign requests.

    A refreshed set replaces the previous one; instances are never updated in place.
    """

    access_key_id: str
    secret_access_key: str = field(repr=False)
    session_token: str | None = field(default=None, repr=False)
    expiration: datetime | None = None

    def __post_init__(self) -> None:
        if self.expiration is not None:
            object.__setattr__(self, "expiration", ensure_utc(self.expiration))

    @classmethod
    def from_values(
        cls,
        access_key_id: str | None,
        secret_access_key: str | None,
        session_token: str | None = None,
        expiration: datetime | None = None,
    ) -> CredentialSet | None:
        """Build a set only when both the key id and the secret are non-empty.

        A key without a secret, or a secret without a key, is treated the same as
        no credentials at all. Empty session tokens are dropped.
        """
        if not access_key_id or not secret_access_key:
            return None
        return cls(
            access_key_id=access_key_id,
            secret_access_key=secret_access_key,
            session_token=session_token or None,
            expiration=expiration,
        )
