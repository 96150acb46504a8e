#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Protocol, runtime_checkable


@runtime_checkable
class Identity(Protocol):
    """Something a request can be signed on behalf of."""

    expiration: datetime | None = None
    """When the identity stops being valid, in UTC. ``None`` never expires."""

    @property
    def is_expired(self) -> bool:
        if self.expiration is None:
            return False
        return self.expiration <= datetime.now(tz=UTC)

    def expires_within(self, margin: timedelta) -> bool:
        """True when less than ``margin`` remains before ``expiration``."""
        if self.expiration is None:
            return False
        return self.expiration - margin <= datetime.now(tz=UTC)


@runtime_checkable
class AWSCredentialsIdentity(Identity, Protocol):
    """An access key pair, optionally with a session token."""

    access_key_id: str
    secret_access_key: str

    session_token: str | None = None
    """Present for temporary credentials, such as those served by IMDS."""
