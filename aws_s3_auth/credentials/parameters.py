#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
from .._identity import CredentialSet
from ..exceptions import InvalidCredentialsError
from .interfaces import Found, NotConfigured, ProviderResult


class ParametersCredentialsProvider:
    """Provides credentials passed explicitly in code or configuration."""

    name = "parameters"

    def __init__(
        self,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        session_token: str | None = None,
    ):
        if access_key_id is None and secret_access_key is None:
            self._credentials = None
            return

        credentials = CredentialSet.from_values(
            access_key_id, secret_access_key, session_token
        )
        if credentials is None:
            raise InvalidCredentialsError(
                "Explicit credentials require both a non-empty access key id and "
                "secret access key."
            )
        self._credentials = credentials

    @property
    def is_configured(self) -> bool:
        return self._credentials is not None

    async def load(self) -> ProviderResult:
        if self._credentials is None:
            return NotConfigured(self.name, "no explicit credentials were supplied")
        return Found(self._credentials, self.name)
