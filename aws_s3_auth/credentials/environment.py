#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
import os
from collections.abc import Mapping

from .._identity import CredentialSet
from .interfaces import Found, NotConfigured, ProviderResult


class EnvironmentCredentialsProvider:
    """Resolves credentials from system environment variables."""

    name = "environment"

    def __init__(self, environ: Mapping[str, str] | None = None):
        """
        :param environ: The mapping to read from. Defaults to ``os.environ`` at the
            time of each load.
        """
        self._environ = environ

    async def load(self) -> ProviderResult:
        environ = os.environ if self._environ is None else self._environ
        credentials = CredentialSet.from_values(
            access_key_id=environ.get("AWS_ACCESS_KEY_ID"),
            secret_access_key=environ.get("AWS_SECRET_ACCESS_KEY"),
            session_token=environ.get("AWS_SESSION_TOKEN"),
        )
        if credentials is None:
            return NotConfigured(
                self.name,
                "AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY are not both set",
            )
        return Found(credentials, self.name)
