#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
from .chain import (
    DEFAULT_EXPIRY_MARGIN,
    DEFAULT_PROVIDER_TIMEOUT,
    CredentialResolutionChain,
    create_default_chain,
)
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

__all__ = (
    "DEFAULT_EXPIRY_MARGIN",
    "DEFAULT_PROVIDER_TIMEOUT",
    "CredentialResolutionChain",
    "ClosableProvider",
    "CredentialsProvider",
    "EnvironmentCredentialsProvider",
    "Failed",
    "Found",
    "IMDSConfig",
    "IMDSCredentialsProvider",
    "NotConfigured",
    "ParametersCredentialsProvider",
    "ProfileCredentialsProvider",
    "ProviderResult",
    "create_default_chain",
)
