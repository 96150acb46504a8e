#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
"""Request signing (AWS Signature Version 2 and 4) and credential resolution for
S3-compatible object stores."""

__license__ = "Apache-2.0"
__version__ = "0.1.0"

from ._http import URI, Field, Fields, S3Request  # noqa: E402
from ._identity import CredentialSet  # noqa: E402
from .auth import S3Authenticator  # noqa: E402
from .canonical import (  # noqa: E402
    CanonicalRequestV2,
    CanonicalRequestV4,
    canonical_request_v2,
    canonical_request_v4,
)
from .config import S3AuthConfig  # noqa: E402
from .credentials import CredentialResolutionChain, create_default_chain  # noqa: E402
from .exceptions import (  # noqa: E402
    CanonicalizationError,
    InvalidCredentialsError,
    NoCredentialsError,
    ProviderError,
    S3AuthError,
    UnsupportedSchemeError,
)
from .signers import (  # noqa: E402
    S3Signer,
    SignatureScheme,
    SigningMaterial,
    SigningProperties,
    sign_canonical_request,
)

__all__ = (
    "URI",
    "CanonicalRequestV2",
    "CanonicalRequestV4",
    "CanonicalizationError",
    "CredentialResolutionChain",
    "CredentialSet",
    "Field",
    "Fields",
    "InvalidCredentialsError",
    "NoCredentialsError",
    "ProviderError",
    "S3AuthConfig",
    "S3AuthError",
    "S3Authenticator",
    "S3Request",
    "S3Signer",
    "SignatureScheme",
    "SigningMaterial",
    "SigningProperties",
    "UnsupportedSchemeError",
    "canonical_request_v2",
    "canonical_request_v4",
    "create_default_chain",
    "sign_canonical_request",
)
