#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
import asyncio
import configparser
import logging
import os
from collections.abc import Awaitable, Callable, Mapping
from pathlib import Path
from typing import Any, ClassVar, Final, Literal

from .signers import SignatureScheme

logger: Final = logging.getLogger(__name__)

SOURCE_CONSTRUCTOR = "constructor"
SOURCE_ENVIRONMENT = "environment"
SOURCE_CONFIG_FILE = "config_file"
SOURCE_DEFAULT = "default"
SOURCE_IN_CODE_UPDATE = "in_code_update"

SourceType = Literal[
    "constructor",
    "environment",
    "config_file",
    "default",
    "in_code_update",
]

_TRUE_VALUES = frozenset({"true", "1", "yes", "on"})
_FALSE_VALUES = frozenset({"false", "0", "no", "off", ""})


class ConfigValue:
    """Configuration value with metadata about its source"""

    def __init__(self, value: Any, source: SourceType):
        self.value = value
        self.source = source

    def __repr__(self) -> str:
        return f"ConfigValue(value={self.value!r}, source={self.source!r})"


class S3AuthConfig:
    """Signing and credential configuration with precedence-based resolution.

    Each value is taken from the first source that defines it: constructor argument,
    environment variable, the active profile of the shared config file
    (``~/.aws/config``), and finally the built-in default.

    Constructor parameters default to the ``...`` sentinel so that an explicit
    ``None`` can be told apart from "not provided".

    Explicit credentials are only accepted through the constructor. Credentials in
    the environment or the shared credentials file are picked up by the credential
    resolution chain instead.
    """

    CONFIG_FIELDS: ClassVar[dict[str, dict[str, Any]]] = {
        "signature_version": {
            "env_var": "AWS_S3_SIGNATURE_VERSION",
            "config_key": "s3_signature_version",
            "default": SignatureScheme.V4,
            "validator": "_validate_signature_version",
        },
        "region": {
            "env_var": "AWS_REGION",
            "config_key": "region",
            "default": "us-east-1",
            "type": str,
        },
        "service_name": {
            "default": "s3",
            "type": str,
        },
        "endpoint_uri": {
            "env_var": "AWS_ENDPOINT_URL",
            "config_key": "endpoint_url",
            "default": None,
            "type": str | None,
        },
        "profile": {
            "env_var": "AWS_PROFILE",
            "default": "default",
            "type": str,
        },
        "shared_credentials_file": {
            "env_var": "AWS_SHARED_CREDENTIALS_FILE",
            "default": None,
            "type": str | None,
        },
        "aws_access_key_id": {
            "default": None,
            "type": str | None,
        },
        "aws_secret_access_key": {
            "default": None,
            "type": str | None,
        },
        "aws_session_token": {
            "default": None,
            "type": str | None,
        },
        "imds_disabled": {
            "env_var": "AWS_EC2_METADATA_DISABLED",
            "default": False,
            "validator": "_validate_bool",
        },
        "imds_timeout": {
            "env_var": "AWS_METADATA_SERVICE_TIMEOUT",
            "config_key": "metadata_service_timeout",
            "default": 1.0,
            "validator": "_validate_timeout",
        },
        "imds_endpoint": {
            "env_var": "AWS_EC2_METADATA_SERVICE_ENDPOINT",
            "config_key": "ec2_metadata_service_endpoint",
            "default": None,
            "type": str | None,
        },
    }

    def __init__(
        self,
        *,
        signature_version: SignatureScheme | str = ...,  # type: ignore[assignment]
        region: str = ...,  # type: ignore[assignment]
        service_name: str = ...,  # type: ignore[assignment]
        endpoint_uri: str | None = ...,  # type: ignore[assignment]
        profile: str = ...,  # type: ignore[assignment]
        shared_credentials_file: str | None = ...,  # type: ignore[assignment]
        aws_access_key_id: str | None = ...,  # type: ignore[assignment]
        aws_secret_access_key: str | None = ...,  # type: ignore[assignment]
        aws_session_token: str | None = ...,  # type: ignore[assignment]
        imds_disabled: bool = ...,  # type: ignore[assignment]
        imds_timeout: float = ...,  # type: ignore[assignment]
        imds_endpoint: str | None = ...,  # type: ignore[assignment]
    ):
        self._constructor_values = {
            k: v for k, v in locals().items() if k != "self" and v is not ...
        }
        self._resolved = False

    async def resolve(
        self,
        *,
        environment_loader: Callable[[], Awaitable[Mapping[str, Any]]] | None = None,
        config_file_loader: Callable[[], Awaitable[Mapping[str, Any]]] | None = None,
    ) -> None:
        """Resolve configuration from all sources

        Args:
            environment_loader: Custom environment loader function
            config_file_loader: Custom config file loader function
        """
        if self._resolved:
            raise RuntimeError(
                "Config has already been resolved. Multiple calls to resolve() are "
                "not allowed."
            )

        env_task = (environment_loader or self._load_environment_values)()
        config_task = (config_file_loader or self._load_config_file_values)()
        env_values, config_file_values = await asyncio.gather(env_task, config_task)

        for field_name, field_info in self.CONFIG_FIELDS.items():
            resolved_value = self._resolve_field(
                field_name,
                self._constructor_values,
                env_values,
                config_file_values,
                field_info["default"],
                field_info.get("validator"),
            )
            setattr(self, f"_{field_name}", resolved_value)

        self._resolved = True

    async def _load_environment_values(self) -> Mapping[str, str]:
        return os.environ

    async def _load_config_file_values(self) -> dict[str, Any]:
        profile = self._constructor_values.get("profile") or os.environ.get(
            "AWS_PROFILE", "default"
        )

        def _read_config() -> dict[str, str]:
            config_path = Path(
                os.environ.get("AWS_CONFIG_FILE", Path.home() / ".aws" / "config")
            ).expanduser()
            if not config_path.is_file():
                return {}

            parser = configparser.ConfigParser(interpolation=None)
            try:
                parser.read(config_path, encoding="utf-8")
            except configparser.Error as e:
                logger.debug("Ignoring unparseable config file %s: %s", config_path, e)
                return {}

            section_name = f"profile {profile}" if profile != "default" else "default"
            if section_name not in parser:
                return {}

            return dict(parser[section_name])

        return await asyncio.to_thread(_read_config)

    def _resolve_field(
        self,
        field_name: str,
        constructor_values: Mapping[str, Any],
        env_values: Mapping[str, Any],
        config_file_values: Mapping[str, Any],
        default_value: Any,
        validator: str | None,
    ) -> ConfigValue:
        field_config = self.CONFIG_FIELDS.get(field_name, {})
        env_var = field_config.get("env_var")
        config_key = field_config.get("config_key")

        source: SourceType
        if field_name in constructor_values:
            value = constructor_values[field_name]
            source = SOURCE_CONSTRUCTOR
        elif env_var and env_var in env_values:
            value = env_values[env_var]
            source = SOURCE_ENVIRONMENT
        elif config_key and config_key in config_file_values:
            value = config_file_values[config_key]
            source = SOURCE_CONFIG_FILE
        else:
            value = default_value
            source = SOURCE_DEFAULT

        if validator:
            value = getattr(self, validator)(value, field_name)
        else:
            expected_type = field_config["type"]
            if not isinstance(value, expected_type):
                actual_name = type(value).__name__
                expected_name = getattr(expected_type, "__name__", str(expected_type))
                raise TypeError(
                    f"{field_name} must be {expected_name}, got {actual_name}"
                )

        return ConfigValue(value, source)

    def _validate_signature_version(
        self, value: Any, field_name: str
    ) -> SignatureScheme:
        return SignatureScheme.from_value(value)

    def _validate_bool(self, value: Any, field_name: str) -> bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            normalized = value.strip().lower()
            if normalized in _TRUE_VALUES:
                return True
            if normalized in _FALSE_VALUES:
                return False
        raise ValueError(f"{field_name} must be a boolean, got {value!r}")

    def _validate_timeout(self, value: Any, field_name: str) -> float:
        try:
            timeout = float(value)
        except (TypeError, ValueError) as e:
            raise ValueError(f"{field_name} must be a number, got {value!r}") from e
        if timeout <= 0:
            raise ValueError(f"{field_name} must be positive, got {timeout}")
        return timeout

    def get_config_value_object(self, field_name: str) -> ConfigValue:
        """Get the raw ConfigValue object for a field"""
        if not self._resolved:
            raise RuntimeError("Config must be resolved before accessing values")
        return getattr(self, f"_{field_name}")

    @property
    def signature_version(self) -> SignatureScheme:
        return self._signature_version.value

    @signature_version.setter
    def signature_version(self, value: SignatureScheme | str) -> None:
        self._signature_version = ConfigValue(
            SignatureScheme.from_value(value), SOURCE_IN_CODE_UPDATE
        )

    @property
    def region(self) -> str:
        return self._region.value

    @region.setter
    def region(self, value: str) -> None:
        self._region = ConfigValue(value, SOURCE_IN_CODE_UPDATE)

    @property
    def service_name(self) -> str:
        return self._service_name.value

    @service_name.setter
    def service_name(self, value: str) -> None:
        self._service_name = ConfigValue(value, SOURCE_IN_CODE_UPDATE)

    @property
    def endpoint_uri(self) -> str | None:
        return self._endpoint_uri.value

    @endpoint_uri.setter
    def endpoint_uri(self, value: str | None) -> None:
        self._endpoint_uri = ConfigValue(value, SOURCE_IN_CODE_UPDATE)

    @property
    def profile(self) -> str:
        return self._profile.value

    @profile.setter
    def profile(self, value: str) -> None:
        self._profile = ConfigValue(value, SOURCE_IN_CODE_UPDATE)

    @property
    def shared_credentials_file(self) -> str | None:
        return self._shared_credentials_file.value

    @shared_credentials_file.setter
    def shared_credentials_file(self, value: str | None) -> None:
        self._shared_credentials_file = ConfigValue(value, SOURCE_IN_CODE_UPDATE)

    @property
    def aws_access_key_id(self) -> str | None:
        return self._aws_access_key_id.value

    @aws_access_key_id.setter
    def aws_access_key_id(self, value: str | None) -> None:
        self._aws_access_key_id = ConfigValue(value, SOURCE_IN_CODE_UPDATE)

    @property
    def aws_secret_access_key(self) -> str | None:
        return self._aws_secret_access_key.value

    @aws_secret_access_key.setter
    def aws_secret_access_key(self, value: str | None) -> None:
        self._aws_secret_access_key = ConfigValue(value, SOURCE_IN_CODE_UPDATE)

    @property
    def aws_session_token(self) -> str | None:
        return self._aws_session_token.value

    @aws_session_token.setter
    def aws_session_token(self, value: str | None) -> None:
        self._aws_session_token = ConfigValue(value, SOURCE_IN_CODE_UPDATE)

    @property
    def imds_disabled(self) -> bool:
        return self._imds_disabled.value

    @imds_disabled.setter
    def imds_disabled(self, value: bool) -> None:
        self._imds_disabled = ConfigValue(value, SOURCE_IN_CODE_UPDATE)

    @property
    def imds_timeout(self) -> float:
        return self._imds_timeout.value

    @imds_timeout.setter
    def imds_timeout(self, value: float) -> None:
        self._imds_timeout = ConfigValue(value, SOURCE_IN_CODE_UPDATE)

    @property
    def imds_endpoint(self) -> str | None:
        return self._imds_endpoint.value

    @imds_endpoint.setter
    def imds_endpoint(self, value: str | None) -> None:
        self._imds_endpoint = ConfigValue(value, SOURCE_IN_CODE_UPDATE)
