"""
Configuration management for the mock OAuth2 server.

Handles loading, validation, and access to configuration settings.
"""

import os
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, List
from enum import Enum

import yaml
from pydantic import AliasChoices, BaseModel, Field, ValidationError, ConfigDict

from mockoauth2.oauth.callbacks import RequestMapping, RequestMappingTokenCallback, TokenCallback

logger = logging.getLogger(__name__)


class LogLevel(str, Enum):
    """Valid log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: LogLevel = LogLevel.INFO
    format: str = "text"
    file: Optional[str] = None
    rotation_size: str = "10MB"
    rotation_count: int = 5
    module_levels: Optional[Dict[str, str]] = Field(
        default=None,
        description="Per-module log levels, e.g., {'mockoauth2.oauth': 'DEBUG'}"
    )


class ServerConfig(BaseModel):
    """HTTP server configuration."""
    host: str = "127.0.0.1"
    port: int = 8080


class RequestMappingConfig(BaseModel):
    """Claims to issue when a token request parameter matches."""
    request_param: str = Field(validation_alias=AliasChoices("request_param", "requestParam"))
    match: str = "*"
    claims: Dict[str, Any] = Field(default_factory=dict)
    type_header: str = Field(
        default="JWT",
        validation_alias=AliasChoices("type_header", "typeHeader")
    )


class TokenCallbackConfig(BaseModel):
    """Statically configured token callback for one issuer."""
    issuer_id: str = Field(validation_alias=AliasChoices("issuer_id", "issuerId"))
    token_expiry: int = Field(
        default=3600,
        gt=0,
        validation_alias=AliasChoices("token_expiry", "tokenExpiry")
    )
    request_mappings: List[RequestMappingConfig] = Field(
        default_factory=list,
        validation_alias=AliasChoices("request_mappings", "requestMappings")
    )

    def to_callback(self) -> RequestMappingTokenCallback:
        return RequestMappingTokenCallback(
            issuer_id=self.issuer_id,
            request_mappings=[
                RequestMapping(
                    request_param=m.request_param,
                    match=m.match,
                    claims=dict(m.claims),
                    type_header=m.type_header,
                )
                for m in self.request_mappings
            ],
            token_expiry=self.token_expiry,
        )


class MockOAuth2Config(BaseModel):
    """Main mock OAuth2 server configuration schema.

    Keys are accepted in snake_case or in the camelCase form used by JSON
    configuration files (``interactiveLogin``, ``tokenCallbacks``, ...).
    """

    server: ServerConfig = Field(default_factory=ServerConfig)

    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    interactive_login: bool = Field(
        default=False,
        validation_alias=AliasChoices("interactive_login", "interactiveLogin"),
        description="Render a login form at the authorization endpoint"
    )

    end_session_path: str = Field(
        default="endsession",
        validation_alias=AliasChoices("end_session_path", "endSessionPath"),
        description="Path below the issuer serving end-session requests"
    )

    rotate_refresh_tokens: bool = Field(
        default=True,
        validation_alias=AliasChoices("rotate_refresh_tokens", "rotateRefreshTokens")
    )

    token_callbacks: List[TokenCallbackConfig] = Field(
        default_factory=list,
        validation_alias=AliasChoices("token_callbacks", "tokenCallbacks")
    )

    model_config = ConfigDict(use_enum_values=True)

    def static_token_callbacks(self) -> List[TokenCallback]:
        return [c.to_callback() for c in self.token_callbacks]


class ConfigManager:
    """
    Manages mock OAuth2 server configuration loading and validation.

    Configuration precedence (highest to lowest):
    1. CLI arguments
    2. Environment variables (MOCK_OAUTH2_*)
    3. Inline JSON configuration (MOCK_OAUTH2_CONFIG_JSON)
    4. Configuration file (YAML/JSON)
    5. Defaults
    """

    def load(
        self,
        config_file: Optional[str] = None,
        cli_overrides: Optional[Dict[str, Any]] = None
    ) -> MockOAuth2Config:
        """
        Load and validate configuration from multiple sources.

        Args:
            config_file: Path to configuration file (YAML or JSON)
            cli_overrides: Dictionary of CLI argument overrides

        Returns:
            Validated MockOAuth2Config instance

        Raises:
            ValidationError: If configuration is invalid
            FileNotFoundError: If specified config file doesn't exist
        """
        logger.info("Loading mock OAuth2 server configuration")

        config_dict: Dict[str, Any] = {}

        if config_file:
            config_dict = self._load_from_file(config_file)
            logger.info(f"Loaded configuration from file: {config_file}")

        if inline_json := os.getenv("MOCK_OAUTH2_CONFIG_JSON"):
            config_dict = self._merge_configs(config_dict, json.loads(inline_json))
            logger.info("Applied inline JSON configuration from MOCK_OAUTH2_CONFIG_JSON")

        env_config = self._load_from_env()
        config_dict = self._merge_configs(config_dict, env_config)
        if env_config:
            logger.info(f"Applied {len(env_config)} environment variable overrides")

        if cli_overrides:
            config_dict = self._merge_configs(config_dict, cli_overrides)
            logger.info(f"Applied {len(cli_overrides)} CLI argument overrides")

        try:
            config = MockOAuth2Config(**config_dict)
            logger.info("Configuration validated successfully")
            self._log_configuration(config)
            return config
        except ValidationError as e:
            logger.error(f"Configuration validation failed: {e}")
            raise

    def _load_from_file(self, file_path: str) -> Dict[str, Any]:
        """Load configuration from YAML or JSON file."""
        path = Path(file_path)

        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {file_path}")

        with open(path, 'r') as f:
            if path.suffix in ['.yaml', '.yml']:
                return yaml.safe_load(f) or {}
            elif path.suffix == '.json':
                return json.load(f)
            else:
                raise ValueError(f"Unsupported config file format: {path.suffix}")

    def _load_from_env(self) -> Dict[str, Any]:
        """Load configuration from environment variables."""
        config: Dict[str, Any] = {}

        if host := os.getenv("MOCK_OAUTH2_HOST"):
            config.setdefault("server", {})["host"] = host
        if port := os.getenv("MOCK_OAUTH2_PORT"):
            config.setdefault("server", {})["port"] = int(port)

        if log_level := os.getenv("MOCK_OAUTH2_LOG_LEVEL"):
            config.setdefault("logging", {})["level"] = log_level.upper()
        if log_file := os.getenv("MOCK_OAUTH2_LOG_FILE"):
            config.setdefault("logging", {})["file"] = log_file

        if interactive := os.getenv("MOCK_OAUTH2_INTERACTIVE_LOGIN"):
            config["interactive_login"] = interactive.lower() in ['true', '1', 'yes']

        return config

    def _merge_configs(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two configuration dictionaries."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_configs(result[key], value)
            else:
                result[key] = value

        return result

    def _log_configuration(self, config: MockOAuth2Config) -> None:
        logger.info(f"Active configuration: {json.dumps(config.model_dump(), indent=2)}")
