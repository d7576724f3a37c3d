"""Configuration management for the resumable chat client."""

from __future__ import annotations

import logging
import os
from typing import Any, cast

import yaml
from dotenv import load_dotenv

from resumechat.chat.models import ToolDefinition
from resumechat.errors import ConfigurationError

CONFIG_ENV_VAR = "RESUMECHAT_CONFIG"


class Configuration:
    """YAML configuration with an optional user override file."""

    def __init__(self, config_path: str | None = None) -> None:
        """Initialize configuration from YAML and environment variables.

        Args:
            config_path: Optional user YAML file deep-merged over the packaged
                defaults. Falls back to the RESUMECHAT_CONFIG environment
                variable.
        """
        self.load_env()  # Load .env for API keys
        self._default_config = self._load_yaml_config(os.path.join(os.path.dirname(__file__), "config.yaml"))

        self.config_path = config_path or os.getenv(CONFIG_ENV_VAR)
        self._current_config: dict[str, Any] = self._default_config
        if self.config_path:
            override = self._load_yaml_config(self.config_path)
            self._current_config = self._deep_merge(self._default_config, override)
            logging.info("Loaded configuration overrides from %s", self.config_path)

    @staticmethod
    def load_env() -> None:
        """Load environment variables from .env file."""
        load_dotenv()

    @staticmethod
    def _load_yaml_config(config_path: str) -> dict[str, Any]:
        """Load configuration from a YAML file."""
        try:
            with open(config_path) as file:
                config = yaml.safe_load(file)
        except OSError as e:
            raise ConfigurationError(f"Cannot read configuration file {config_path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

        if config is None:
            return {}
        if not isinstance(config, dict):
            raise ConfigurationError(f"Configuration file {config_path} must contain a dictionary")
        return cast(dict[str, Any], config)

    def _deep_merge(self, base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
        """Deep merge two dictionaries, with override taking precedence."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(cast(dict[str, Any], result[key]), cast(dict[str, Any], value))
            else:
                result[key] = value

        return result

    def _get_current_config(self) -> dict[str, Any]:
        """Get current configuration (cached, no file system access)."""
        return self._current_config

    def get_config_dict(self) -> dict[str, Any]:
        """Get the full configuration dictionary."""
        return self._get_current_config()

    @property
    def active_provider(self) -> str:
        return self._get_current_config().get("llm", {}).get("active", "openai")

    @property
    def llm_api_key(self) -> str:
        """Get the API key for the active LLM provider.

        Returns:
            The API key as a string.

        Raises:
            ConfigurationError: If the API key is not found in environment variables.
        """
        active_provider = self.active_provider

        # Map provider names to environment variable names
        provider_key_map = {
            "openai": "OPENAI_API_KEY",
            "groq": "GROQ_API_KEY",
            "openrouter": "OPENROUTER_API_KEY",
            "gemini": "GEMINI_API_KEY",
        }

        env_key = self.get_llm_config().get("api_key_env") or provider_key_map.get(active_provider)
        if not env_key:
            raise ConfigurationError(f"Unknown provider '{active_provider}' - no API key mapping found")

        api_key = os.getenv(env_key)
        if not api_key:
            raise ConfigurationError(
                f"API key '{env_key}' not found in environment variables for provider '{active_provider}'"
            )

        return api_key

    def get_llm_config(self) -> dict[str, Any]:
        """Get active LLM provider configuration from YAML.

        Returns:
            Active LLM provider configuration dictionary.
        """
        llm_config = self._get_current_config().get("llm", {})
        active_provider = llm_config.get("active", "openai")
        providers = llm_config.get("providers", {})

        if active_provider not in providers:
            raise ConfigurationError(f"Active provider '{active_provider}' not found in providers config")

        provider_config = providers[active_provider]
        for key in ("base_url", "model"):
            if not provider_config.get(key):
                raise ConfigurationError(f"Provider '{active_provider}' is missing '{key}'")

        return provider_config

    def get_logging_config(self) -> dict[str, Any]:
        """Get logging configuration from YAML."""
        return self._get_current_config().get("logging", {})

    def get_chat_config(self) -> dict[str, Any]:
        """Get chat configuration from YAML."""
        return self._get_current_config().get("chat", {})

    def get_system_prompt(self) -> str | None:
        prompt = self.get_chat_config().get("system_prompt")
        return prompt or None

    def get_tool_definitions(self) -> list[ToolDefinition]:
        """Get the tool definitions sent with every completion request.

        Raises:
            ConfigurationError: If a tool entry does not match the function schema.
        """
        raw_tools = self.get_chat_config().get("tools") or []
        tools: list[ToolDefinition] = []
        for raw in raw_tools:
            try:
                tools.append(ToolDefinition.model_validate({"type": "function", "function": raw}))
            except ValueError as e:
                raise ConfigurationError(f"Invalid tool definition {raw!r}: {e}") from e
        return tools

    def get_storage_config(self) -> dict[str, Any]:
        """Get transcript storage configuration from YAML.

        Returns:
            Dictionary with transcript_path, pending_call_path and tool_result_path.
        """
        storage = self._get_current_config().get("storage", {})
        return {
            "transcript_path": storage.get("transcript_path", "conversation_log.jsonl"),
            "pending_call_path": storage.get("pending_call_path", "tool_call.json"),
            "tool_result_path": storage.get("tool_result_path", "tool_result.txt"),
        }

    def get_connection_pool_config(self) -> dict[str, Any]:
        """Get HTTP connection pool configuration with validated defaults."""
        pool = self._get_current_config().get("llm", {}).get("connection_pool", {})

        result = {
            "max_connections": pool.get("max_connections", 10),
            "max_keepalive_connections": pool.get("max_keepalive_connections", 5),
            "keepalive_expiry_seconds": pool.get("keepalive_expiry_seconds", 30.0),
            "request_timeout_seconds": pool.get("request_timeout_seconds", 60.0),
        }

        if result["max_connections"] < 1:
            raise ConfigurationError("max_connections must be at least 1")
        if result["request_timeout_seconds"] <= 0:
            raise ConfigurationError("request_timeout_seconds must be positive")

        return result

    def get_connection_logging_config(self) -> dict[str, Any]:
        """Get connection logging flags for the LLM client."""
        module_config = self.get_logging_config().get("modules", {}).get("connection", {})
        features = module_config.get("enable_features", {})
        return {
            "enabled": bool(module_config.get("enabled", False)),
            "connection_events": bool(features.get("connection_events", False)),
            "http_requests": bool(features.get("http_requests", False)),
        }
