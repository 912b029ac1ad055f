"""
LLM Factory

Factory pattern for creating LLM provider instances based on configuration.
Supports registration of custom providers and configuration validation.
"""

from typing import Any

from .base import LLMError, LLMProvider

# Type alias for provider classes
ProviderClass = type[LLMProvider]


class LLMFactory:
    """
    Factory for creating LLM provider instances.

    Supports built-in providers (claude, gemini, ollama, openai) and custom
    provider registration for extensibility.

    Example:
        # Create a Claude provider
        llm = LLMFactory.create("claude", api_key="sk-...")

        # Create with full configuration
        llm = LLMFactory.create(
            provider="gemini",
            model="gemini-2.5-pro",
            api_key="AIza...",
            system_prompt="You are a research assistant.",
        )

        # Register a custom provider
        LLMFactory.register("custom", CustomProvider)
    """

    _providers: dict[str, ProviderClass] = {}

    _default_configs: dict[str, dict[str, Any]] = {
        "claude": {
            "max_tokens": 8192,
        },
        "gemini": {
            "max_tokens": 8192,
        },
        "openai": {
            "max_tokens": 4096,
        },
        "ollama": {
            "base_url": "http://localhost:11434",
        },
    }

    BUILT_IN = ["claude", "gemini", "ollama", "openai"]

    @classmethod
    def register(cls, name: str, provider_class: ProviderClass) -> None:
        """
        Register a provider class.

        Args:
            name: Provider name (e.g., "claude", "ollama")
            provider_class: Provider class to register
        """
        cls._providers[name.lower()] = provider_class

    @classmethod
    def unregister(cls, name: str) -> None:
        """Unregister a provider."""
        cls._providers.pop(name.lower(), None)

    @classmethod
    def create(
        cls,
        provider: str,
        api_key: str | None = None,
        model: str | None = None,
        **kwargs: Any
    ) -> LLMProvider:
        """
        Create an LLM provider instance.

        Args:
            provider: Provider name ("claude", "gemini", "ollama", ...)
            api_key: API key for authentication
            model: Model identifier (uses provider default if not specified)
            **kwargs: Additional provider-specific configuration

        Returns:
            LLMProvider instance

        Raises:
            ValueError: If provider is not supported
            LLMError: If provider creation fails
        """
        provider_name = provider.lower()

        config = cls._default_configs.get(provider_name, {}).copy()
        config.update({k: v for k, v in kwargs.items() if v is not None})

        if model:
            config["model"] = model

        provider_class = cls._get_provider_class(provider_name)

        try:
            instance = provider_class(api_key=api_key, **config)
            instance.validate_config()
            return instance
        except Exception as e:
            raise LLMError(
                f"Failed to create {provider_name} provider: {e}",
                provider=provider_name
            )

    @classmethod
    def _get_provider_class(cls, provider_name: str) -> ProviderClass:
        """
        Get the provider class for a provider name.

        Raises:
            ValueError: If provider is not supported
        """
        if provider_name in cls._providers:
            return cls._providers[provider_name]

        # Lazy import built-in providers
        if provider_name == "claude":
            from .providers.claude import ClaudeProvider
            cls._providers["claude"] = ClaudeProvider
            return ClaudeProvider
        elif provider_name == "gemini":
            from .providers.gemini import GeminiProvider
            cls._providers["gemini"] = GeminiProvider
            return GeminiProvider
        elif provider_name == "ollama":
            from .providers.ollama import OllamaProvider
            cls._providers["ollama"] = OllamaProvider
            return OllamaProvider
        elif provider_name == "openai":
            from .providers.openai import OpenAIProvider
            cls._providers["openai"] = OpenAIProvider
            return OpenAIProvider
        else:
            raise ValueError(
                f"Unknown provider: {provider_name}. "
                f"Supported: {cls.get_supported_providers()}"
            )

    @classmethod
    def get_supported_providers(cls) -> list[str]:
        """Get list of supported provider names."""
        return sorted(set(cls.BUILT_IN) | set(cls._providers))

    @classmethod
    def get_default_config(cls, provider: str) -> dict[str, Any]:
        """Get the default configuration for a provider."""
        return cls._default_configs.get(provider.lower(), {}).copy()
