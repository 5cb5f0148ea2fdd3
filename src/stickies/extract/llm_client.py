"""LiteLLM completion wrapper with API key validation.

All completion calls in the extraction engine route through this module.
Transport errors surface as ExtractionServiceError; malformed output is the
caller's concern and is never retried here.
"""

from __future__ import annotations

import os

import litellm

from stickies.errors import ExtractionServiceError

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True
litellm.set_verbose = False  # type: ignore[assignment]


# ------------------------------------------------------------------
# Provider → env var mapping for API key validation
# ------------------------------------------------------------------

_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "azure": "AZURE_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "groq": "GROQ_API_KEY",
    "ollama": None,  # Local, no key required
    "ollama_chat": None,
}

JSON_OBJECT = {"type": "json_object"}


def provider_of(model: str) -> str:
    return model.split("/")[0].lower() if "/" in model else "openai"


def validate_api_key(model: str) -> None:
    """Check that the required API key env var is set for *model*.

    Raises:
        EnvironmentError: If the required key is missing from environment.
    """
    provider = provider_of(model)
    env_var = _PROVIDER_ENV.get(provider, f"{provider.upper()}_API_KEY")

    if env_var is None:
        return

    if not os.getenv(env_var):
        raise EnvironmentError(
            f"API key not found for provider '{provider}'. "
            f"Set the {env_var} environment variable."
        )


def complete(
    model: str,
    messages: list[dict],
    *,
    temperature: float = 0.0,
    max_tokens: int | None = None,
    response_format: dict | None = None,
    timeout: float = 30.0,
    num_retries: int = 0,
) -> str:
    """Call litellm.completion() and return the first choice's content.

    Raises:
        ExtractionServiceError: The request failed or returned no content.
    """
    kwargs: dict = {
        "model": model,
        "messages": messages,
        "temperature": temperature,
        "timeout": timeout,
        "num_retries": num_retries,
    }
    if max_tokens is not None:
        kwargs["max_tokens"] = max_tokens
    if response_format is not None:
        kwargs["response_format"] = response_format

    try:
        response = litellm.completion(**kwargs)
    except Exception as exc:
        raise ExtractionServiceError(f"Language model request failed: {exc}") from exc

    content = response.choices[0].message.content
    if not content:
        raise ExtractionServiceError("No response from the language model.")
    return content
