"""repo_rag.generation.llm_interface

Interface and factory for the external synthesis service.

The ask flow hands one assembled prompt to a text-generation backend and
receives generated text. This module defines the small provider-agnostic
:class:`BaseLLM` abstraction and an implementation backed by LangChain's
``ChatOpenAI``, which reaches any OpenAI-compatible endpoint, including
Gemini's.

Classes
-------
BaseLLM
    Abstract interface specifying the API used by the ask flow.
OpenAIChatLikeLLM
    Chat completions over an OpenAI-compatible HTTP API via LangChain.

Functions
---------
create_llm
    Construct an LLM implementation from a configuration mapping.
"""

from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional
import logging
import warnings

from langchain_core.callbacks import BaseCallbackHandler
from langchain_openai import ChatOpenAI

from repo_rag.common.errors import UpstreamServiceError

logger = logging.getLogger(__name__)

GEMINI_OPENAI_BASE = "https://generativelanguage.googleapis.com/v1beta/openai/"
DEFAULT_MODEL_NAME = "gemini-1.5-flash"


def _is_gemini_openai_compat(api_base: str | None) -> bool:
    """Return ``True`` when the API base points to Gemini's OpenAI-compatible endpoint."""
    if not api_base:
        return False
    base = api_base.lower()
    return "generativelanguage.googleapis.com" in base and "/openai" in base


def _sanitize_openai_kwargs(
    api_base: str | None,
    kwargs: dict[str, Any],
    *,
    context: str,
) -> dict[str, Any]:
    """Drop provider-incompatible OpenAI kwargs for known OpenAI-compatible backends."""
    sanitized = dict(kwargs)

    if _is_gemini_openai_compat(api_base):
        unsupported_keys = {"frequency_penalty", "presence_penalty"}
        removed = sorted(k for k in unsupported_keys if k in sanitized)
        for key in removed:
            sanitized.pop(key, None)
        if removed:
            warnings.warn(
                "Dropping unsupported Gemini OpenAI-compatible params "
                f"during {context}: {', '.join(removed)}",
                UserWarning,
            )

    return sanitized


class BaseLLM(ABC):
    """Abstract interface for LLM text generation."""

    @classmethod
    @abstractmethod
    def from_config_dict(
            cls,
            config: dict,
            callback_manager: BaseCallbackHandler = None
        ) -> "BaseLLM":
        """Create an LLM instance from a configuration mapping.

        Raises
        ------
        ValueError
            If required configuration keys are missing or invalid.
        """

    @abstractmethod
    def get_llm(self) -> Any:
        """Return the underlying LangChain model object."""

    @abstractmethod
    def generate(self, prompt: str, **kwargs) -> str:
        """Generate text for a single prompt.

        Raises
        ------
        UpstreamServiceError
            If the backend call fails.
        """


class OpenAIChatLikeLLM(BaseLLM):
    """LLM interface using an OpenAI-compatible Chat Completions API via LangChain.

    Parameters
    ----------
    model_name : str
        Model identifier (e.g., ``"gemini-1.5-flash"``).
    api_base : str
        Base URL for the OpenAI-compatible API endpoint.
    api_key : str or None, optional
        API key value.
    timeout : float, optional
        Per-request timeout in seconds.
    max_retries : int, optional
        Bounded retries performed by the client for transient failures.
    callback_manager : BaseCallbackHandler, optional
        Optional callback handler for logging/telemetry/streaming.
    **model_kwargs : Any
        Additional keyword arguments forwarded to ``ChatOpenAI``
        (e.g., ``temperature``, ``max_tokens``).
    """

    def __init__(
        self,
        model_name: str,
        api_base: str,
        api_key: Optional[str] = None,
        *,
        timeout: float = 60.0,
        max_retries: int = 2,
        callback_manager: BaseCallbackHandler = None,
        **model_kwargs: Any,
    ):
        if not model_name:
            raise ValueError("OpenAIChatLikeLLM requires a model_name.")
        if not api_base:
            raise ValueError("OpenAIChatLikeLLM requires an api_base.")

        self.model_name = model_name
        self.api_base = api_base
        model_kwargs = _sanitize_openai_kwargs(api_base, model_kwargs, context="model init")

        self.llm = ChatOpenAI(
            model=model_name,
            base_url=api_base,
            api_key=api_key or "fake",
            timeout=timeout,
            max_retries=max_retries,
            callbacks=[callback_manager] if callback_manager else None,
            **model_kwargs,
        )

    @classmethod
    def from_config_dict(
        cls,
        config: dict,
        callback_manager: BaseCallbackHandler = None,
    ) -> "OpenAIChatLikeLLM":
        """Create an OpenAI-compatible chat LLM from a mapping.

        Recognised keys are ``model_name``, ``api_base``, ``api_key``,
        ``timeout``, ``max_retries`` and ``model_kwargs``. ``api_base``
        defaults to Gemini's OpenAI-compatible endpoint.
        """
        return cls(
            model_name=config.get('model_name') or DEFAULT_MODEL_NAME,
            api_base=config.get('api_base') or GEMINI_OPENAI_BASE,
            api_key=config.get('api_key'),
            timeout=float(config.get('timeout', 60.0)),
            max_retries=int(config.get('max_retries', 2)),
            callback_manager=callback_manager,
            **(config.get('model_kwargs') or {}),
        )

    def get_llm(self) -> Any:
        return self.llm

    def generate(self, prompt: str, **kwargs) -> str:
        """Generate text for a single prompt."""
        run_kwargs = _sanitize_openai_kwargs(self.api_base, kwargs, context="generation")

        try:
            response = self.llm.invoke(prompt, **run_kwargs)
        except Exception as e:
            logger.error("Synthesis call to %s failed: %s", self.model_name, e)
            raise UpstreamServiceError(
                "synthesis", f"{type(e).__name__}: {e}", getattr(e, "status_code", None)
            ) from e

        content = response.content if hasattr(response, "content") else response
        if not isinstance(content, str):
            raise UpstreamServiceError("synthesis", f"Malformed response content: {type(content).__name__}")
        return content


# ----------------- Factory helpers -----------------

def _get_llm_kind(cfg: Mapping[str, Any]) -> str:
    for key in ("kind", "type", "provider", "backend", "impl"):
        val = cfg.get(key)
        if isinstance(val, str) and val.strip():
            return val.strip()
    return ""


def _normalize_llm_kind(kind: str) -> str:
    """Normalise an LLM kind string to a registry key.

    CamelCase becomes snake_case, hyphens and spaces become underscores, and
    the OpenAI-chat spellings collapse to ``"openai_chat"``.
    """
    k = kind.strip()
    if not k:
        return ""

    out: list[str] = []
    prev = ""
    for ch in k:
        if prev and prev.islower() and ch.isupper():
            out.append("_")
        out.append(ch)
        prev = ch

    k2 = "".join(out).replace("-", "_").replace(" ", "_")
    while "__" in k2:
        k2 = k2.replace("__", "_")
    k2 = k2.lower()

    for alias in ("chat_openai", "chatopenai", "open_ai_chat_like", "openai_chat_like", "openai_chatlike"):
        k2 = k2.replace(alias, "openai_chat")

    return k2


def create_llm(config: dict, callback_manager: Optional[BaseCallbackHandler] = None) -> BaseLLM:
    """Create an LLM implementation from a configuration mapping.

    The implementation is selected by one of ``kind``, ``type``, ``provider``,
    ``backend`` or ``impl`` and defaults to :class:`OpenAIChatLikeLLM`.
    ``gemini`` is accepted as an alias that targets Gemini's
    OpenAI-compatible endpoint.

    Raises
    ------
    TypeError
        If ``config`` is not a mapping.
    ValueError
        If the discriminator selects an unsupported implementation.
    """

    if not isinstance(config, Mapping):
        raise TypeError(f"create_llm expected a mapping/dict, got {type(config)}")

    kind_raw = _get_llm_kind(config)
    kind = _normalize_llm_kind(kind_raw)

    registry: dict[str, type[BaseLLM]] = {
        "openai_chat": OpenAIChatLikeLLM,
        "openai": OpenAIChatLikeLLM,
        "gemini": OpenAIChatLikeLLM,
    }

    cls = registry.get(kind) if kind else OpenAIChatLikeLLM
    if cls is None:
        raise ValueError(
            f"Unknown LLM kind '{kind_raw}' (normalized to '{kind}'). Supported kinds: {sorted(registry.keys())}."
        )

    return cls.from_config_dict(dict(config), callback_manager=callback_manager)


__all__ = [
    "BaseLLM",
    "OpenAIChatLikeLLM",
    "create_llm",
]
