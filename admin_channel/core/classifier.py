"""Fallback intent classifier for the admin channel.

When the fast matcher does not recognize a message, the orchestrator asks an
LLM to classify it. This module wraps the OpenAI call behind a small
``ClassifierService`` interface and validates whatever comes back: the raw
text is scanned for the first ``{`` and the last ``}``, that span is parsed
as JSON, and the object must carry a string ``intent``. Anything else is a
``ClassificationError``.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence

from openai import AsyncOpenAI
from pydantic import BaseModel

from admin_channel.agents.fast_matcher import IntentMatch
from admin_channel.config.limits import CLASSIFIER_HISTORY_TURNS, CLASSIFIER_TIMEOUT_SECONDS
from admin_channel.core.errors import ClassificationError, ExternalOperationError
from admin_channel.models.intents import AdminIntent
from admin_channel.models.state import CallerContext, HistoryEntry
from admin_channel.utils.timeouts import with_timeout


logger = logging.getLogger("admin_channel.classifier")


class LLMConfig(BaseModel):
    """Configuration for the classifier LLM client."""

    model: str = "gpt-4o-mini"
    max_tokens: int = 300
    temperature: float = 0.0
    request_timeout: float = CLASSIFIER_TIMEOUT_SECONDS


class ClassifierService(Protocol):
    async def classify(self, prompt: str, history: Sequence[HistoryEntry], text: str) -> str:
        """Return the raw model response for ``text``."""


def _get_client(api_key: Optional[str]) -> AsyncOpenAI:
    if not api_key:
        logger.error("OPENAI_API_KEY is not set; classifier calls will fail")
        raise RuntimeError("OPENAI_API_KEY is not set")
    return AsyncOpenAI(api_key=api_key)


async def call_llm(
    messages: List[Dict[str, Any]],
    *,
    api_key: Optional[str],
    config: Optional[LLMConfig] = None,
) -> Dict[str, Any]:
    """Call the chat model.

    Returns ``{"type": "message", "content": str}`` or
    ``{"type": "error", "error": str}``; never raises.
    """

    cfg = config or LLMConfig()

    try:
        client = _get_client(api_key)
    except RuntimeError as exc:
        return {"type": "error", "error": str(exc)}

    try:
        response = await client.chat.completions.create(
            model=cfg.model,
            messages=messages,
            max_tokens=cfg.max_tokens,
            temperature=cfg.temperature,
            timeout=cfg.request_timeout,
        )
    except Exception as exc:  # noqa: BLE001
        logger.error("Error while calling OpenAI chat completion: %r", exc)
        return {"type": "error", "error": "LLM_CALL_FAILED"}

    if not response or not getattr(response, "choices", None):
        logger.warning("Empty response from LLM")
        return {"type": "error", "error": "EMPTY_RESPONSE"}

    content = response.choices[0].message.content or ""
    if not isinstance(content, str):
        content = str(content)

    return {"type": "message", "content": content}


class OpenAIClassifierService:
    """``ClassifierService`` backed by the OpenAI chat completions API."""

    def __init__(self, api_key: Optional[str], config: Optional[LLMConfig] = None) -> None:
        self._api_key = api_key
        self._config = config or LLMConfig()

    async def classify(self, prompt: str, history: Sequence[HistoryEntry], text: str) -> str:
        messages: List[Dict[str, Any]] = [{"role": "system", "content": prompt}]
        for entry in history:
            role = entry.role if entry.role in {"user", "assistant"} else "user"
            messages.append({"role": role, "content": entry.content})
        messages.append({"role": "user", "content": text})

        result = await call_llm(messages, api_key=self._api_key, config=self._config)
        if result.get("type") != "message":
            raise ClassificationError(f"classifier call failed: {result.get('error')}")
        return str(result.get("content") or "")


def extract_json_object(raw: str) -> Dict[str, Any]:
    """Parse the span between the first ``{`` and the last ``}`` of ``raw``.

    Tolerates prose around the payload ("Claro, aquí está: {...}").
    """

    if not isinstance(raw, str):
        raise ClassificationError("classifier response is not text")

    start = raw.find("{")
    end = raw.rfind("}")
    if start == -1 or end == -1 or end < start:
        raise ClassificationError("no JSON object in classifier response")

    try:
        parsed = json.loads(raw[start : end + 1])
    except ValueError as exc:
        raise ClassificationError("classifier response is not valid JSON") from exc

    if not isinstance(parsed, dict):
        raise ClassificationError("classifier JSON is not an object")
    return parsed


def _coerce_confidence(value: Any) -> float:
    # Absent or non-numeric confidence counts as no confidence at all.
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    if value < 0.0:
        return 0.0
    if value > 1.0:
        return 1.0
    return float(value)


def parse_classification(raw: str) -> IntentMatch:
    """Validate a raw classifier response into an ``IntentMatch``."""

    payload = extract_json_object(raw)

    intent_raw = payload.get("intent")
    if not isinstance(intent_raw, str) or not intent_raw.strip():
        raise ClassificationError("classifier JSON has no string 'intent'")

    intent = AdminIntent.parse(intent_raw)
    if intent is AdminIntent.UNKNOWN and intent_raw.strip().lower() != AdminIntent.UNKNOWN.value:
        logger.warning("Classifier returned unrecognized intent %r", intent_raw)

    entities = payload.get("entities")
    reasoning = payload.get("reasoning")
    return IntentMatch(
        intent=intent,
        confidence=_coerce_confidence(payload.get("confidence")),
        entities=entities if isinstance(entities, dict) else {},
        reasoning=reasoning if isinstance(reasoning, str) else None,
    )


def build_system_prompt(caller: CallerContext) -> str:
    """System prompt listing the closed intent set for the classifier."""

    intents = "\n".join(f"- {intent.value}" for intent in AdminIntent)
    business = caller.business_name or "el negocio"
    return (
        f"Eres el asistente administrativo de {business} (vertical: {caller.vertical}). "
        "Clasifica el último mensaje del operador en exactamente una de estas intenciones:\n"
        f"{intents}\n\n"
        "Extrae entidades relevantes (serviceName, price, day, openTime, closeTime, "
        "discount, staffName, period) cuando aparezcan.\n"
        "Responde SOLO con JSON: "
        '{"intent": "<intención>", "confidence": <0..1>, "entities": {...}, "reasoning": "<breve>"}'
    )


class FallbackClassifier:
    """Validating, time-bounded adapter over a ``ClassifierService``."""

    def __init__(
        self,
        service: ClassifierService,
        *,
        timeout_seconds: float = CLASSIFIER_TIMEOUT_SECONDS,
        history_turns: int = CLASSIFIER_HISTORY_TURNS,
    ) -> None:
        self._service = service
        self._timeout = timeout_seconds
        self._history_turns = history_turns

    async def classify(
        self,
        system_prompt: str,
        recent_history: Sequence[HistoryEntry],
        text: str,
    ) -> IntentMatch:
        """Classify ``text``; raises ``ClassificationError`` on any failure."""

        history = list(recent_history)[-self._history_turns :] if self._history_turns > 0 else []

        try:
            raw = await with_timeout(
                self._service.classify(system_prompt, history, text),
                self._timeout,
                "Intent classification",
            )
        except ClassificationError:
            raise
        except ExternalOperationError as exc:
            raise ClassificationError(str(exc)) from exc
        except Exception as exc:  # noqa: BLE001
            logger.error("Classifier service raised: %r", exc)
            raise ClassificationError("classifier call failed") from exc

        return parse_classification(raw)
