"""Advisory generation: external chat model when configured, deterministic mock otherwise."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, replace
from typing import Any

from beacongate.advisory.citations import build_citations
from beacongate.advisory.input_builder import hash_advisory_input
from beacongate.advisory.mock import MOCK_MODEL, generate_mock_advisory
from beacongate.advisory.prompts import ADVISORY_SYSTEM_PROMPT, PROMPT_VERSION, build_user_message
from beacongate.llm.client import ChatMessage, ChatModel
from beacongate.logging import get_logger
from beacongate.models.advisory import Advisory, AdvisoryInput, AdvisoryValidationError, validate_advisory
from beacongate.utils.tags import extract_json_object

logger = get_logger(__name__)

RAW_TEXT_LIMIT = 2000


class AdvisoryGenerationError(RuntimeError):
    """The external model returned nothing usable."""


@dataclass(frozen=True)
class AdvisoryResult:
    """Everything an LLM run row records."""

    provider: str
    model: str
    temperature: float
    prompt_version: str
    input_hash: str
    advisory_text: str
    advisory: Advisory | None
    citations: dict[str, Any] | None
    error_message: str | None
    latency_ms: int | None

    @property
    def ok(self) -> bool:
        return self.advisory is not None


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


class AdvisoryGenerator:
    """Produce advisories for a snapshot input.

    With a chat model the external path runs first. Any failure on that path (transport, empty
    reply, unparseable JSON, schema violation) yields a failed result, and the mock result is
    appended after it so the reviewer always gets an advisory.
    """

    def __init__(self, chat_model: ChatModel | None = None, *, temperature: float = 0.2) -> None:
        self._chat = chat_model
        self._temperature = temperature

    @property
    def provider(self) -> str:
        return "openai" if self._chat is not None else "mock"

    def generate(self, data: AdvisoryInput) -> list[AdvisoryResult]:
        input_hash = hash_advisory_input(data)
        if self._chat is None:
            return [self.run_mock(data, input_hash)]

        result = self._run_external(self._chat, data, input_hash)
        if result.ok:
            return [result]
        logger.warning("External advisory failed, falling back to mock: %s", result.error_message)
        return [result, self.run_mock(data, input_hash)]

    def run_mock(self, data: AdvisoryInput, input_hash: str | None = None) -> AdvisoryResult:
        start = time.perf_counter()
        advisory = generate_mock_advisory(data)
        return AdvisoryResult(
            provider="mock",
            model=MOCK_MODEL,
            temperature=0.0,
            prompt_version=PROMPT_VERSION,
            input_hash=input_hash or hash_advisory_input(data),
            advisory_text=advisory.summary,
            advisory=advisory,
            citations=build_citations(data, advisory),
            error_message=None,
            latency_ms=_elapsed_ms(start),
        )

    def _run_external(self, chat: ChatModel, data: AdvisoryInput, input_hash: str) -> AdvisoryResult:
        failed = AdvisoryResult(
            provider="openai",
            model=chat.model,
            temperature=self._temperature,
            prompt_version=PROMPT_VERSION,
            input_hash=input_hash,
            advisory_text="",
            advisory=None,
            citations=None,
            error_message=None,
            latency_ms=None,
        )
        messages = [
            ChatMessage(role="system", content=ADVISORY_SYSTEM_PROMPT),
            ChatMessage(role="user", content=build_user_message(json.dumps(data.to_wire(), ensure_ascii=False))),
        ]
        start = time.perf_counter()
        raw = ""
        try:
            raw = chat.complete(messages, temperature=self._temperature, json_mode=True)
            if not raw.strip():
                raise AdvisoryGenerationError("Model response missing content")
            payload = extract_json_object(raw)
            if payload is None:
                raise AdvisoryGenerationError("Model response was not valid JSON")
            advisory = validate_advisory(payload)
        except AdvisoryValidationError as e:
            return replace(failed, advisory_text=raw[:RAW_TEXT_LIMIT], error_message=str(e), latency_ms=_elapsed_ms(start))
        except Exception as e:
            logger.exception("External advisory call failed")
            return replace(
                failed,
                advisory_text=raw[:RAW_TEXT_LIMIT],
                error_message=f"{type(e).__name__}: {e}",
                latency_ms=_elapsed_ms(start),
            )

        return replace(
            failed,
            advisory_text=advisory.summary,
            advisory=advisory,
            citations=build_citations(data, advisory),
            latency_ms=_elapsed_ms(start),
        )
