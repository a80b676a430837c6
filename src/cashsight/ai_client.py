# CashSight - Cash Flow & Working Capital engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Prompt evaluators: the bridge between CashSight and an AI model.

A PromptEvaluator receives a ForecastRequest (prompt text + JSON schema) and
returns the decoded JSON object produced by the model. Two implementations
are provided and selected from configuration by ``make_prompt_evaluator``:

- MockPromptEvaluator: offline, deterministic reply computed from the
  figures embedded in the prompt. Used by default and in tests.
- LivePromptEvaluator: calls a Gemini-style ``generateContent`` REST
  endpoint with httpx and extracts the JSON object from the model text.

Evaluators never retry and never fall back to a default reply: transport
errors, non-2xx statuses and unreadable replies all surface as
ExternalCollaboratorError.
"""

import json
import logging
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional, Protocol

import httpx

from .errors import ExternalCollaboratorError
from .forecast import ForecastRequest

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_MODEL = "gemini-2.0-flash-lite"
PROVIDERS = ("mock", "live")

_FIGURE_LINE = re.compile(r"^- (?P<label>[^:]+): \S+ (?P<value>-?\d+(?:\.\d+)?)$")
_CODE_FENCE = re.compile(r"```(?:json)?")
_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


@dataclass(frozen=True)
class AIConfig:
    """
    Configuration of the prompt evaluator.

    Attributes
    ----------
    provider:
        "mock" (offline) or "live" (HTTP).
    endpoint:
        Base URL of the generative language API.
    model:
        Model name inserted in the request path.
    api_key_env:
        Name of the environment variable holding the API key.
    timeout:
        Request timeout in seconds.
    temperature:
        Sampling temperature sent with the request.
    """

    provider: str = "mock"
    endpoint: str = DEFAULT_ENDPOINT
    model: str = DEFAULT_MODEL
    api_key_env: str = "GEMINI_API_KEY"
    timeout: float = 30.0
    temperature: float = 0.2


class PromptEvaluator(Protocol):
    """Anything able to turn a ForecastRequest into a JSON object."""

    def evaluate(self, request: ForecastRequest) -> dict[str, Any]: ...


class MockPromptEvaluator:
    """
    Offline evaluator returning a reply consistent with the prompt figures.

    The risk level follows the same thresholds as the health status:
    low when working capital meets the recommendation, medium above 70% of
    it, high below.
    """

    def evaluate(self, request: ForecastRequest) -> dict[str, Any]:
        figures = {}
        for line in request.prompt_text.splitlines():
            match = _FIGURE_LINE.match(line.strip())
            if match:
                figures[match["label"].lower()] = Decimal(match["value"])

        wc = figures.get("current working capital", Decimal("0"))
        recommended = figures.get("recommended working capital", Decimal("0"))

        if wc >= recommended:
            risk = "low"
            assessment = "Working capital covers the recommended reserve."
            recommendations = [
                {
                    "action": "Invest part of the surplus in short-term deposits",
                    "impact": "Earns a return on idle cash",
                    "priority": "low",
                }
            ]
        elif wc >= recommended * Decimal("0.7"):
            risk = "medium"
            assessment = "Working capital is below the recommended reserve."
            recommendations = [
                {
                    "action": "Negotiate longer payment terms with suppliers",
                    "impact": "Reduces payables due in the next 30 days",
                    "priority": "medium",
                },
                {
                    "action": "Follow up on receivables due this month",
                    "impact": "Speeds up cash inflow",
                    "priority": "medium",
                },
            ]
        else:
            risk = "high"
            assessment = "Working capital is far below the recommended reserve."
            recommendations = [
                {
                    "action": "Postpone non-essential purchases",
                    "impact": "Protects the cash position",
                    "priority": "high",
                },
                {
                    "action": "Offer early-payment discounts to customers",
                    "impact": "Brings receivables forward",
                    "priority": "high",
                },
            ]

        return {
            "assessment": assessment,
            "recommendations": recommendations,
            "risk_level": risk,
        }


def extract_json_object(text: str) -> dict[str, Any]:
    """
    Decode the JSON object contained in a model answer.

    Markdown code fences are stripped first; if the remaining text is not
    pure JSON, the outermost ``{...}`` block is tried.
    """
    clean = _CODE_FENCE.sub("", text).strip()
    try:
        data = json.loads(clean)
    except ValueError:
        match = _JSON_OBJECT.search(clean)
        if not match:
            raise ExternalCollaboratorError("AI reply does not contain a JSON object.")
        try:
            data = json.loads(match.group(0))
        except ValueError as exc:
            raise ExternalCollaboratorError("AI reply is not valid JSON.") from exc

    if not isinstance(data, dict):
        raise ExternalCollaboratorError("AI reply must be a JSON object.")
    return data


class LivePromptEvaluator:
    """
    HTTP evaluator for a Gemini-style ``generateContent`` endpoint.

    Usage:
        with LivePromptEvaluator(config, api_key) as evaluator:
            reply = evaluator.evaluate(request)
    """

    def __init__(
        self,
        config: AIConfig,
        api_key: str,
        client: Optional[httpx.Client] = None,
    ):
        self.config = config
        self._api_key = api_key
        self._client = client or httpx.Client(timeout=httpx.Timeout(config.timeout))

    def __enter__(self) -> "LivePromptEvaluator":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self) -> None:
        self._client.close()

    @property
    def url(self) -> str:
        return f"{self.config.endpoint.rstrip('/')}/models/{self.config.model}:generateContent"

    def _payload(self, request: ForecastRequest) -> dict[str, Any]:
        text = (
            f"{request.prompt_text}\n\n"
            "Answer only with a JSON object matching this JSON schema:\n"
            f"{json.dumps(request.response_schema)}"
        )
        return {
            "contents": [{"role": "user", "parts": [{"text": text}]}],
            "generationConfig": {
                "responseMimeType": "application/json",
                "temperature": self.config.temperature,
            },
        }

    def evaluate(self, request: ForecastRequest) -> dict[str, Any]:
        logger.debug("POST %s", self.url)
        try:
            response = self._client.post(
                self.url,
                json=self._payload(request),
                headers={"x-goog-api-key": self._api_key},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.warning("AI service answered %s", exc.response.status_code)
            raise ExternalCollaboratorError(
                f"AI service returned HTTP {exc.response.status_code}."
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning("AI service unreachable: %s", exc)
            raise ExternalCollaboratorError(f"AI service unreachable: {exc}") from exc

        try:
            body = response.json()
            text = body["candidates"][0]["content"]["parts"][0]["text"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise ExternalCollaboratorError(
                "Unexpected response structure from AI service."
            ) from exc

        if not text or not str(text).strip():
            raise ExternalCollaboratorError("AI service returned an empty answer.")

        return extract_json_object(str(text))


def make_prompt_evaluator(
    config: AIConfig,
    environ: Optional[Mapping[str, str]] = None,
) -> PromptEvaluator:
    """
    Build the evaluator selected by ``config.provider``.

    Raises:
        ValueError: for an unknown provider.
        ExternalCollaboratorError: when the live provider is selected but
            the API key environment variable is not set.
    """
    if config.provider == "mock":
        return MockPromptEvaluator()

    if config.provider == "live":
        env = os.environ if environ is None else environ
        api_key = env.get(config.api_key_env, "")
        if not api_key:
            raise ExternalCollaboratorError(
                f"AI API key not configured (set {config.api_key_env})."
            )
        return LivePromptEvaluator(config, api_key)

    raise ValueError(
        f"Unknown AI provider: {config.provider!r}. Expected one of {PROVIDERS}."
    )
