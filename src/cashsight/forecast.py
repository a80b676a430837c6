# CashSight - Cash Flow & Working Capital engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Forecast prompt building and AI reply handling.

The working-capital figures are handed to an external AI evaluator (see
``ai_client.py``) as:

- a deterministic natural-language prompt embedding six figures formatted
  with two decimals,
- a fixed JSON schema describing the reply the evaluator must return:

      {
        "assessment": str,
        "recommendations": [
          {"action": str, "impact": str, "priority": "high"|"medium"|"low"}
        ],
        "risk_level": "low"|"medium"|"high"
      }

The reply is untrusted: ``parse_forecast_reply`` checks its shape and raises
ExternalCollaboratorError when it does not match. ``build_report`` then
merges figures, health status and analysis into the report view-model
consumed by the CLI and the Web UI.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from .errors import ExternalCollaboratorError
from .working_capital import WorkingCapitalSnapshot, classify_health

PRIORITIES = ("high", "medium", "low")
RISK_LEVELS = ("low", "medium", "high")

RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "assessment": {"type": "string"},
        "recommendations": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "action": {"type": "string"},
                    "impact": {"type": "string"},
                    "priority": {"type": "string", "enum": list(PRIORITIES)},
                },
            },
        },
        "risk_level": {"type": "string", "enum": list(RISK_LEVELS)},
    },
}


@dataclass(frozen=True)
class ForecastRequest:
    """Prompt and reply contract handed to a PromptEvaluator."""

    prompt_text: str
    response_schema: dict[str, Any]


@dataclass(frozen=True)
class Recommendation:
    action: str
    impact: str
    priority: str


@dataclass(frozen=True)
class ForecastAnalysis:
    """Shape-checked AI reply."""

    assessment: str
    risk_level: str
    recommendations: list[Recommendation] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "assessment": self.assessment,
            "risk_level": self.risk_level,
            "recommendations": [
                {"action": r.action, "impact": r.impact, "priority": r.priority}
                for r in self.recommendations
            ],
        }


def _money(value, currency: str) -> str:
    return f"{currency} {value:.2f}"


def build_forecast_request(
    snapshot: WorkingCapitalSnapshot, currency: str = "BRL"
) -> ForecastRequest:
    """
    Build the prompt and response schema for a working-capital snapshot.

    The prompt only depends on the snapshot and the currency code, so the
    same snapshot always yields the same text.
    """
    lines = [
        "Analyze the following working capital situation:",
        f"- Current working capital: {_money(snapshot.working_capital, currency)}",
        "- Accounts receivable (30 days): "
        f"{_money(snapshot.current_receivables, currency)}",
        f"- Accounts payable (30 days): {_money(snapshot.current_payables, currency)}",
        "- Average monthly expenses: "
        f"{_money(snapshot.avg_monthly_expenses, currency)}",
        "- Recommended working capital: "
        f"{_money(snapshot.recommended_working_capital, currency)}",
        f"- Deficit/Surplus: {_money(snapshot.gap, currency)}",
        "",
        "Provide specific recommendations to improve working capital management.",
    ]
    return ForecastRequest(
        prompt_text="\n".join(lines),
        response_schema=json.loads(json.dumps(RESPONSE_SCHEMA)),
    )


def _require_str(data: dict[str, Any], key: str, where: str) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise ExternalCollaboratorError(
            f"AI reply field '{where}{key}' must be a string, got {type(value).__name__}."
        )
    return value


def parse_forecast_reply(raw: Union[str, bytes, dict[str, Any]]) -> ForecastAnalysis:
    """
    Shape-check an AI reply against RESPONSE_SCHEMA.

    Args:
        raw: Either the decoded JSON object or its text form.

    Returns:
        A ForecastAnalysis.

    Raises:
        ExternalCollaboratorError: if the reply is not JSON, not an object,
            or any field is missing, mistyped or outside its enum.
    """
    if isinstance(raw, (str, bytes)):
        try:
            data = json.loads(raw)
        except ValueError as exc:
            raise ExternalCollaboratorError("AI reply is not valid JSON.") from exc
    else:
        data = raw

    if not isinstance(data, dict):
        raise ExternalCollaboratorError("AI reply must be a JSON object.")

    assessment = _require_str(data, "assessment", "")

    risk_level = _require_str(data, "risk_level", "")
    if risk_level not in RISK_LEVELS:
        raise ExternalCollaboratorError(f"Unknown risk_level in AI reply: {risk_level!r}")

    items = data.get("recommendations")
    if not isinstance(items, list):
        raise ExternalCollaboratorError("AI reply field 'recommendations' must be a list.")

    recommendations: list[Recommendation] = []
    for index, item in enumerate(items):
        where = f"recommendations[{index}]."
        if not isinstance(item, dict):
            raise ExternalCollaboratorError(f"AI reply item '{where[:-1]}' must be an object.")
        priority = _require_str(item, "priority", where)
        if priority not in PRIORITIES:
            raise ExternalCollaboratorError(
                f"Unknown priority in AI reply: {priority!r}"
            )
        recommendations.append(
            Recommendation(
                action=_require_str(item, "action", where),
                impact=_require_str(item, "impact", where),
                priority=priority,
            )
        )

    return ForecastAnalysis(
        assessment=assessment,
        risk_level=risk_level,
        recommendations=recommendations,
    )


def build_report(
    snapshot: WorkingCapitalSnapshot,
    analysis: Optional[ForecastAnalysis] = None,
) -> dict[str, Any]:
    """Merge figures, health status and optional AI analysis into one dict."""
    return {
        "figures": snapshot.as_dict(),
        "health": classify_health(snapshot),
        "analysis": analysis.as_dict() if analysis is not None else None,
    }
