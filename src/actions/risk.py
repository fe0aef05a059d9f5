"""RiskCalculation action: probability x impact scored against a fixed 5x5 matrix."""

from typing import Any

from src.actions.base import ActionHandler, field_text
from src.rules.types import RuleActionSpec, WorkItemContext

DEFAULT_PROBABILITY_FIELD = "Microsoft.VSTS.Common.Risk"
DEFAULT_IMPACT_FIELD = "Microsoft.VSTS.Common.Severity"
DEFAULT_SCORE_FIELD = "Custom.RiskScore"
DEFAULT_LEVEL_FIELD = "Custom.RiskLevel"

# Rows: probability 1..5, columns: impact 1..5.
RISK_MATRIX = (
    ("very low", "low", "low", "low", "medium"),
    ("low", "low", "low", "medium", "medium"),
    ("low", "low", "medium", "medium", "high"),
    ("low", "medium", "medium", "high", "high"),
    ("medium", "medium", "high", "high", "very high"),
)


def parse_risk_value(text: str) -> int | None:
    """Parse "<1-5> - <label>" (or a bare digit) into its rank."""
    head = str(text or "").strip().split(" ", 1)[0]
    try:
        value = int(head)
    except ValueError:
        return None
    return value if 1 <= value <= 5 else None


def risk_level(probability: int, impact: int) -> str:
    return RISK_MATRIX[probability - 1][impact - 1]


class RiskCalculationHandler(ActionHandler):
    action_name = "RiskCalculation"

    def execute(self, context: WorkItemContext, action: RuleActionSpec) -> dict[str, Any]:
        probability_text = field_text(
            context, action.param("ProbabilityField", DEFAULT_PROBABILITY_FIELD)
        )
        impact_text = field_text(context, action.param("ImpactField", DEFAULT_IMPACT_FIELD))
        probability = parse_risk_value(probability_text)
        impact = parse_risk_value(impact_text)
        if probability is None or impact is None:
            self.logger.warning(
                "RiskCalculation skipped for work item %s: unparseable inputs %r / %r.",
                context.id,
                probability_text,
                impact_text,
            )
            return {}
        score = probability * impact
        level = risk_level(probability, impact)
        self.logger.info(
            "Risk for work item %s: %s x %s = %s (%s).", context.id, probability, impact, score, level
        )
        return self.write_fields(
            context,
            {
                action.param("ScoreField", DEFAULT_SCORE_FIELD): str(score),
                action.param("LevelField", DEFAULT_LEVEL_FIELD): level,
            },
        )
