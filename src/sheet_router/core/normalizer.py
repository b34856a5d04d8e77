"""Repairs for sheet-mode model responses.

Models routinely misname actions or nest configuration under the wrong key.
``normalize_sheet_response`` runs a fixed cascade of repairs and records the
name of each one that fired.
"""

import copy
import re
from typing import Any, Dict, List, Optional, Tuple

from ..models.base import DataContext, SheetAction
from ..models.plan import NormalizedSheetResponse
from ..utils.logging import get_logger

logger = get_logger(__name__)

COLOR_MAP = {
    "green": "#00B050",
    "red": "#FF0000",
    "yellow": "#FFFF00",
    "orange": "#FFA500",
    "blue": "#0000FF",
    "purple": "#800080",
    "pink": "#FFC0CB",
    "grey": "#808080",
    "gray": "#808080",
    "white": "#FFFFFF",
    "black": "#000000",
}
DEFAULT_HIGHLIGHT = "#FFFF00"

CONDITIONAL_PHRASE_RE = re.compile(r"\bconditional\s*(format|formatting)\b", re.I)
CONDITIONAL_RULE_RE = re.compile(
    r"equals?\s+(?:['\"]([^'\"]+)['\"]|(\S+))\s+(?:(?:in|with)\s+)?(\w+)", re.I
)
MIN_MAX_PATTERNS = [
    re.compile(r"between\s+([\d,]+)\s+and\s+([\d,]+)", re.I),
    re.compile(r"from\s+([\d,]+)\s+to\s+([\d,]+)", re.I),
    re.compile(r"([\d,]+)\s*[-–]\s*([\d,]+)"),
]
FULL_COLUMN_RE = re.compile(r"^([A-Z]+):([A-Z]+)$", re.I)

Config = Dict[str, Any]


def extract_conditional_rules(command: str) -> List[Dict[str, Any]]:
    """Build conditional-format rules from "equals X in <color>" phrases."""
    rules = []
    for match in CONDITIONAL_RULE_RE.finditer(command):
        value = (match.group(1) or match.group(2)).strip()
        color = COLOR_MAP.get(match.group(3).lower(), DEFAULT_HIGHLIGHT)
        rules.append({
            "condition": "equals",
            "value": value,
            "format": {"backgroundColor": color, "bold": True},
        })
    return rules


def infer_action_from_config(config: Config) -> Optional[str]:
    """Guess the sheet action from the shape of a config object."""
    if not config:
        return None
    if config.get("chartType"):
        return SheetAction.CHART.value
    if "tableName" in config or "freezeHeader" in config:
        return SheetAction.CREATE_TABLE.value
    if config.get("rules"):
        return SheetAction.CONDITIONAL_FORMAT.value
    if config.get("validationType"):
        return SheetAction.DATA_VALIDATION.value
    if config.get("criteria"):
        return SheetAction.FILTER.value
    if config.get("formatType") or config.get("options") or config.get("operations"):
        return SheetAction.FORMAT.value
    if config.get("data"):
        return SheetAction.WRITE_DATA.value
    if config.get("operation"):
        return SheetAction.SHEET_OPS.value
    return None


class SheetResponseNormalizer:
    """Applies the repair cascade for one command and context."""

    def __init__(self, command: str, context: DataContext):
        self.command = command
        self.context = context

    @property
    def default_range(self) -> Optional[str]:
        return self.context.resolved_data_range

    def extract_from_steps(self, steps: List[Any]) -> Tuple[Optional[str], Config, bool]:
        first = steps[0] if isinstance(steps[0], dict) else {}

        if first.get("action") == "format" or first.get("formatting") or first.get("borders"):
            operations = []
            for step in steps:
                if not isinstance(step, dict):
                    continue
                formatting = step.get("formatting") or {}
                operations.append({
                    "range": step.get("range"),
                    "formatting": formatting,
                    "borders": step.get("borders"),
                    "alignment": step.get("alignment") or formatting.get("horizontalAlignment"),
                    "bold": step.get("bold"),
                    "backgroundColor": step.get("backgroundColor"),
                    "textColor": step.get("textColor"),
                })
            return SheetAction.FORMAT.value, {
                "formatType": "text",
                "operations": operations,
                "range": operations[0].get("range") or self.default_range,
                "options": operations[0].get("formatting") or {},
            }, True

        if first.get("chartType") or first.get("action") == "chart":
            return SheetAction.CHART.value, dict(first), True

        return None, {}, False

    def conditional_format_from_command(self, action, config):
        if action != SheetAction.FORMAT.value or not CONDITIONAL_PHRASE_RE.search(self.command):
            return action, config, False
        for op in config.get("operations") or []:
            if isinstance(op, dict) and (op.get("formatting") or {}).get("conditionalFormat"):
                return action, config, False

        rules = extract_conditional_rules(self.command)
        if not rules:
            return action, config, False
        logger.info("Built conditionalFormat rules from command text")
        return SheetAction.CONDITIONAL_FORMAT.value, {
            "range": config.get("range") or self.default_range,
            "rules": rules,
        }, True

    def validation_action_name(self, action):
        if action == "validation":
            return SheetAction.DATA_VALIDATION.value, True
        return action, False

    def nested_validation(self, action, config):
        options = config.get("options") or {}
        if action != SheetAction.FORMAT.value or not isinstance(options, dict) or not options.get("validation"):
            return action, config, False

        nested = dict(options["validation"])
        new_config = {
            "validationType": nested.pop("type", None) or "checkbox",
            "range": config.get("range") or self.default_range,
        }
        if "values" in nested:
            new_config["values"] = nested["values"]
        new_config.update(nested)
        return SheetAction.DATA_VALIDATION.value, new_config, True

    @staticmethod
    def _convert_rules(nested_rules) -> List[Dict[str, Any]]:
        rules = []
        if not isinstance(nested_rules, list):
            return rules
        for rule in nested_rules:
            if not isinstance(rule, dict):
                continue
            fmt = {
                key: rule.get(key)
                for key in ("backgroundColor", "textColor", "bold", "italic")
                if rule.get(key) is not None
            }
            rules.append({"condition": rule.get("condition"), "value": rule.get("value"), "format": fmt})
        return rules

    def nested_conditional_format(self, action, config):
        if action != SheetAction.FORMAT.value:
            return action, config, False

        found = False
        rules: List[Dict[str, Any]] = []
        target_range = config.get("range") or self.default_range

        for op in config.get("operations") or []:
            if not isinstance(op, dict):
                continue
            nested = (op.get("formatting") or {}).get("conditionalFormat")
            if nested:
                found = True
                target_range = op.get("range") or target_range
                rules.extend(self._convert_rules(nested))

        options = config.get("options") or {}
        if isinstance(options, dict) and options.get("conditionalFormat"):
            found = True
            rules.extend(self._convert_rules(options["conditionalFormat"]))

        if found and rules:
            return SheetAction.CONDITIONAL_FORMAT.value, {"range": target_range, "rules": rules}, True
        return action, config, False

    def validation_criteria(self, action, config):
        criteria = config.get("criteria")
        if action != SheetAction.DATA_VALIDATION.value or not isinstance(criteria, dict):
            return config, False

        new_config = {k: v for k, v in config.items() if k != "criteria"}
        if criteria.get("minimum") is not None:
            new_config["min"] = criteria["minimum"]
        if criteria.get("maximum") is not None:
            new_config["max"] = criteria["maximum"]
        if criteria.get("condition") == "between" and not new_config.get("validationType"):
            new_config["validationType"] = "number"
        return new_config, True

    def validation_min_max(self, action, config):
        if action != SheetAction.DATA_VALIDATION.value or config.get("validationType") != "number":
            return config, False
        if config.get("min") is not None and config.get("max") is not None:
            return config, False

        for pattern in MIN_MAX_PATTERNS:
            match = pattern.search(self.command)
            if not match:
                continue
            try:
                first = int(match.group(1).replace(",", ""))
                second = int(match.group(2).replace(",", ""))
            except ValueError:
                continue
            logger.info(f"Extracted min/max from command: {min(first, second)}, {max(first, second)}")
            return {**config, "min": min(first, second), "max": max(first, second)}, True
        return config, False

    def full_column_range(self, action, config):
        rng = config.get("range")
        if action != SheetAction.DATA_VALIDATION.value or not isinstance(rng, str):
            return config, False
        match = FULL_COLUMN_RE.match(rng.strip())
        row_info = self.context.explicit_row_info
        if not match or row_info is None:
            return config, False

        column = match.group(1).upper()
        corrected = f"{column}{row_info.data_start_row}:{column}{row_info.data_end_row}"
        logger.info(f"Correcting full-column range {rng} -> {corrected}")
        return {**config, "range": corrected}, True

    def normalize(
        self,
        sheet_action: Optional[str],
        sheet_config: Optional[Config],
        steps: Optional[List[Any]] = None,
    ) -> NormalizedSheetResponse:
        action = sheet_action or None
        config = copy.deepcopy(sheet_config) if isinstance(sheet_config, dict) else {}
        applied: List[str] = []

        if not action and isinstance(steps, list) and steps:
            extracted_action, extracted_config, changed = self.extract_from_steps(steps)
            if changed:
                action, config = extracted_action, extracted_config
                applied.append("extracted_from_steps")

        action, config, changed = self.conditional_format_from_command(action, config)
        if changed:
            applied.append("conditional_format_from_command")

        action, changed = self.validation_action_name(action)
        if changed:
            applied.append("validation_action_name")

        action, config, changed = self.nested_validation(action, config)
        if changed:
            applied.append("nested_validation")

        action, config, changed = self.nested_conditional_format(action, config)
        if changed:
            applied.append("nested_conditional_format")

        config, changed = self.validation_criteria(action, config)
        if changed:
            applied.append("validation_criteria")

        config, changed = self.validation_min_max(action, config)
        if changed:
            applied.append("validation_min_max")

        config, changed = self.full_column_range(action, config)
        if changed:
            applied.append("full_column_range")

        if not action:
            action = infer_action_from_config(config)
            if action:
                applied.append("inferred_from_config")

        if applied:
            logger.info(f"Applied {len(applied)} normalizations: {', '.join(applied)}")

        return NormalizedSheetResponse(
            sheet_action=action or SheetAction.FORMAT.value,
            sheet_config=config,
            was_normalized=bool(applied),
            normalizations=applied,
        )


def normalize_sheet_response(
    raw: Dict[str, Any],
    command: str,
    context: DataContext,
) -> NormalizedSheetResponse:
    """Normalize a raw ``{sheetAction, sheetConfig, steps}`` response."""
    normalizer = SheetResponseNormalizer(command, context)
    return normalizer.normalize(raw.get("sheetAction"), raw.get("sheetConfig"), raw.get("steps"))
