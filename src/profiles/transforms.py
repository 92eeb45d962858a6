"""Value transformation rules applied to numeric data points.

Each identifier owns an ordered rule chain. Rules run left to right and the
chain stops as soon as the value becomes None, so order matters:
[multiplyBy100, nullZeros, cut100] turns 0 into None and cut100 never runs.

All functions return None when input is None -- no fabrication.
"""

import logging
import re
from enum import Enum
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .errors import ConfigValidationError

logger = logging.getLogger(__name__)


class TransformationRule(str, Enum):
    MULTIPLY_BY_100 = "multiplyBy100"
    CUT_100 = "cut100"
    NULL_ZEROS = "nullZeros"
    NONE = "none"


DEFAULT_RULES: Tuple[TransformationRule, ...] = (TransformationRule.NONE,)

_RULES_BY_LOWER_NAME = {rule.value.lower(): rule for rule in TransformationRule}

_RULE_STRING = re.compile(r"UID:\s*([A-Za-z0-9]{11})\s+should\s+(.+)", re.IGNORECASE)


def parse_rule(name) -> TransformationRule:
    """Look up a rule by name, case-insensitively.

    Raises:
        ConfigValidationError: If the name is not a known rule
    """
    if isinstance(name, TransformationRule):
        return name
    rule = _RULES_BY_LOWER_NAME.get(str(name).strip().lower())
    if rule is None:
        valid = ", ".join(r.value for r in TransformationRule)
        raise ConfigValidationError(f"Unknown transformation rule '{name}'; valid: {valid}")
    return rule


def apply_rule(rule: TransformationRule, value: float) -> Optional[float]:
    """Apply one rule to a non-null value."""
    if rule is TransformationRule.MULTIPLY_BY_100:
        return value * 100
    if rule is TransformationRule.CUT_100:
        return min(value, 100)
    if rule is TransformationRule.NULL_ZEROS:
        return None if value == 0 else value
    return value


def parse_rule_string(text: str) -> Optional[Tuple[str, Tuple[TransformationRule, ...]]]:
    """Parse "UID: BJXyRAkf2HZ should multiplyBy100,nullZeros".

    Returns:
        (identifier, rules), or None if the text does not have that shape
    """
    match = _RULE_STRING.search(text)
    if not match:
        logger.warning(f"Could not parse rule string: {text}")
        return None
    identifier = match.group(1)
    rules = tuple(parse_rule(part) for part in match.group(2).split(",") if part.strip())
    return identifier, rules


class TransformationEngine:
    """Immutable identifier -> rule chain registry."""

    def __init__(self, rules: Optional[Mapping[str, Iterable]] = None):
        frozen: Dict[str, Tuple[TransformationRule, ...]] = {}
        for identifier, chain in (rules or {}).items():
            frozen[identifier] = tuple(parse_rule(r) for r in chain) or DEFAULT_RULES
        self._rules = MappingProxyType(frozen)

    @property
    def rules(self) -> Mapping[str, Tuple[TransformationRule, ...]]:
        return self._rules

    def rules_for(self, identifier: str) -> Tuple[TransformationRule, ...]:
        return self._rules.get(identifier, DEFAULT_RULES)

    def apply(self, identifier: str, value: Optional[float]) -> Optional[float]:
        """Run the identifier's rule chain over one value."""
        if value is None:
            return None

        result: Optional[float] = value
        for rule in self.rules_for(identifier):
            result = apply_rule(rule, result)
            if result is None:
                break
        return result

    def apply_many(self, identifier: str, values: Sequence[Optional[float]]) -> List[Optional[float]]:
        return [self.apply(identifier, v) for v in values]

    def with_rules(self, extra: Mapping[str, Iterable]) -> "TransformationEngine":
        """Return a new engine with extra chains layered over this one."""
        merged: Dict[str, Iterable] = dict(self._rules)
        merged.update(extra)
        return TransformationEngine(merged)

    @classmethod
    def from_strings(cls, lines: Iterable[str]) -> "TransformationEngine":
        parsed = {}
        for line in lines:
            result = parse_rule_string(line)
            if result is not None:
                parsed[result[0]] = result[1]
        return cls(parsed)

    @classmethod
    def from_config(cls, profile_config) -> "TransformationEngine":
        return cls(profile_config.transformations)
