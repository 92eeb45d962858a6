"""
Policy catalog and resolution.

The catalog (config/policy_catalog.json) declares every national policy the
profile reports on. For a reporting year the resolver keeps the definitions
valid for that year, orders them by display order and turns each raw
yes/no cell into a PolicyResult.

Most policies use the standard Y / Y1 / N coding. A definition can name a
different interpreter in the catalog ("interpreter": "sale_ban") when its
cell holds free text instead.
"""

import json
import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, NamedTuple, Optional, Sequence

import jsonschema

from .errors import CatalogValidationError

logger = logging.getLogger(__name__)

CONFIG_DIR = Path(__file__).resolve().parent.parent.parent / "config"
DEFAULT_CATALOG_PATH = CONFIG_DIR / "policy_catalog.json"
DEFAULT_SCHEMA_PATH = CONFIG_DIR / "schemas" / "policy_catalog.schema.json"

# Raw value used when the yes/no identifier returned no row or an empty cell
DEFAULT_RAW_VALUE = "N"

SALE_BAN_IMPLEMENTED = ("has never been allowed", "is banned")


class PolicyOutcome(NamedTuple):
    label: str
    implemented: bool


def standard_policy_value(raw: str) -> PolicyOutcome:
    if raw == "Y":
        return PolicyOutcome("Yes*", True)
    if raw == "Y1":
        return PolicyOutcome("Yes", True)
    if raw == "N":
        return PolicyOutcome("No", False)
    return PolicyOutcome("-", False)


def sale_ban_policy_value(raw: str) -> PolicyOutcome:
    """Free-text answer: the ban counts as implemented only for the two fixed phrasings.

    The "N" placeholder for a missing answer reads "No" as in the standard coding.
    """
    trimmed = (raw or "").strip()
    if trimmed in SALE_BAN_IMPLEMENTED:
        return PolicyOutcome(trimmed, True)
    if trimmed == DEFAULT_RAW_VALUE:
        return PolicyOutcome("No", False)
    return PolicyOutcome(raw, False)


Interpreter = Callable[[str], PolicyOutcome]

INTERPRETERS: Dict[str, Interpreter] = {
    "standard": standard_policy_value,
    "sale_ban": sale_ban_policy_value,
}


@dataclass(frozen=True)
class PolicyDefinition:
    intervention: str
    strategy: str
    yes_no_identifier: str
    year_adopted_identifier: str
    valid_from_year: Optional[int] = None
    valid_until_year: Optional[int] = None
    display_order: Optional[float] = None
    interpreter: Interpreter = standard_policy_value


@dataclass(frozen=True)
class PolicyResult:
    intervention: str
    strategy: str
    policy_label: str
    implemented: bool
    year_adopted: Optional[int]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "intervention": self.intervention,
            "strategy": self.strategy,
            "policy_label": self.policy_label,
            "implemented": self.implemented,
            "year_adopted": self.year_adopted,
        }


def is_valid_for_year(definition: PolicyDefinition, year: int) -> bool:
    """Inclusive validity bounds; a missing bound is open."""
    if definition.valid_from_year is not None and year < definition.valid_from_year:
        return False
    if definition.valid_until_year is not None and year > definition.valid_until_year:
        return False
    return True


def _sort_key(definition: PolicyDefinition) -> float:
    return math.inf if definition.display_order is None else definition.display_order


def definitions_for_year(catalog: Iterable[PolicyDefinition], year: int) -> List[PolicyDefinition]:
    """Definitions valid for the year, in display order (catalog order on ties)."""
    valid = [d for d in catalog if is_valid_for_year(d, year)]
    # sorted() is stable, so ties keep catalog order
    return sorted(valid, key=_sort_key)


class PolicyResolver:
    """Resolves the policy table for one reporting year from merged values."""

    def __init__(self, catalog: Sequence[PolicyDefinition]):
        self.catalog = tuple(catalog)

    def resolve(self, year: int, value_maps) -> List[PolicyResult]:
        results = []
        for definition in definitions_for_year(self.catalog, year):
            raw = value_maps.text.get(definition.yes_no_identifier) or DEFAULT_RAW_VALUE
            outcome = definition.interpreter(raw)
            adopted = value_maps.numeric.get(definition.year_adopted_identifier)
            results.append(PolicyResult(
                intervention=definition.intervention,
                strategy=definition.strategy,
                policy_label=outcome.label,
                implemented=outcome.implemented,
                year_adopted=int(adopted) if adopted else None,
            ))
        return results


def yes_no_identifiers(catalog: Iterable[PolicyDefinition]) -> List[str]:
    return [d.yes_no_identifier for d in catalog]


def year_identifiers(catalog: Iterable[PolicyDefinition]) -> List[str]:
    return [d.year_adopted_identifier for d in catalog]


def validate_policy_catalog(
    data: Dict[str, Any],
    schema_path: Optional[Path] = DEFAULT_SCHEMA_PATH,
) -> bool:
    """
    Validate a parsed catalog against the JSON schema and consistency rules.

    Consistency rules:
    1. yes/no identifiers are unique
    2. interpreter names are registered in INTERPRETERS
    3. valid_from_year <= valid_until_year when both are present

    Returns:
        True if valid

    Raises:
        CatalogValidationError: If validation fails
    """
    if schema_path is not None and Path(schema_path).exists():
        with open(schema_path) as f:
            schema = json.load(f)
        try:
            jsonschema.validate(data, schema)
        except jsonschema.ValidationError as e:
            where = ".".join(str(p) for p in e.absolute_path)
            raise CatalogValidationError(f"Schema validation failed at '{where}': {e.message}")

    if not isinstance(data, dict) or not isinstance(data.get("policies"), list):
        raise CatalogValidationError("'policies' must be a list")

    seen = set()
    for i, entry in enumerate(data["policies"]):
        for name in ("intervention", "strategy", "yes_no_identifier", "year_adopted_identifier"):
            if name not in entry:
                raise CatalogValidationError(f"Policy {i} missing required field: {name}")

        identifier = entry["yes_no_identifier"]
        if identifier in seen:
            raise CatalogValidationError(f"Duplicate yes_no_identifier: {identifier}")
        seen.add(identifier)

        interpreter = entry.get("interpreter", "standard")
        if interpreter not in INTERPRETERS:
            raise CatalogValidationError(
                f"Policy {i} ({identifier}): unknown interpreter '{interpreter}'. "
                f"Must be one of {sorted(INTERPRETERS)}"
            )

        start, end = entry.get("valid_from_year"), entry.get("valid_until_year")
        if start is not None and end is not None and start > end:
            raise CatalogValidationError(
                f"Policy {i} ({identifier}): valid_from_year {start} is after valid_until_year {end}"
            )

    return True


def catalog_from_dict(data: Dict[str, Any]) -> List[PolicyDefinition]:
    """Build definitions from a parsed catalog. Call validate_policy_catalog first."""
    definitions = []
    for entry in data.get("policies", []):
        name = entry.get("interpreter", "standard")
        try:
            interpreter = INTERPRETERS[name]
        except KeyError:
            raise CatalogValidationError(f"Unknown interpreter '{name}' for {entry.get('yes_no_identifier')}")
        definitions.append(PolicyDefinition(
            intervention=entry["intervention"],
            strategy=entry["strategy"],
            yes_no_identifier=entry["yes_no_identifier"],
            year_adopted_identifier=entry["year_adopted_identifier"],
            valid_from_year=entry.get("valid_from_year"),
            valid_until_year=entry.get("valid_until_year"),
            display_order=entry.get("display_order"),
            interpreter=interpreter,
        ))
    return definitions


def load_policy_catalog(
    path: Path = DEFAULT_CATALOG_PATH,
    schema_path: Optional[Path] = DEFAULT_SCHEMA_PATH,
) -> List[PolicyDefinition]:
    """
    Load, validate and build the policy catalog.

    Raises:
        FileNotFoundError: If the catalog file doesn't exist
        json.JSONDecodeError: If the catalog is invalid JSON
        CatalogValidationError: If validation fails
    """
    with open(path, "r") as f:
        data = json.load(f)
    validate_policy_catalog(data, schema_path)
    catalog = catalog_from_dict(data)
    logger.debug(f"Loaded {len(catalog)} policy definition(s) from {path}")
    return catalog
