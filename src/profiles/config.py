"""
Profile layout configuration loading and validation.

config/profile.yaml names every data point the profile needs, which of
them are free text, the transformation rules and the country lists. It is
loaded once and passed explicitly to the engine components.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Sequence, Tuple

import yaml

from .errors import ConfigValidationError
from .policies import year_identifiers, yes_no_identifiers
from .transforms import parse_rule

logger = logging.getLogger(__name__)

CONFIG_DIR = Path(__file__).resolve().parent.parent.parent / "config"
DEFAULT_PROFILE_PATH = CONFIG_DIR / "profile.yaml"

VALID_DUPLICATE_POLICIES = {"strict", "overwrite"}

POPULATION_FIELDS = ("high_transmission", "low_transmission", "malaria_free", "total")
CASE_FIELDS = (
    "total_cases", "confirmed_health_facility", "confirmed_community",
    "confirmed_private_sector", "confirmed_indigenous", "indigenous_cases", "indigenous_deaths",
)
ESTIMATE_FIELDS = (
    "estimated_cases", "cases_lower", "cases_upper",
    "estimated_deaths", "deaths_lower", "deaths_upper",
)
TREATMENT_FIELDS = ("category", "medicine", "year_adopted")
EFFICACY_FIELDS = ("medicine", "year", "min", "median", "max", "follow_up", "number_of_studies", "species")
EFFICACY_TEXT_FIELDS = ("medicine", "follow_up", "species")
RESISTANCE_FIELDS = ("insecticide_class", "years", "sites_pct", "vectors", "used")
RESISTANCE_TEXT_FIELDS = ("insecticide_class", "years", "vectors", "used")
MAP_FIELDS = ("map1_name", "map2_name", "map1_legend", "map2_legend", "map1_year", "map2_year")
OPTION_SET_FIELDS = ("anopheles_species", "insecticide_class")

# Query groups in the order their rows are folded
GROUP_ORDER = (
    "country_info", "population", "parasites", "cases", "estimates",
    "policy_yes_no", "policy_year", "treatment", "efficacy", "resistance", "rdt", "maps",
)


@dataclass(frozen=True)
class CountryLists:
    elimination_target: FrozenSet[str] = frozenset()
    indigenous_estimate_exception: FrozenSet[str] = frozenset()
    elimination_estimate_exception: FrozenSet[str] = frozenset()


@dataclass(frozen=True)
class ProfileConfig:
    display_mode: str
    population: Mapping[str, str]
    p_falciparum: str
    p_vivax: str
    anopheles_species: Tuple[str, ...]
    cases: Mapping[str, Any]
    estimates: Mapping[str, str]
    treatment: Tuple[Mapping[str, str], ...]
    efficacy: Tuple[Mapping[str, str], ...]
    resistance: Tuple[Mapping[str, str], ...]
    rdt_type: str
    maps: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    extra_text: Tuple[str, ...] = ()
    transformations: Mapping[str, Tuple[str, ...]] = field(default_factory=lambda: MappingProxyType({}))
    option_sets: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    country_lists: CountryLists = field(default_factory=CountryLists)
    regions: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    duplicate_identifiers: str = "strict"
    max_workers: int = 8
    survey_view: Optional[str] = None

    @property
    def confirmed_community(self) -> Tuple[str, ...]:
        return tuple(self.cases["confirmed_community"])

    def text_identifiers(self) -> FrozenSet[str]:
        """Every identifier in the layout whose value is free text or an option code."""
        text = set(self.anopheles_species)
        text.update(row["medicine"] for row in self.treatment)
        for row in self.efficacy:
            text.update(row[f] for f in EFFICACY_TEXT_FIELDS)
        for row in self.resistance:
            text.update(row[f] for f in RESISTANCE_TEXT_FIELDS)
        text.add(self.rdt_type)
        text.update(self.maps.values())
        text.update(self.extra_text)
        return frozenset(text)

    def query_groups(self, catalog: Sequence = ()) -> List[Tuple[str, Tuple[str, ...]]]:
        """Identifier groups for one profile build, in fold order.

        Groups only keep each request under the server's URL length limit;
        the policy groups are taken from the catalog.
        """
        cases: List[str] = []
        for name in CASE_FIELDS:
            value = self.cases[name]
            cases.extend(value if isinstance(value, (list, tuple)) else [value])

        groups = {
            "country_info": (self.display_mode,),
            "population": tuple(self.population[f] for f in POPULATION_FIELDS),
            "parasites": (self.p_falciparum, self.p_vivax) + self.anopheles_species,
            "cases": tuple(cases),
            "estimates": tuple(self.estimates[f] for f in ESTIMATE_FIELDS),
            "policy_yes_no": tuple(yes_no_identifiers(catalog)),
            "policy_year": tuple(year_identifiers(catalog)),
            "treatment": tuple(row[f] for row in self.treatment for f in ("medicine", "year_adopted")),
            "efficacy": tuple(row[f] for row in self.efficacy for f in EFFICACY_FIELDS),
            "resistance": tuple(row[f] for row in self.resistance for f in RESISTANCE_FIELDS),
            "rdt": (self.rdt_type,),
            "maps": tuple(self.maps[f] for f in MAP_FIELDS if f in self.maps),
        }
        return [(name, groups[name]) for name in GROUP_ORDER if groups[name]]


def _require(data: Dict[str, Any], key: str, where: str = "profile") -> Any:
    if key not in data:
        raise ConfigValidationError(f"{where}: missing required field '{key}'")
    return data[key]


def _require_fields(data: Any, fields: Sequence[str], where: str) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise ConfigValidationError(f"{where}: expected a mapping")
    for name in fields:
        if name not in data:
            raise ConfigValidationError(f"{where}: missing required field '{name}'")
    return data


def _codes(values: Any, where: str) -> FrozenSet[str]:
    if values is None:
        return frozenset()
    if not isinstance(values, list):
        raise ConfigValidationError(f"{where} must be a list of country codes")
    return frozenset(str(v) for v in values)


def profile_config_from_dict(data: Dict[str, Any]) -> ProfileConfig:
    """
    Validate a parsed profile.yaml and build ProfileConfig.

    Raises:
        ConfigValidationError: If a section is missing or malformed
    """
    if not isinstance(data, dict):
        raise ConfigValidationError("profile: top level must be a mapping")

    duplicate_policy = str(data.get("duplicate_identifiers", "strict")).lower()
    if duplicate_policy not in VALID_DUPLICATE_POLICIES:
        raise ConfigValidationError(
            f"profile: duplicate_identifiers must be one of {sorted(VALID_DUPLICATE_POLICIES)}, got '{duplicate_policy}'"
        )

    max_workers = data.get("max_workers", 8)
    if not isinstance(max_workers, int) or max_workers < 1:
        raise ConfigValidationError("profile: max_workers must be a positive integer")

    population = _require_fields(_require(data, "population"), POPULATION_FIELDS, "population")
    parasites = _require_fields(_require(data, "parasites"), ("p_falciparum", "p_vivax"), "parasites")
    cases = _require_fields(_require(data, "cases"), CASE_FIELDS, "cases")
    if not isinstance(cases["confirmed_community"], list):
        raise ConfigValidationError("cases: confirmed_community must be a list of identifiers")
    estimates = _require_fields(_require(data, "estimates"), ESTIMATE_FIELDS, "estimates")
    option_sets = _require_fields(_require(data, "option_sets"), OPTION_SET_FIELDS, "option_sets")

    treatment = tuple(
        MappingProxyType(_require_fields(row, TREATMENT_FIELDS, f"treatment[{i}]"))
        for i, row in enumerate(data.get("treatment") or [])
    )
    efficacy = tuple(
        MappingProxyType(_require_fields(row, EFFICACY_FIELDS, f"efficacy[{i}]"))
        for i, row in enumerate(data.get("efficacy") or [])
    )
    resistance = tuple(
        MappingProxyType(_require_fields(row, RESISTANCE_FIELDS, f"resistance[{i}]"))
        for i, row in enumerate(data.get("resistance") or [])
    )

    transformations: Dict[str, Tuple[str, ...]] = {}
    for identifier, chain in (data.get("transformations") or {}).items():
        if not isinstance(chain, list):
            raise ConfigValidationError(f"transformations.{identifier} must be a list of rule names")
        # Fail on unknown rule names now rather than mid-build
        transformations[identifier] = tuple(parse_rule(rule).value for rule in chain)

    lists = data.get("country_lists") or {}
    country_lists = CountryLists(
        elimination_target=_codes(lists.get("elimination_target"), "country_lists.elimination_target"),
        indigenous_estimate_exception=_codes(
            lists.get("indigenous_estimate_exception"), "country_lists.indigenous_estimate_exception"
        ),
        elimination_estimate_exception=_codes(
            lists.get("elimination_estimate_exception"), "country_lists.elimination_estimate_exception"
        ),
    )

    maps = data.get("maps") or {}
    survey = data.get("survey_sources") or {}

    return ProfileConfig(
        display_mode=str(_require(data, "display_mode")),
        population=MappingProxyType(dict(population)),
        p_falciparum=parasites["p_falciparum"],
        p_vivax=parasites["p_vivax"],
        anopheles_species=tuple(parasites.get("anopheles_species") or ()),
        cases=MappingProxyType(dict(cases)),
        estimates=MappingProxyType(dict(estimates)),
        treatment=treatment,
        efficacy=efficacy,
        resistance=resistance,
        rdt_type=str(_require(data, "rdt_type")),
        maps=MappingProxyType(dict(maps)),
        extra_text=tuple(data.get("text_identifiers") or ()),
        transformations=MappingProxyType(transformations),
        option_sets=MappingProxyType(dict(option_sets)),
        country_lists=country_lists,
        regions=MappingProxyType(dict(data.get("regions") or {})),
        duplicate_identifiers=duplicate_policy,
        max_workers=max_workers,
        survey_view=survey.get("sql_view"),
    )


def load_profile_config(path: Path = DEFAULT_PROFILE_PATH) -> ProfileConfig:
    """
    Load and validate config/profile.yaml.

    Raises:
        FileNotFoundError: If the file doesn't exist
        yaml.YAMLError: If the file is not valid YAML
        ConfigValidationError: If validation fails
    """
    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}
    config = profile_config_from_dict(data)
    logger.debug(f"Loaded profile config from {path}")
    return config
