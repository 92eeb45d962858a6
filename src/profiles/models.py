"""
Data models for the assembled country profile.

All records are frozen: a CountryProfileRecord is built once per request
and handed to the presentation layer as-is.
"""

from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True)
class CountryFlags:
    is_elimination_target: bool = False
    show_estimates_for_indigenous: bool = False
    elimination_estimate_exception: bool = False
    show_estimates: bool = True


@dataclass(frozen=True)
class PopulationFigures:
    high_transmission: float
    low_transmission: float
    malaria_free: float
    total: float


@dataclass(frozen=True)
class ParasiteBreakdown:
    p_falciparum: float
    p_vivax: float
    anopheles_species: Tuple[str, ...] = ()


@dataclass(frozen=True)
class CaseFigures:
    """Reported cases. Which breakdown is filled depends on display_mode."""
    display_mode: int
    total_cases: float
    confirmed_health_facility: Optional[float] = None
    confirmed_community: Optional[float] = None
    confirmed_private_sector: Optional[float] = None
    confirmed_indigenous: Optional[float] = None
    indigenous_cases: Optional[float] = None
    indigenous_deaths: Optional[float] = None


@dataclass(frozen=True)
class EstimateFigures:
    estimated_cases: float
    cases_lower: float
    cases_upper: float
    estimated_deaths: float
    deaths_lower: float
    deaths_upper: float


@dataclass(frozen=True)
class TreatmentRow:
    category: str
    medicine: str
    year_adopted: Optional[int]


@dataclass(frozen=True)
class EfficacyRow:
    medicine: str
    year: Optional[int]
    min: Optional[float]
    median: Optional[float]
    max: Optional[float]
    follow_up: str
    number_of_studies: Optional[int]
    species: str


@dataclass(frozen=True)
class ResistanceRow:
    insecticide_class: str
    years: str
    sites_pct: Optional[float]
    vectors: str
    used: str


@dataclass(frozen=True)
class CountryProfileRecord:
    scope: str
    reporting_year: int
    country_code: str
    region: Optional[str]
    flags: CountryFlags
    display_mode: int
    population: PopulationFigures
    parasites: ParasiteBreakdown
    cases: CaseFigures
    estimates: Optional[EstimateFigures]
    policies: Tuple[Any, ...]
    treatment: Tuple[TreatmentRow, ...]
    efficacy: Tuple[EfficacyRow, ...]
    resistance: Tuple[ResistanceRow, ...]
    rdt_type: str
    maps: Dict[str, str]
    charts: Tuple[Any, ...] = ()

    @property
    def show_estimates(self) -> bool:
        return self.flags.show_estimates

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["show_estimates"] = self.show_estimates
        return data
