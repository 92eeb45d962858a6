"""
Time series for the profile charts.

Each chart is one analytics query over a span of years (start_year through
the reporting year). Which data elements a chart plots can depend on the
country: config/charts.yaml lists variants and the first variant whose
`when` conditions hold is used.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import yaml

from .client import join_periods
from .errors import ConfigValidationError
from .merge import parse_numeric
from .models import CountryFlags
from .transforms import TransformationEngine

logger = logging.getLogger(__name__)

CONFIG_DIR = Path(__file__).resolve().parent.parent.parent / "config"
DEFAULT_CHARTS_PATH = CONFIG_DIR / "charts.yaml"

DEFAULT_START_YEAR = 2010

CONDITION_KEYS = {"show_estimates_for_indigenous", "elimination_target", "display_mode", "region"}


@dataclass(frozen=True)
class ChartContext:
    """What a chart variant may depend on."""
    flags: CountryFlags = field(default_factory=CountryFlags)
    display_mode: int = 1
    region_code: Optional[str] = None


@dataclass(frozen=True)
class SeriesSpec:
    identifier: str
    label: str


@dataclass(frozen=True)
class ChartVariant:
    series: Tuple[SeriesSpec, ...]
    title: Optional[str] = None
    when: Mapping[str, Any] = field(default_factory=dict)

    def matches(self, context: ChartContext) -> bool:
        for key, expected in self.when.items():
            if key == "show_estimates_for_indigenous":
                if context.flags.show_estimates_for_indigenous != bool(expected):
                    return False
            elif key == "elimination_target":
                if context.flags.is_elimination_target != bool(expected):
                    return False
            elif key == "display_mode":
                modes = expected if isinstance(expected, (list, tuple)) else [expected]
                if int(context.display_mode) not in [int(m) for m in modes]:
                    return False
            elif key == "region":
                if context.region_code != expected:
                    return False
        return True


@dataclass(frozen=True)
class ChartSpec:
    chart_id: str
    variants: Tuple[ChartVariant, ...]
    title: str = ""
    start_year: int = DEFAULT_START_YEAR
    precision_hint: bool = False
    missing_as_zero: bool = False
    single_period: bool = False
    survey_source: Tuple[str, ...] = ()

    def select_variant(self, context: ChartContext) -> Optional[ChartVariant]:
        for variant in self.variants:
            if variant.matches(context):
                return variant
        return None

    def periods(self, reporting_year: int) -> List[int]:
        if self.single_period or reporting_year < self.start_year:
            return [reporting_year]
        return list(range(self.start_year, reporting_year + 1))


@dataclass(frozen=True)
class Dataset:
    label: str
    identifier: str
    values: Tuple[Optional[float], ...]


@dataclass(frozen=True)
class ChartSeries:
    chart_id: str
    title: str
    labels: Tuple[str, ...]
    datasets: Tuple[Dataset, ...]
    source: str = ""

    @property
    def has_data(self) -> bool:
        return any(v for d in self.datasets for v in d.values)


def build_series(
    client,
    engine: TransformationEngine,
    spec: ChartSpec,
    scope: str,
    reporting_year: int,
    context: Optional[ChartContext] = None,
) -> ChartSeries:
    """
    Query and shape one chart.

    A year with no row becomes 0 when the chart has missing_as_zero, else
    None. An unparsable cell becomes 0. Values then go through the
    identifier's transformation chain.

    Raises:
        AnalyticsRequestError: If the query fails
    """
    context = context or ChartContext()
    periods = spec.periods(reporting_year)
    labels = tuple(str(p) for p in periods)

    variant = spec.select_variant(context)
    if variant is None:
        logger.debug(f"{spec.chart_id}: no variant matches, chart left empty")
        return ChartSeries(spec.chart_id, spec.title, labels, ())

    identifiers = [s.identifier for s in variant.series]
    table = client.query(identifiers, scope, join_periods(periods), precision_hint=spec.precision_hint)
    cells = {(row.identifier, row.period): row.raw_value for row in table.rows}

    datasets = []
    for series in variant.series:
        values = []
        for period in labels:
            raw = cells.get((series.identifier, period))
            if raw is None:
                value = 0.0 if spec.missing_as_zero else None
            else:
                value, _ = parse_numeric(raw)
            values.append(engine.apply(series.identifier, value))
        datasets.append(Dataset(series.label, series.identifier, tuple(values)))

    return ChartSeries(
        chart_id=spec.chart_id,
        title=variant.title or spec.title,
        labels=labels,
        datasets=tuple(datasets),
    )


def _variant_from_dict(data: Dict[str, Any], where: str) -> ChartVariant:
    if not isinstance(data, dict) or not isinstance(data.get("series"), list) or not data["series"]:
        raise ConfigValidationError(f"{where}: variant needs a non-empty 'series' list")
    when = data.get("when") or {}
    unknown = set(when) - CONDITION_KEYS
    if unknown:
        raise ConfigValidationError(f"{where}: unknown condition(s) {sorted(unknown)}")
    series = []
    for j, entry in enumerate(data["series"]):
        if not isinstance(entry, dict) or "identifier" not in entry:
            raise ConfigValidationError(f"{where}.series[{j}]: missing 'identifier'")
        series.append(SeriesSpec(str(entry["identifier"]), str(entry.get("label", entry["identifier"]))))
    return ChartVariant(series=tuple(series), title=data.get("title"), when=dict(when))


def chart_specs_from_dict(data: Dict[str, Any]) -> List[ChartSpec]:
    charts = data.get("charts") if isinstance(data, dict) else None
    if not isinstance(charts, list):
        raise ConfigValidationError("charts: 'charts' must be a list")

    specs = []
    seen = set()
    for i, chart in enumerate(charts):
        chart_id = chart.get("id") if isinstance(chart, dict) else None
        if not chart_id:
            raise ConfigValidationError(f"charts[{i}]: missing 'id'")
        if chart_id in seen:
            raise ConfigValidationError(f"charts: duplicate chart id '{chart_id}'")
        seen.add(chart_id)
        variants = tuple(
            _variant_from_dict(v, f"{chart_id}.variants[{j}]")
            for j, v in enumerate(chart.get("variants") or [])
        )
        if not variants:
            raise ConfigValidationError(f"{chart_id}: at least one variant is required")
        specs.append(ChartSpec(
            chart_id=chart_id,
            variants=variants,
            title=chart.get("title", ""),
            start_year=int(chart.get("start_year", DEFAULT_START_YEAR)),
            precision_hint=bool(chart.get("precision_hint", False)),
            missing_as_zero=bool(chart.get("missing_as_zero", False)),
            single_period=bool(chart.get("single_period", False)),
            survey_source=tuple(chart.get("survey_source") or ()),
        ))
    return specs


def load_chart_specs(path: Path = DEFAULT_CHARTS_PATH) -> List[ChartSpec]:
    """
    Load and validate config/charts.yaml.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ConfigValidationError: If validation fails
    """
    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}
    return chart_specs_from_dict(data)


def chart_identifiers(specs: Sequence[ChartSpec]) -> List[str]:
    """Every identifier any chart variant may plot, in first-seen order."""
    seen: Dict[str, None] = {}
    for spec in specs:
        for variant in spec.variants:
            for series in variant.series:
                seen.setdefault(series.identifier, None)
    return list(seen)
