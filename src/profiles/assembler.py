"""
Country profile assembly.

One assemble() call builds one CountryProfileRecord for (scope, year):

1. Scope lookup and grouped aggregation run concurrently. A failed scope
   lookup degrades to an empty country code; any other failure aborts
   the build with ProfileBuildError.
2. Country flags come from the country code, the display mode from the
   merged numeric values (read once).
3. Option codes (vector species, insecticide classes) are resolved through
   an option cache that lives for this call only.
4. Policies are resolved for the reporting year.
5. Charts are optionally built concurrently, with the same failure rule.
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import replace
from enum import IntEnum
from typing import Dict, List, Optional, Sequence

from .classifier import ValueClassifier
from .client import NO_OPTION, OptionSetCache, ScopeInfo
from .config import CountryLists, ESTIMATE_FIELDS, POPULATION_FIELDS, ProfileConfig
from .errors import AnalyticsRequestError, ProfileBuildError, ProfileError
from .merge import AggregationMerger, ValueMaps
from .models import (
    CaseFigures,
    CountryFlags,
    CountryProfileRecord,
    EfficacyRow,
    EstimateFigures,
    ParasiteBreakdown,
    PopulationFigures,
    ResistanceRow,
    TreatmentRow,
)
from .policies import PolicyDefinition, PolicyResolver
from .series import ChartContext, ChartSeries, ChartSpec, build_series
from .sources import fetch_chart_source
from .transforms import TransformationEngine

logger = logging.getLogger(__name__)


class DisplayMode(IntEnum):
    CONFIRMED = 1
    INDIGENOUS = 2
    INDIGENOUS_ALT = 3

    @classmethod
    def from_value(cls, value) -> "DisplayMode":
        """Modes 2 and 3 are taken as-is; anything else (including no data) is CONFIRMED.

        The web profile page treated every value other than 3, a missing one
        included, as indigenous. Here only an explicit 2 or 3 switches the case
        breakdown, so a country with no mode reported keeps its confirmed figures.
        """
        try:
            number = int(value)
        except (TypeError, ValueError):
            return cls.CONFIRMED
        if number in (cls.INDIGENOUS, cls.INDIGENOUS_ALT):
            return cls(number)
        return cls.CONFIRMED

    @property
    def shows_indigenous(self) -> bool:
        return self is not DisplayMode.CONFIRMED


def classify_country(code: str, lists: CountryLists) -> CountryFlags:
    is_target = code in lists.elimination_target
    estimate_exception = code in lists.elimination_estimate_exception
    return CountryFlags(
        is_elimination_target=is_target,
        show_estimates_for_indigenous=code in lists.indigenous_estimate_exception,
        elimination_estimate_exception=estimate_exception,
        show_estimates=not is_target or estimate_exception,
    )


def _int_or_none(value: Optional[float]) -> Optional[int]:
    return int(value) if value else None


class ProfileAssembler:
    """Builds country profiles from the analytics API for one consumer."""

    def __init__(
        self,
        client,
        config: ProfileConfig,
        catalog: Sequence[PolicyDefinition],
        classifier: Optional[ValueClassifier] = None,
        engine: Optional[TransformationEngine] = None,
        chart_specs: Sequence[ChartSpec] = (),
        max_workers: Optional[int] = None,
    ):
        self.client = client
        self.config = config
        self.catalog = tuple(catalog)
        self.classifier = classifier or ValueClassifier.from_config(config, self.catalog)
        self.engine = engine or TransformationEngine.from_config(config)
        self.chart_specs = tuple(chart_specs)
        self.max_workers = max_workers or config.max_workers
        self.merger = AggregationMerger(
            client,
            self.classifier,
            self.engine,
            duplicate_policy=config.duplicate_identifiers,
            max_workers=self.max_workers,
        )
        self.resolver = PolicyResolver(self.catalog)

    def _lookup_scope(self, scope: str) -> ScopeInfo:
        try:
            return self.client.resolve_scope(scope)
        except AnalyticsRequestError as e:
            logger.warning(f"Scope lookup failed for {scope}, continuing without a country code: {e}")
            return ScopeInfo(code="")

    def assemble(
        self,
        scope: str,
        reporting_year: int,
        country_code: Optional[str] = None,
        include_charts: bool = False,
    ) -> CountryProfileRecord:
        """
        Build the profile for one scope and reporting year.

        Args:
            scope: Organisation unit id of the country
            reporting_year: Year the profile reports on
            country_code: Overrides the code returned by the scope lookup
            include_charts: Also build every configured chart

        Returns:
            CountryProfileRecord

        Raises:
            ProfileBuildError: If any query other than the scope lookup fails
        """
        logger.info(f"Building profile for {scope} ({reporting_year})")
        named_groups = self.config.query_groups(self.catalog)
        names = [name for name, _ in named_groups]
        groups = [ids for _, ids in named_groups]

        try:
            with ThreadPoolExecutor(max_workers=2) as executor:
                scope_future = executor.submit(self._lookup_scope, scope)
                maps_future = executor.submit(self.merger.build, groups, scope, str(reporting_year), names)
                scope_info = scope_future.result()
                maps = maps_future.result()

            record = self._build_record(scope, reporting_year, scope_info, maps, country_code)
            if include_charts and self.chart_specs:
                context = ChartContext(record.flags, record.display_mode, scope_info.parent_code)
                record = replace(record, charts=tuple(self._build_charts(scope, reporting_year, context)))
        except ProfileError as e:
            logger.error(f"Failed to load profile for {scope} ({reporting_year}): {e}")
            raise ProfileBuildError(scope, reporting_year, e) from e

        logger.info(
            f"Built profile for {scope} ({reporting_year}): code={record.country_code or '-'}, "
            f"mode={record.display_mode}, {len(record.policies)} policies"
        )
        return record

    def _build_record(
        self,
        scope: str,
        reporting_year: int,
        scope_info: ScopeInfo,
        maps: ValueMaps,
        country_code: Optional[str],
    ) -> CountryProfileRecord:
        config = self.config
        code = country_code if country_code is not None else scope_info.code
        flags = classify_country(code, config.country_lists)
        mode = DisplayMode.from_value(maps.numeric.get(config.display_mode))
        options = OptionSetCache(self.client)

        return CountryProfileRecord(
            scope=scope,
            reporting_year=reporting_year,
            country_code=code,
            region=config.regions.get(scope_info.parent_code) if scope_info.parent_code else None,
            flags=flags,
            display_mode=int(mode),
            population=PopulationFigures(*(maps.number(config.population[f]) for f in POPULATION_FIELDS)),
            parasites=ParasiteBreakdown(
                p_falciparum=maps.number(config.p_falciparum),
                p_vivax=maps.number(config.p_vivax),
                anopheles_species=tuple(self._species_names(maps, options)),
            ),
            cases=self._case_figures(maps, mode),
            estimates=self._estimates(maps) if flags.show_estimates else None,
            policies=tuple(self.resolver.resolve(reporting_year, maps)),
            treatment=tuple(
                TreatmentRow(row["category"], maps.label(row["medicine"]), maps.year(row["year_adopted"]))
                for row in config.treatment
            ),
            efficacy=tuple(self._efficacy_row(maps, row) for row in config.efficacy),
            resistance=tuple(self._resistance_row(maps, row, options) for row in config.resistance),
            rdt_type=maps.label(config.rdt_type),
            maps={name: maps.text.get(identifier, "") for name, identifier in config.maps.items()},
        )

    def _species_names(self, maps: ValueMaps, options: OptionSetCache) -> List[str]:
        list_id = self.config.option_sets["anopheles_species"]
        names = []
        for identifier in self.config.anopheles_species:
            code = maps.text.get(identifier)
            if not code or code == NO_OPTION:
                continue
            name = options.resolve(list_id, code)
            if name != NO_OPTION:
                names.append(name)
        return names

    def _case_figures(self, maps: ValueMaps, mode: DisplayMode) -> CaseFigures:
        ids = self.config.cases
        total = maps.number(ids["total_cases"])
        if mode.shows_indigenous:
            return CaseFigures(
                display_mode=int(mode),
                total_cases=total,
                confirmed_indigenous=maps.number(ids["confirmed_indigenous"]),
                indigenous_cases=maps.number(ids["indigenous_cases"]),
                indigenous_deaths=maps.number(ids["indigenous_deaths"]),
            )
        return CaseFigures(
            display_mode=int(mode),
            total_cases=total,
            confirmed_health_facility=maps.number(ids["confirmed_health_facility"]),
            confirmed_community=sum(maps.number(i) for i in self.config.confirmed_community),
            confirmed_private_sector=maps.number(ids["confirmed_private_sector"]),
        )

    def _estimates(self, maps: ValueMaps) -> EstimateFigures:
        return EstimateFigures(*(maps.number(self.config.estimates[f]) for f in ESTIMATE_FIELDS))

    @staticmethod
    def _efficacy_row(maps: ValueMaps, row) -> EfficacyRow:
        # min/median/max keep a reported 0; year and study count treat 0 as missing
        return EfficacyRow(
            medicine=maps.label(row["medicine"]),
            year=maps.year(row["year"]),
            min=maps.numeric.get(row["min"]),
            median=maps.numeric.get(row["median"]),
            max=maps.numeric.get(row["max"]),
            follow_up=maps.label(row["follow_up"]),
            number_of_studies=_int_or_none(maps.numeric.get(row["number_of_studies"])),
            species=maps.label(row["species"]),
        )

    def _resistance_row(self, maps: ValueMaps, row, options: OptionSetCache) -> ResistanceRow:
        list_id = self.config.option_sets["insecticide_class"]
        return ResistanceRow(
            insecticide_class=options.resolve(list_id, maps.text.get(row["insecticide_class"], "")),
            years=maps.label(row["years"]),
            sites_pct=maps.numeric.get(row["sites_pct"]) or None,
            vectors=maps.label(row["vectors"]),
            used=maps.label(row["used"]),
        )

    def _build_charts(self, scope: str, reporting_year: int, context: ChartContext) -> List[ChartSeries]:
        view_id = self.config.survey_view
        workers = max(1, min(self.max_workers, len(self.chart_specs)))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            chart_futures = [
                executor.submit(build_series, self.client, self.engine, spec, scope, reporting_year, context)
                for spec in self.chart_specs
            ]
            source_futures: Dict[str, Future] = {
                spec.chart_id: executor.submit(fetch_chart_source, self.client, spec.survey_source, scope, view_id)
                for spec in self.chart_specs
                if spec.survey_source and view_id
            }
            charts = []
            for future in chart_futures:
                try:
                    charts.append(future.result())
                except Exception:
                    for other in chart_futures:
                        other.cancel()
                    raise

        return [
            replace(chart, source=source_futures[chart.chart_id].result()) if chart.chart_id in source_futures else chart
            for chart in charts
        ]
