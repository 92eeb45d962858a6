"""Survey source attribution shown under survey-based charts."""

import logging
from typing import Any, Iterable, List, Sequence, Tuple

from .errors import AnalyticsRequestError

logger = logging.getLogger(__name__)


def _year_key(year: Any) -> int:
    try:
        return int(year)
    except (TypeError, ValueError):
        return 0


def format_survey_sources(entries: Iterable[Tuple[str, Any]]) -> str:
    """
    Collapse (survey, year) pairs into one attribution line.

    Example:
        [("MIS", 2021), ("DHS", 2018), ("DHS", 2015)] -> "DHS 2015,2018, MIS 2021"
    """
    ordered = sorted(entries, key=lambda e: (str(e[0]), _year_key(e[1])))

    groups: List[Tuple[str, List[str]]] = []
    for survey, year in ordered:
        survey, year = str(survey), str(year)
        if groups and groups[-1][0] == survey:
            if year not in groups[-1][1]:
                groups[-1][1].append(year)
        else:
            groups.append((survey, [year]))

    return ", ".join(f"{survey} {','.join(years)}" for survey, years in groups)


def fetch_chart_source(client, identifiers: Sequence[str], scope: str, view_id: str) -> str:
    """
    Look up the surveys behind a chart's data elements for one country.

    The SQL view takes the first two data elements and the scope. Failures
    return "" since attribution is not part of the profile data.
    """
    variables = {
        "qDE1": identifiers[0] if identifiers else "",
        "qDE2": identifiers[1] if len(identifiers) > 1 else "",
        "orgUID": scope,
    }
    try:
        data = client.fetch_sql_view(view_id, variables)
    except AnalyticsRequestError as e:
        logger.warning(f"Survey source lookup failed for {scope}: {e}")
        return ""

    rows = ((data or {}).get("listGrid") or {}).get("rows") or []
    entries = []
    for row in rows:
        if len(row) >= 2 and row[0] and row[1]:
            entries.append((row[0], _year_key(row[1])))
    return format_survey_sources(entries)
