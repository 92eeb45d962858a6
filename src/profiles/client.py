"""Client for the analytics API (DHIS2-style web API).

Endpoints used:
    /api/analytics              grouped data point queries
    /api/optionSets/{id}        code -> display name lists
    /api/organisationUnits/{id} scope metadata (country code, parent region)
    /api/sqlViews/{id}/data.json survey source lookups

No business logic lives here: rows come back as DataPointRow tuples and
every failure is raised as AnalyticsRequestError.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Sequence, Tuple

import requests
from requests.adapters import HTTPAdapter

from .errors import AnalyticsRequestError, MalformedResponseError

logger = logging.getLogger(__name__)

# (connect, read) seconds
REQUEST_TIMEOUT = (10, 30)

# Identifiers and periods are joined with this in the query string
DIMENSION_SEPARATOR = ";"

# Enough pooled connections for one profile build's parallel fan-out
POOL_SIZE = 16

NO_OPTION = "-"


class DataPointRow(NamedTuple):
    """One analytics cell: identifier x scope x period -> raw value."""
    identifier: str
    scope: str
    period: str
    raw_value: str

    @classmethod
    def from_cells(cls, cells: Sequence[Any]) -> "DataPointRow":
        """Validate a positional analytics row and name its fields.

        Raises:
            MalformedResponseError: If the row has fewer than four cells
        """
        if not isinstance(cells, (list, tuple)) or len(cells) < 4:
            raise MalformedResponseError("analytics", f"Row has fewer than 4 cells: {cells!r}")
        return cls(*("" if c is None else str(c) for c in cells[:4]))


@dataclass(frozen=True)
class AnalyticsTable:
    rows: Tuple[DataPointRow, ...] = ()
    headers: Tuple[str, ...] = ()

    def __len__(self) -> int:
        return len(self.rows)


@dataclass(frozen=True)
class ScopeInfo:
    code: str
    parent_code: Optional[str] = None


def join_periods(periods: Iterable[Any]) -> str:
    """Join a period set into the multi-period query form ("2010;2011;...")."""
    return DIMENSION_SEPARATOR.join(str(p) for p in periods)


def build_session(auth_header: Optional[str] = None) -> requests.Session:
    """Create a pooled session. Remote failures are not retried."""
    session = requests.Session()
    adapter = HTTPAdapter(pool_connections=POOL_SIZE, pool_maxsize=POOL_SIZE, max_retries=0)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    session.headers["Content-Type"] = "application/json"
    session.headers["Cache-Control"] = "no-cache"
    if auth_header:
        session.headers["Authorization"] = auth_header
    return session


class AnalyticsClient:
    """Thin wrapper around the analytics web API."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        basic_auth: Optional[Tuple[str, str]] = None,
        timeout: Any = REQUEST_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        auth_header = f"Bearer {token}" if token else None
        self.session = session if session is not None else build_session(auth_header)
        if basic_auth and not token:
            self.session.auth = basic_auth

    def _get_json(self, path: str, params: Any = None) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise AnalyticsRequestError(path, f"Request failed: {e}", e) from e

        try:
            return response.json()
        except ValueError as e:
            content_type = response.headers.get("content-type", "unknown content type")
            raise MalformedResponseError(
                path, f"Server returned {content_type} instead of JSON. Check the base URL: {url}", e
            ) from e

    def query(
        self,
        identifiers: Sequence[str],
        scope: str,
        period: str,
        precision_hint: bool = False,
    ) -> AnalyticsTable:
        """Run one grouped analytics query.

        Args:
            identifiers: Data point identifiers for the dx dimension
            scope: Organisation unit id
            period: A period, or several joined with ';'
            precision_hint: Ask the server to skip its default rounding

        Returns:
            AnalyticsTable with one row per identifier x scope x period returned
        """
        if not identifiers:
            return AnalyticsTable()

        params: List[Tuple[str, str]] = [
            ("dimension", f"dx:{DIMENSION_SEPARATOR.join(identifiers)}"),
            ("dimension", f"ou:{scope}"),
            ("dimension", f"pe:{period}"),
        ]
        if precision_hint:
            params.append(("skipRounding", "true"))

        logger.debug(f"Analytics query: {len(identifiers)} identifier(s), scope={scope}, period={period}")
        data = self._get_json("/api/analytics", params=params)
        if not isinstance(data, dict):
            raise MalformedResponseError("/api/analytics", "Response body is not a JSON object")

        raw_rows = data.get("rows") or []
        rows = tuple(DataPointRow.from_cells(cells) for cells in raw_rows)
        headers = tuple(h.get("name", "") for h in data.get("headers") or [] if isinstance(h, dict))
        return AnalyticsTable(rows=rows, headers=headers)

    def fetch_option_set(self, list_id: str) -> Dict[str, str]:
        """Fetch an option list as a code -> display name mapping."""
        data = self._get_json(
            f"/api/optionSets/{list_id}",
            params={"fields": "id,options[code,displayName]"},
        )
        options = data.get("options") or [] if isinstance(data, dict) else []
        return {
            str(opt.get("code")): opt.get("displayName") or NO_OPTION
            for opt in options
            if isinstance(opt, dict) and opt.get("code") is not None
        }

    def resolve_option(self, list_id: str, code: str, cache: Optional["OptionSetCache"] = None) -> str:
        """Map a code to its display name, or '-' when the list has no such code."""
        options = cache.get(list_id) if cache is not None else self.fetch_option_set(list_id)
        return options.get(code, NO_OPTION)

    def resolve_scope(self, scope_id: str) -> ScopeInfo:
        """Look up an organisation unit's code and parent region code."""
        data = self._get_json(
            f"/api/organisationUnits/{scope_id}",
            params={"fields": "code,parent[id,code,displayName]"},
        )
        if not isinstance(data, dict):
            raise MalformedResponseError("/api/organisationUnits", "Response body is not a JSON object")
        parent = data.get("parent") or {}
        return ScopeInfo(code=data.get("code") or "", parent_code=parent.get("code"))

    def fetch_sql_view(self, view_id: str, variables: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        """Run a stored SQL view with `var=key:value` substitutions."""
        params = [("var", f"{key}:{value}") for key, value in (variables or {}).items()]
        return self._get_json(f"/api/sqlViews/{view_id}/data.json", params=params or None)


class OptionSetCache:
    """Option lists fetched at most once each. Lives for one profile build only."""

    def __init__(self, client: AnalyticsClient):
        self.client = client
        self._lists: Dict[str, Dict[str, str]] = {}

    def get(self, list_id: str) -> Dict[str, str]:
        if list_id not in self._lists:
            self._lists[list_id] = self.client.fetch_option_set(list_id)
        return self._lists[list_id]

    def resolve(self, list_id: str, code: str) -> str:
        if not code:
            return NO_OPTION
        return self.get(list_id).get(code, NO_OPTION)


def client_from_settings(settings) -> AnalyticsClient:
    """Build a client from src.config.settings.Settings."""
    return AnalyticsClient(
        base_url=settings.base_url,
        token=settings.token,
        basic_auth=settings.basic_auth,
        timeout=(REQUEST_TIMEOUT[0], settings.timeout),
    )
