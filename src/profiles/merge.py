"""
Aggregation of grouped analytics queries into one value map per build.

Each query group is sent concurrently; when all have answered, their rows
are folded into a numeric map and a text map in group declaration order.
Groups exist only to keep request URLs short and carry no meaning: the same
identifier requested twice is rejected (strict) or resolved by the last
group that returned it (overwrite).
"""

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from .classifier import ValueClassifier, ValueKind
from .client import AnalyticsTable
from .errors import DuplicateIdentifierError
from .transforms import TransformationEngine

logger = logging.getLogger(__name__)

# Stored for numeric cells whose raw value is empty or not a number.
# Indistinguishable from a real zero once stored; see ValueMaps.coerced.
MISSING_NUMERIC = 0.0

DEFAULT_MAX_WORKERS = 8


class DuplicatePolicy(str, Enum):
    STRICT = "strict"
    OVERWRITE = "overwrite"


@dataclass
class ValueMaps:
    """Result of one aggregation: identifier -> value, split by kind."""
    numeric: Dict[str, Optional[float]] = field(default_factory=dict)
    text: Dict[str, str] = field(default_factory=dict)
    coerced: Set[str] = field(default_factory=set)

    def number(self, identifier: str, default: float = 0) -> float:
        value = self.numeric.get(identifier)
        return default if value is None else value

    def year(self, identifier: str) -> Optional[int]:
        value = self.numeric.get(identifier)
        return int(value) if value else None

    def has_number(self, identifier: str) -> bool:
        return self.numeric.get(identifier) is not None

    def label(self, identifier: str, default: str = "-") -> str:
        return self.text.get(identifier) or default


def parse_numeric(raw: Optional[str]) -> Tuple[float, bool]:
    """Parse a raw numeric cell.

    Returns:
        (value, coerced) where coerced is True when the cell was empty or
        unparsable and MISSING_NUMERIC was substituted
    """
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return MISSING_NUMERIC, True
    if not math.isfinite(value):
        return MISSING_NUMERIC, True
    return value, False


def find_duplicates(groups: Sequence[Sequence[str]], names: Optional[Sequence[str]] = None) -> Dict[str, Set[str]]:
    """Map each identifier that occurs in more than one group to those group names."""
    labels = list(names) if names is not None else [str(i) for i in range(len(groups))]
    seen: Dict[str, Set[str]] = {}
    for label, group in zip(labels, groups):
        for identifier in group:
            seen.setdefault(identifier, set()).add(label)
    return {ident: owners for ident, owners in seen.items() if len(owners) > 1}


def merge_tables(
    tables: Iterable[AnalyticsTable],
    classifier: ValueClassifier,
    engine: TransformationEngine,
) -> ValueMaps:
    """Fold query results into ValueMaps. Later rows overwrite earlier ones."""
    maps = ValueMaps()
    for table in tables:
        for row in table.rows:
            if classifier.classify(row.identifier) is ValueKind.TEXT:
                maps.text[row.identifier] = row.raw_value
                continue

            value, coerced = parse_numeric(row.raw_value)
            if coerced:
                maps.coerced.add(row.identifier)
            else:
                maps.coerced.discard(row.identifier)
            maps.numeric[row.identifier] = engine.apply(row.identifier, value)
    return maps


class AggregationMerger:
    """Runs the grouped queries for one scope and period and merges the results."""

    def __init__(
        self,
        client,
        classifier: ValueClassifier,
        engine: TransformationEngine,
        duplicate_policy: DuplicatePolicy = DuplicatePolicy.STRICT,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ):
        self.client = client
        self.classifier = classifier
        self.engine = engine
        self.duplicate_policy = DuplicatePolicy(duplicate_policy)
        self.max_workers = max_workers

    def _check_duplicates(self, groups: List[Tuple[str, ...]], names: Optional[Sequence[str]]) -> None:
        duplicates = find_duplicates(groups, names)
        if not duplicates:
            return
        if self.duplicate_policy is DuplicatePolicy.STRICT:
            raise DuplicateIdentifierError(duplicates)
        logger.warning(
            f"{len(duplicates)} identifier(s) requested by more than one group; "
            f"last group wins: {', '.join(sorted(duplicates))}"
        )

    def build(
        self,
        groups: Sequence[Sequence[str]],
        scope: str,
        period: str,
        names: Optional[Sequence[str]] = None,
    ) -> ValueMaps:
        """
        Query every group concurrently and fold the answers.

        Args:
            groups: Identifier groups, in fold order
            scope: Organisation unit id
            period: Period (or ';'-joined period set)
            names: Optional group names used in duplicate reports

        Returns:
            ValueMaps for the scope and period

        Raises:
            DuplicateIdentifierError: Strict policy and an identifier repeats
            AnalyticsRequestError: First failing group, in declaration order
        """
        frozen = [tuple(g) for g in groups]
        self._check_duplicates(frozen, names)

        pending = [g for g in frozen if g]
        if not pending:
            return ValueMaps()

        workers = max(1, min(self.max_workers, len(pending)))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [executor.submit(self.client.query, g, scope, period) for g in pending]
            tables = []
            for future in futures:
                try:
                    tables.append(future.result())
                except Exception:
                    for other in futures:
                        other.cancel()
                    raise

        maps = merge_tables(tables, self.classifier, self.engine)
        if maps.coerced:
            logger.warning(
                f"{len(maps.coerced)} numeric value(s) for {scope}/{period} were empty or unparsable "
                f"and stored as {MISSING_NUMERIC}: {', '.join(sorted(maps.coerced))}"
            )
        logger.debug(
            f"Merged {len(pending)} group(s) for {scope}/{period}: "
            f"{len(maps.numeric)} numeric, {len(maps.text)} text"
        )
        return maps
