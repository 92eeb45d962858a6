"""Text vs numeric routing for raw analytics cells.

The kind of an identifier must be known before its raw value is parsed:
year ranges such as "2016-2020" and option codes are not numbers and must
never go through float(). Identifiers missing from the text set default to
NUMERIC, so every new free-text field has to be added to the configuration.
"""

from enum import Enum
from typing import FrozenSet, Iterable

from .policies import yes_no_identifiers


class ValueKind(str, Enum):
    NUMERIC = "numeric"
    TEXT = "text"


class ValueClassifier:
    """Fixed partition of identifiers into text-valued and numeric-valued."""

    def __init__(self, text_identifiers: Iterable[str]):
        self._text: FrozenSet[str] = frozenset(text_identifiers)

    @property
    def text_identifiers(self) -> FrozenSet[str]:
        return self._text

    def classify(self, identifier: str) -> ValueKind:
        if identifier in self._text:
            return ValueKind.TEXT
        return ValueKind.NUMERIC

    def is_text(self, identifier: str) -> bool:
        return identifier in self._text

    @classmethod
    def from_config(cls, profile_config, catalog=()) -> "ValueClassifier":
        """Collect every text-valued identifier named by the profile layout and the policy catalog."""
        return cls(set(profile_config.text_identifiers()) | set(yes_no_identifiers(catalog)))
