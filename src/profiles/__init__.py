"""
Country Profiles - epidemiological profile builder.

Fetches a country's data points from the analytics API for one reporting
year and assembles them into a single immutable profile record.

Modules:
    errors - Exception hierarchy
    client - Analytics API client (queries, option sets, scope metadata)
    config - profile.yaml loading and validation
    classifier - Text vs numeric routing of identifiers
    transforms - Per-identifier value transformation rules
    merge - Concurrent grouped queries folded into value maps
    policies - Policy catalog loading and year-based resolution
    models - Profile record dataclasses
    assembler - Profile assembly
    series - Chart time series
    sources - Survey source attribution
    formatting - Display formatting of figures
    tracker - Latest-request-wins build tracking
    cli - Command-line interface entrypoints
"""

from . import errors
from . import client
from . import config
from . import classifier
from . import transforms
from . import merge
from . import policies
from . import models
from . import assembler
from . import series
from . import sources
from . import formatting
from . import tracker

__version__ = "1.0.0"
