"""
Command-line interface for building country profiles.

Usage:
    python -m src.profiles.cli build --scope F0Fh4EvmK5K --year 2024
    python -m src.profiles.cli build --scope F0Fh4EvmK5K --year 2024 --charts -o profile.json
    python -m src.profiles.cli policies --year 2023
    python -m src.profiles.cli validate-config
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

import yaml

from src.config import settings as settings_module
from src.logging_config import configure_logging

from . import formatting
from .assembler import ProfileAssembler
from .client import client_from_settings
from .config import load_profile_config
from .errors import ProfileError
from .models import CountryProfileRecord
from .policies import definitions_for_year, load_policy_catalog
from .series import chart_identifiers, load_chart_specs
from .tracker import BuildTracker


def _config_dir(args: argparse.Namespace) -> Path:
    return Path(args.config_dir) if args.config_dir else settings_module.get_config_dir()


def _catalog_path(args: argparse.Namespace) -> Path:
    return Path(args.catalog) if args.catalog else _config_dir(args) / "policy_catalog.json"


def _schema_path(args: argparse.Namespace) -> Path:
    return _config_dir(args) / "schemas" / "policy_catalog.schema.json"


def render_summary(record: CountryProfileRecord) -> str:
    """Plain-text overview of a profile for terminal output."""
    lines = [
        f"Country profile: {record.country_code or record.scope} ({record.reporting_year})",
    ]
    if record.region:
        lines.append(f"Region: {record.region}")

    pop = record.population
    lines.append(
        f"Population: {formatting.format_number(pop.total)} "
        f"(high transmission {formatting.format_percentage(pop.high_transmission, pop.total)}, "
        f"low transmission {formatting.format_percentage(pop.low_transmission, pop.total)}, "
        f"malaria free {formatting.format_percentage(pop.malaria_free, pop.total)})"
    )

    pf, pv = formatting.format_parasite_split(record.parasites.p_falciparum, record.parasites.p_vivax)
    lines.append(f"Parasites: {pf}, {pv}")
    if record.parasites.anopheles_species:
        lines.append(f"Vectors: {', '.join(record.parasites.anopheles_species)}")

    lines.append(f"Reported cases: {formatting.format_number(record.cases.total_cases)}")
    if record.estimates is not None:
        est = record.estimates
        lines.append(formatting.format_estimate(est.estimated_cases, est.cases_lower, est.cases_upper))
        lines.append(formatting.format_estimate(
            est.estimated_deaths, est.deaths_lower, est.deaths_upper, label="Estimated deaths"
        ))

    lines.append("")
    lines.append(f"{'Intervention':<14} {'Policy':<24} {'Year':<6} Strategy")
    lines.append("-" * 78)
    for policy in record.policies:
        year = str(policy.year_adopted) if policy.year_adopted else "-"
        lines.append(f"{policy.intervention:<14} {policy.policy_label[:24]:<24} {year:<6} {policy.strategy}")

    for chart in record.charts:
        status = "" if chart.has_data else " (no data)"
        lines.append(f"Chart {chart.chart_id}: {chart.title}{status}")
        if chart.source:
            lines.append(f"  Source: {chart.source}")

    return "\n".join(lines)


def cmd_build(args: argparse.Namespace) -> int:
    """Assemble one profile from the analytics API."""
    try:
        settings = settings_module.load_settings()
    except settings_module.MissingSettingError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    config_dir = Path(args.config_dir) if args.config_dir else settings.config_dir
    try:
        profile_config = load_profile_config(config_dir / "profile.yaml")
        catalog = load_policy_catalog(
            Path(args.catalog) if args.catalog else config_dir / "policy_catalog.json",
            config_dir / "schemas" / "policy_catalog.schema.json",
        )
        chart_specs = load_chart_specs(config_dir / "charts.yaml") if args.charts else ()

        assembler = ProfileAssembler(
            client_from_settings(settings),
            profile_config,
            catalog,
            chart_specs=chart_specs,
        )
        tracker = BuildTracker(assembler)
        record = tracker.request(args.scope, args.year, include_charts=args.charts)
    except ProfileError as e:
        print(f"Error: failed to load profile: {e}", file=sys.stderr)
        return 1
    except (OSError, ValueError, yaml.YAMLError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.output:
        with open(args.output, "w") as f:
            json.dump(record.to_dict(), f, indent=2)
        print(f"Profile written to {args.output}")
    elif args.format == "text":
        print(render_summary(record))
    else:
        print(json.dumps(record.to_dict(), indent=2))
    return 0


def cmd_policies(args: argparse.Namespace) -> int:
    """List the policy definitions shown for a reporting year."""
    try:
        catalog = load_policy_catalog(_catalog_path(args), _schema_path(args))
    except (ProfileError, OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    definitions = definitions_for_year(catalog, args.year)
    print(f"Policies for {args.year}: {len(definitions)}")
    for d in definitions:
        order = "-" if d.display_order is None else f"{d.display_order:g}"
        print(f"  [{order:>3}] {d.intervention}: {d.strategy} ({d.yes_no_identifier})")
    return 0


def cmd_validate_config(args: argparse.Namespace) -> int:
    """Validate profile.yaml, charts.yaml and the policy catalog."""
    config_dir = _config_dir(args)
    try:
        profile_config = load_profile_config(config_dir / "profile.yaml")
        catalog = load_policy_catalog(_catalog_path(args), _schema_path(args))
        chart_specs = load_chart_specs(config_dir / "charts.yaml")
    except ProfileError as e:
        print(f"Validation failed: {e}", file=sys.stderr)
        return 1
    except (OSError, ValueError, yaml.YAMLError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    groups = profile_config.query_groups(catalog)
    print(f"Configuration valid: {config_dir}")
    print(f"  Query groups: {len(groups)} ({sum(len(ids) for _, ids in groups)} identifiers)")
    print(f"  Text identifiers: {len(profile_config.text_identifiers())}")
    print(f"  Transformation rules: {len(profile_config.transformations)}")
    print(f"  Policies: {len(catalog)}")
    print(f"  Charts: {len(chart_specs)} ({len(chart_identifiers(chart_specs))} identifiers)")

    if args.verbose:
        print("\nQuery groups:")
        for name, ids in groups:
            print(f"  {name}: {len(ids)}")
    return 0


def main(argv: Optional[list] = None) -> int:
    """Main CLI entrypoint."""
    parser = argparse.ArgumentParser(
        prog="profiles",
        description="Country epidemiological profile builder"
    )

    # Global options
    parser.add_argument(
        "--config-dir",
        help="Configuration directory (default: PROFILE_CONFIG_DIR or ./config)"
    )
    parser.add_argument(
        "--catalog",
        help="Path to policy catalog (default: <config-dir>/policy_catalog.json)"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # build command
    build_parser = subparsers.add_parser("build", help="Build one country profile")
    build_parser.add_argument("--scope", required=True, help="Organisation unit id of the country")
    build_parser.add_argument("--year", type=int, required=True, help="Reporting year")
    build_parser.add_argument("--charts", action="store_true", help="Also build chart series")
    build_parser.add_argument("--format", choices=["json", "text"], default="json")
    build_parser.add_argument("--output", "-o", help="Output file (JSON)")
    build_parser.set_defaults(func=cmd_build)

    # policies command
    policies_parser = subparsers.add_parser("policies", help="List policies shown for a year")
    policies_parser.add_argument("--year", type=int, required=True, help="Reporting year")
    policies_parser.set_defaults(func=cmd_policies)

    # validate-config command
    validate_parser = subparsers.add_parser("validate-config", help="Validate configuration files")
    validate_parser.set_defaults(func=cmd_validate_config)

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    configure_logging(logging.DEBUG if args.verbose else logging.INFO)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
