"""
Workpaper Engine

Integrity and analytics-testing core for AI-drafted audit programs.

Key components:
- program_engine: sanitize, link, add, update and delete over the Risk/Control/Procedure graph
- column_resolver: suggests dataset columns for a test's required fields
- analytics_engine: registry of deterministic population tests
- risk_mapper: associates catalogued tests with generated risks
"""

from workpaper.program_engine import (
    decode_program,
    sanitize,
    link,
    unlink,
    delete_entity,
    add_risk,
    add_control,
    add_procedure,
    update_entity,
    add_objective,
    update_objective,
    delete_objective,
    orphan_check,
    check_integrity,
)

from workpaper.column_resolver import normalize, resolve_columns, register_aliases

from workpaper.analytics_engine import run_test, run_analytics, register_rule

from workpaper.risk_mapper import attach_analytics, map_tests_to_risks

__all__ = [
    # Program
    "decode_program",
    "sanitize",
    "link",
    "unlink",
    "delete_entity",
    "add_risk",
    "add_control",
    "add_procedure",
    "update_entity",
    "add_objective",
    "update_objective",
    "delete_objective",
    "orphan_check",
    "check_integrity",
    # Columns
    "normalize",
    "resolve_columns",
    "register_aliases",
    # Analytics
    "run_test",
    "run_analytics",
    "register_rule",
    # Mapping
    "attach_analytics",
    "map_tests_to_risks",
]
