"""
Analytics Test Engine
Deterministic population tests over uploaded tabular data.

Every registered test is an instance of one of four rule families:
- DuplicateKeyRule: the same (trimmed) key appears on more than one row
- SharedAttributeRule: one value of field A is shared by several distinct B values
- ThresholdRule: a numeric field satisfies a fixed comparison
- MembershipRule: a categorical field falls in a fixed target set

Rules are pure: same mapping and rows in, same result out, exceptions in
input row order. Bad cells are handled row by row and never abort a run.
"""

import math
import re
import logging
import operator
from collections import Counter, defaultdict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from workpaper import config
from workpaper.column_resolver import missing_fields
from workpaper.errors import RowShapeError, UnknownRuleError, ValidationError
from workpaper.schemas import AnalyticsRunRequest, AnalyticsRunResponse

logger = logging.getLogger(__name__)

Row = List[Any]
ColumnMapping = Dict[str, int]

MAPPING_FAILED_MESSAGE = "Test failed. Please check your column mapping and try again."

NUMERIC_PREFIX = re.compile(r"[+-]?(?:Infinity|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")

# ============================================================================
# Result Types
# ============================================================================

@dataclass
class RuleResult:
    """Outcome of one rule over a full dataset."""
    exceptions: List[Row]
    exception_count: int
    total_rows: int

# ============================================================================
# Cell Helpers
# ============================================================================

def cell_value(row: Row, index: int) -> Any:
    """Cell at index, or None when the row is too short."""
    try:
        return row[index]
    except (IndexError, TypeError, KeyError):
        return None


def cell_text(value: Any) -> str:
    """Trimmed string form of a cell; integral floats drop their '.0'."""
    if value is None:
        return ""
    if isinstance(value, float):
        if math.isnan(value):
            return ""
        if value.is_integer():
            return str(int(value))
    return str(value).strip()


def parse_number(value: Any) -> float:
    """
    Parse a cell as a float or raise RowShapeError.

    Text cells are read by their leading numeric prefix, so "-5 pcs" is -5
    and "12,000" is 12. Only plain decimal/exponent syntax and "Infinity"
    count; "inf", "nan" and digit separators do not.
    """
    if value is None or isinstance(value, bool):
        raise RowShapeError(f"Not a number: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    if not text:
        raise RowShapeError("Empty numeric cell")
    match = NUMERIC_PREFIX.match(text)
    if match is None:
        raise RowShapeError(f"Not a number: {text!r}")
    number = match.group(0)
    if number.lstrip("+-") == "Infinity":
        return float(number.replace("Infinity", "inf"))
    return float(number)


def select_rows(rows: List[Row], predicate: Callable[[Row], bool]) -> List[Row]:
    """
    Rows for which predicate holds, in input order.

    Large datasets are scanned in chunks on a thread pool; hit indices are
    sorted back into row order before the rows are returned.
    """
    total = len(rows)
    workers = config.ANALYTICS_MAX_WORKERS
    if workers <= 1 or total < config.ANALYTICS_PARALLEL_THRESHOLD:
        return [row for row in rows if predicate(row)]

    chunk_size = -(-total // workers)

    def scan(start: int) -> List[int]:
        end = min(start + chunk_size, total)
        return [i for i in range(start, end) if predicate(rows[i])]

    with ThreadPoolExecutor(max_workers=workers) as pool:
        hits = [i for chunk in pool.map(scan, range(0, total, chunk_size)) for i in chunk]
    hits.sort()
    logger.debug(f"Scanned {total} rows in {-(-total // chunk_size)} chunks")
    return [rows[i] for i in hits]

# ============================================================================
# Rule Families
# ============================================================================

class AnalyticsRule:
    """Base class for rule families."""

    family: str = ""

    def __init__(self, *fields: str):
        self.required_fields: List[str] = list(fields)

    def columns(self, mapping: ColumnMapping) -> List[int]:
        cols = []
        for field in self.required_fields:
            index = (mapping or {}).get(field)
            if isinstance(index, bool) or not isinstance(index, int) or index < 0:
                raise ValidationError(f"Column mapping is missing '{field}'", target=field)
            cols.append(index)
        return cols

    def build_predicate(self, cols: List[int], rows: List[Row]) -> Callable[[Row], bool]:
        raise NotImplementedError

    def run(self, mapping: ColumnMapping, rows: List[Row]) -> RuleResult:
        rows = list(rows or [])
        predicate = self.build_predicate(self.columns(mapping), rows)
        exceptions = select_rows(rows, predicate)
        return RuleResult(
            exceptions=exceptions,
            exception_count=len(exceptions),
            total_rows=len(rows),
        )

    def __call__(self, mapping: ColumnMapping, rows: List[Row]) -> RuleResult:
        return self.run(mapping, rows)


class DuplicateKeyRule(AnalyticsRule):
    """Rows whose key (one or more fields) occurs more than once."""

    family = "duplicate_key"
    separator = "||"

    def _key(self, row: Row, cols: List[int]) -> Optional[str]:
        parts = [cell_text(cell_value(row, c)) for c in cols]
        if not all(parts):
            return None
        return self.separator.join(parts)

    def build_predicate(self, cols, rows):
        counts = Counter(k for k in (self._key(row, cols) for row in rows) if k is not None)

        def is_exception(row: Row) -> bool:
            key = self._key(row, cols)
            return key is not None and counts[key] > 1

        return is_exception


class SharedAttributeRule(AnalyticsRule):
    """Rows whose group value is shared by more than one distinct member value."""

    family = "shared_attribute"

    def __init__(self, group_field: str, member_field: str):
        super().__init__(group_field, member_field)

    def build_predicate(self, cols, rows):
        group_col, member_col = cols
        members = defaultdict(set)
        for row in rows:
            group = cell_text(cell_value(row, group_col))
            member = cell_text(cell_value(row, member_col))
            if group and member:
                members[group].add(member)
        shared = {group for group, seen in members.items() if len(seen) > 1}

        def is_exception(row: Row) -> bool:
            return cell_text(cell_value(row, group_col)) in shared

        return is_exception


class ThresholdRule(AnalyticsRule):
    """Rows whose numeric value satisfies `op(value, limit)`; unparsable cells never match."""

    family = "threshold"

    def __init__(self, field: str, op: Callable[[float, float], bool], limit: float):
        super().__init__(field)
        self.op = op
        self.limit = limit

    def build_predicate(self, cols, rows):
        col = cols[0]

        def is_exception(row: Row) -> bool:
            try:
                value = parse_number(cell_value(row, col))
            except RowShapeError:
                return False
            return bool(self.op(value, self.limit))

        return is_exception


class MembershipRule(AnalyticsRule):
    """Rows whose trimmed, lowercased value is in the target set."""

    family = "membership"

    def __init__(self, field: str, targets: Iterable[str]):
        super().__init__(field)
        self.targets = frozenset(t.strip().lower() for t in targets)

    def build_predicate(self, cols, rows):
        col = cols[0]

        def is_exception(row: Row) -> bool:
            return cell_text(cell_value(row, col)).lower() in self.targets

        return is_exception

# ============================================================================
# Registry
# ============================================================================

PRIVILEGED_ACCESS_LEVELS = {"admin", "super user", "superuser", "super_user"}
OVERTIME_WEEKLY_LIMIT = 20

RULE_REGISTRY: Dict[str, AnalyticsRule] = {}


def register_rule(test_id: str, rule: AnalyticsRule) -> None:
    """Register (or replace) the rule that runs for a catalogue test id."""
    RULE_REGISTRY[test_id] = rule
    logger.debug(f"Registered analytics rule {test_id} ({rule.family})")


def is_registered(test_id: Optional[str]) -> bool:
    return bool(test_id) and test_id in RULE_REGISTRY


def get_rule(test_id: str) -> AnalyticsRule:
    rule = RULE_REGISTRY.get(test_id)
    if rule is None:
        raise UnknownRuleError(test_id)
    return rule


def required_fields_for(test_id: str) -> List[str]:
    rule = RULE_REGISTRY.get(test_id)
    return list(rule.required_fields) if rule else []


register_rule("RC-001", DuplicateKeyRule("Invoice Number"))
register_rule("PP-001", DuplicateKeyRule("Vendor ID"))
register_rule("PP-002", DuplicateKeyRule("Invoice Number", "Vendor ID"))
register_rule("HR-002", SharedAttributeRule("Bank Account Number", "Employee ID"))
register_rule("HR-004", ThresholdRule("Overtime Hours", operator.gt, OVERTIME_WEEKLY_LIMIT))
register_rule("INV-001", ThresholdRule("Quantity on Hand", operator.lt, 0))
register_rule("IT-002", SharedAttributeRule("Employee ID", "User ID"))
register_rule("IT-003", MembershipRule("Access Level", PRIVILEGED_ACCESS_LEVELS))

# ============================================================================
# Execution
# ============================================================================

def run_test(test_id: str, mapping: ColumnMapping, rows: List[Row]) -> RuleResult:
    """Run a registered test over the full dataset."""
    rule = get_rule(test_id)
    result = rule.run(mapping, rows)
    logger.info(
        f"Analytics test {test_id}: {result.exception_count} exception(s) "
        f"in {result.total_rows} row(s)"
    )
    return result


def _coerce_mapping(raw: Dict[str, Any]) -> ColumnMapping:
    """Keep integer (or integer-string) indices; drop anything else."""
    mapping: ColumnMapping = {}
    for field, index in (raw or {}).items():
        if isinstance(index, bool):
            continue
        if isinstance(index, int):
            mapping[field] = index
        elif isinstance(index, str) and index.strip().isdigit():
            mapping[field] = int(index.strip())
    return mapping


def validate_request(request: AnalyticsRunRequest) -> Tuple[str, ColumnMapping]:
    """Check presence of request fields and completeness of the mapping."""
    absent = [
        name for name, value in (
            ("testId", request.test_id),
            ("columnMapping", request.column_mapping),
            ("rows", request.rows),
        )
        if value is None or value == ""
    ]
    if absent:
        raise ValidationError(f"Missing required fields: {', '.join(absent)}")

    rule = get_rule(request.test_id)
    mapping = _coerce_mapping(request.column_mapping)
    column_count = len(request.headers) if request.headers else None
    missing = missing_fields(rule.required_fields, mapping, column_count)
    if missing:
        raise ValidationError(f"Column mapping incomplete for: {', '.join(missing)}")
    return request.test_id, mapping


def run_analytics(request: AnalyticsRunRequest, sample_cap: Optional[int] = None) -> AnalyticsRunResponse:
    """
    Validate and run a test request.

    Raises ValidationError / UnknownRuleError for bad requests. Any other
    failure is logged and reported as an unsuccessful response.
    """
    test_id, mapping = validate_request(request)
    cap = config.ANALYTICS_SAMPLE_CAP if sample_cap is None else sample_cap

    try:
        result = run_test(test_id, mapping, request.rows)
    except Exception:
        logger.exception(f"Analytics test {test_id} failed")
        return AnalyticsRunResponse(success=False, test_id=test_id, error=MAPPING_FAILED_MESSAGE)

    return AnalyticsRunResponse(
        success=True,
        test_id=test_id,
        exception_count=result.exception_count,
        total_rows=result.total_rows,
        headers=list(request.headers),
        sample_rows=result.exceptions[:max(cap, 0)],
    )
