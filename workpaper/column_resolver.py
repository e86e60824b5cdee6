"""
Column Resolver

Suggests which column of an uploaded dataset holds each field a test needs.

Matching is exact on the normalized name, or by alias: FIELD_ALIASES is a
plain registry keyed by normalized field name, so new spellings are added
with register_aliases() and never by touching the matching code.

The resolver only suggests. It never raises, leaves unmatched fields out of
the mapping, and does not require the mapping to be complete; callers check
missing_fields() before running a test.
"""

import re
import logging
from typing import Any, Dict, Iterable, List, Optional, Set

logger = logging.getLogger(__name__)

_NON_ALNUM = re.compile(r"[^a-z0-9]")


def normalize(value: Any) -> str:
    """Lowercase and strip every character that is not a letter or digit."""
    if value is None:
        return ""
    return _NON_ALNUM.sub("", str(value).lower())


# normalized field -> normalized aliases
FIELD_ALIASES: Dict[str, Set[str]] = {
    "invoicenumber": {"invno", "invnum", "invoiceno", "invoicenum", "inv"},
    "vendorid": {"vendorno", "vendorcode", "supplierid", "suppliercode", "venid"},
    "employeeid": {"empid", "employeeno", "empno", "staffid", "workerid"},
    "bankaccountnumber": {"bankaccount", "bankaccno", "accountno", "accountnumber", "bankno"},
    "quantityonhand": {"qty", "qtyonhand", "quantity", "stockqty", "onhand"},
    "accesslevel": {"access", "role", "permission", "accesstype", "userrole", "privilege"},
    "userid": {"username", "login", "loginid", "account", "accountid", "usercode"},
    "overtimehours": {"overtime", "othours", "ot", "overtimehrs", "othrs"},
}


def register_aliases(field: str, *aliases: str) -> None:
    """Add alternate header spellings for a field (normalized on the way in)."""
    key = normalize(field)
    if not key:
        return
    bucket = FIELD_ALIASES.setdefault(key, set())
    bucket.update(a for a in (normalize(alias) for alias in aliases) if a)


def aliases_for(field: str) -> Set[str]:
    return set(FIELD_ALIASES.get(normalize(field), set()))


def header_matches(header: Any, field: str) -> bool:
    """True if a file header plausibly holds the field."""
    h = normalize(header)
    if not h:
        return False
    f = normalize(field)
    if h == f:
        return True
    return h in FIELD_ALIASES.get(f, ())


def find_header(field: str, headers: Iterable[Any]) -> Optional[int]:
    """Index of the first header (file order) that matches the field."""
    for index, header in enumerate(headers or []):
        if header_matches(header, field):
            return index
    return None


def resolve_columns(required_fields: Iterable[str], headers: Iterable[Any]) -> Dict[str, int]:
    """
    Propose a {field: column index} mapping.

    Each field takes the first matching header in file order. Fields with no
    match are omitted.
    """
    headers = list(headers or [])
    mapping: Dict[str, int] = {}
    for field in required_fields or []:
        index = find_header(field, headers)
        if index is not None:
            mapping[field] = index
    logger.debug(f"Resolved {len(mapping)} column(s) from {len(headers)} header(s)")
    return mapping


def missing_fields(
    required_fields: Iterable[str],
    mapping: Dict[str, Any],
    column_count: Optional[int] = None,
) -> List[str]:
    """Required fields with no usable column index in the mapping."""
    missing = []
    for field in required_fields or []:
        index = (mapping or {}).get(field)
        if isinstance(index, bool) or not isinstance(index, int) or index < 0:
            missing.append(field)
        elif column_count is not None and index >= column_count:
            missing.append(field)
    return missing
