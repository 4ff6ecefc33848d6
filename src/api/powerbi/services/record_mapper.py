import hashlib
import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple
from src.api.common.constants.sync import EntityType, DATED_ENTITY_TYPES
from src.api.powerbi.exceptions import MappingFailure

logger = logging.getLogger(__name__)

NUMERIC_FIELDS = {
    "amount", "quantity", "total_value", "cost", "min_quantity", "max_quantity",
    "last_cost", "average_cost", "conversion_factor",
}

# Local field holding the business date of each dated entity; stored as record_date
RECORD_DATE_FIELDS = {
    EntityType.SALES: "sale_date",
    EntityType.CASH_FLOW: "transaction_date",
    EntityType.CASH_FLOW_STATEMENT: "transaction_date",
}

ALLOWED_FIELDS: Dict[EntityType, set] = {
    EntityType.COMPANIES: {"name", "fantasy_name", "cnpj", "status", "code"},
    EntityType.EMPLOYEES: {"name", "external_company_id", "external_code", "email", "department",
                           "position", "status", "code"},
    EntityType.PRODUCTS: {"name", "external_company_id", "type", "category", "product_group",
                          "code", "description"},
    EntityType.SALES: {"venda_id", "external_product_id", "external_employee_id", "external_company_id",
                       "sale_mode", "period", "quantity", "total_value", "cost"},
    EntityType.CASH_FLOW: {"external_employee_id", "external_company_id", "payment_method",
                           "transaction_type", "transaction_mode", "period", "amount"},
    EntityType.CASH_FLOW_STATEMENT: {"category_id", "external_company_id", "amount"},
    EntityType.CATEGORIES: {"name", "external_company_id", "layer_01", "layer_02", "layer_03",
                            "layer_04", "code", "parent_id"},
    EntityType.STOCK: {"external_product_id", "product_name", "product_group", "external_company_id",
                       "unit", "purchase_unit", "conversion_factor", "min_quantity", "max_quantity",
                       "quantity", "last_cost", "average_cost", "updated_at_external"},
}

REQUIRED_FIELDS: Dict[EntityType, Tuple[str, ...]] = {
    EntityType.COMPANIES: ("external_id",),
    EntityType.EMPLOYEES: ("external_id", "external_company_id"),
    EntityType.PRODUCTS: ("external_id",),
    EntityType.SALES: ("external_id", "external_product_id", "external_company_id", "record_date"),
    EntityType.CASH_FLOW: ("external_id", "record_date", "amount"),
    EntityType.CASH_FLOW_STATEMENT: ("external_id", "category_id", "record_date", "amount"),
    EntityType.CATEGORIES: ("external_id",),
    EntityType.STOCK: ("external_id", "external_product_id", "quantity"),
}

# Numeric fields looked up in the raw row when the mapping left them empty
RAW_DATA_ALIASES: Dict[EntityType, Dict[str, Tuple[str, ...]]] = {
    EntityType.CASH_FLOW: {"amount": ("valor", "value")},
    EntityType.SALES: {"quantity": ("qtd", "quantidade"), "total_value": ("valor_total", "totalvalue")},
}

# Required numeric fields that default to zero when nothing can be recovered
ZERO_DEFAULT_FIELDS: Dict[EntityType, Tuple[str, ...]] = {
    EntityType.SALES: ("quantity", "total_value"),
}

ID_COLUMNS = ("codigo", "id", "code")


@dataclass
class MappingResult:
    records: List[Dict[str, Any]] = field(default_factory=list)
    failures: List[MappingFailure] = field(default_factory=list)


def find_field_value(row: Mapping[str, Any], name: str) -> Any:
    """
    Look a column up in an upstream row.

    Upstream keys come as "Table[column]", "[column]" or plain names; the
    configured name may use any of these forms too. Case is ignored as a
    last resort.
    """
    if name in row:
        return row[name]
    clean = name[1:-1] if name.startswith("[") and name.endswith("]") else name
    bracketed = f"[{clean}]"
    for key in row:
        if key == clean or key == bracketed or key.endswith(bracketed):
            return row[key]
    lowered = clean.lower()
    for key in row:
        key_lower = key.lower()
        if key_lower == lowered or key_lower == f"[{lowered}]" or key_lower.endswith(f"[{lowered}]"):
            return row[key]
    return None


def to_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        return None


def to_number(value: Any) -> Optional[float]:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def to_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or None


def recover_numeric(raw_data: Mapping[str, Any], field_name: str, aliases: Tuple[str, ...]) -> Optional[float]:
    """Find a numeric value in the raw row by exact then partial key match"""
    for alias in (field_name, f"[{field_name}]", *aliases):
        number = to_number(raw_data.get(alias))
        if number is not None:
            return number
    for alias in (field_name, *aliases):
        for key, value in raw_data.items():
            if alias.lower() in key.lower():
                number = to_number(value)
                if number is not None:
                    return number
    return None


def stable_hash(payload: Any) -> str:
    encoded = json.dumps(payload, sort_keys=True, default=str).encode("utf-8")
    return hashlib.sha1(encoded).hexdigest()[:16]


def generate_external_id(record: Dict[str, Any], entity_type: EntityType, row: Mapping[str, Any]) -> str:
    """Deterministic business key for rows whose mapping has no external_id"""
    if entity_type == EntityType.CASH_FLOW:
        cash_id = to_text(find_field_value(row, "Idcaixa"))
        if cash_id:
            return cash_id.lower()
        return "cf_" + stable_hash({
            "date": record.get("record_date"),
            "employee": record.get("external_employee_id"),
            "company": record.get("external_company_id"),
            "amount": record.get("amount"),
            "type": record.get("transaction_type"),
            "method": record.get("payment_method"),
            "mode": record.get("transaction_mode"),
        })

    if entity_type == EntityType.CASH_FLOW_STATEMENT:
        record_date = record.get("record_date")
        category_id = record.get("category_id")
        company_id = record.get("external_company_id") or ""
        if record_date and category_id:
            return f"{record_date.isoformat()}|{category_id}|{company_id}".lower()
        return "cfs_" + stable_hash({
            "date": record_date,
            "category": category_id,
            "company": company_id,
            "amount": record.get("amount"),
        })

    for column in ID_COLUMNS:
        value = to_text(record.get(column)) or to_text(find_field_value(row, column))
        if value:
            return value.lower()
    return f"{entity_type.value}_{stable_hash(dict(row))}"


def map_row(
    row: Mapping[str, Any],
    field_mapping: Mapping[str, str],
    entity_type: EntityType,
    group_id: int,
) -> Dict[str, Any]:
    """
    Turn one upstream row into a destination record.

    Args:
        row: Upstream row as returned by the analytics API
        field_mapping: {upstream column: local field}
        entity_type: Destination entity
        group_id: Tenant group owning the record

    Returns:
        Dict of destination column values, raw_data included

    Raises:
        MappingFailure: If a required field is missing or has the wrong type
    """
    entity_type = EntityType(entity_type)
    date_field = RECORD_DATE_FIELDS.get(entity_type)
    allowed = ALLOWED_FIELDS[entity_type]
    mapped: Dict[str, Any] = {}

    for upstream_name, local_field in field_mapping.items():
        if not local_field or not isinstance(local_field, str):
            continue
        if local_field == "codigo":
            local_field = "code"
        value = find_field_value(row, upstream_name)
        if value is None:
            continue

        if local_field in (date_field, "record_date"):
            parsed = to_date(value)
            if parsed is None:
                raise MappingFailure(f"{local_field} is not a valid date: {value}")
            mapped["record_date"] = parsed
        elif local_field in NUMERIC_FIELDS:
            number = to_number(value)
            if number is None:
                raise MappingFailure(f"{local_field} is not a number: {value}")
            mapped[local_field] = number
        elif "date" in local_field.lower():
            parsed = to_date(value)
            mapped[local_field] = parsed.isoformat() if parsed else to_text(value)
        else:
            mapped[local_field] = to_text(value)

    for numeric_field, aliases in RAW_DATA_ALIASES.get(entity_type, {}).items():
        if not mapped.get(numeric_field):
            recovered = recover_numeric(row, numeric_field, aliases)
            if recovered is not None:
                mapped[numeric_field] = recovered
    for numeric_field in ZERO_DEFAULT_FIELDS.get(entity_type, ()):
        mapped.setdefault(numeric_field, 0.0)

    record: Dict[str, Any] = {
        "group_id": group_id,
        "external_id": to_text(mapped.get("external_id")),
        "raw_data": dict(row),
    }
    if entity_type in DATED_ENTITY_TYPES:
        record["record_date"] = mapped.get("record_date")
    for name in allowed:
        if mapped.get(name) is not None:
            record[name] = mapped[name]

    if not record["external_id"]:
        record["external_id"] = generate_external_id({**mapped, **record}, entity_type, row)

    missing = [name for name in REQUIRED_FIELDS[entity_type]
               if record.get(name) is None or record.get(name) == ""]
    if missing:
        raise MappingFailure(f"Missing fields: {', '.join(missing)}", external_id=record["external_id"])
    return record


def map_rows(
    rows: List[Mapping[str, Any]],
    field_mapping: Mapping[str, str],
    entity_type: EntityType,
    group_id: int,
) -> MappingResult:
    """Map every row, collecting the failures instead of stopping at the first one"""
    result = MappingResult()
    for row in rows:
        try:
            result.records.append(map_row(row, field_mapping, entity_type, group_id))
        except MappingFailure as e:
            result.failures.append(e)
    if result.failures:
        logger.warning(f"{len(result.failures)}/{len(rows)} {EntityType(entity_type).value} rows skipped, "
                       f"first reason: {result.failures[0]}")
    return result
