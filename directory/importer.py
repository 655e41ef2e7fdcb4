"""Bulk import of centres from the Malaysia / Thailand Excel directories."""

from __future__ import annotations

import io
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, BinaryIO, Dict, List, Mapping, Optional, Union

import pandas as pd

from directory.data import CENTER_TYPES_TABLE, CENTRES_TABLE, COUNTRIES_TABLE
from directory.store import StoreError, SupabaseStore


logger = logging.getLogger(__name__)

PREVIEW_ROWS = 10
PROGRESS_EVERY = 25
MISSING_TOKENS = {"", "MISSING"}

# Malaysia: State, Name, Type, Address, Phone, Email, Website, Notes
# Thailand: Region, District, Name (Thai), Type (English name), Category, Description, ...
COUNTRY_CODES = {"malaysia": "MY", "thailand": "TH"}

ExcelSource = Union[str, bytes, BinaryIO]


class ImportReferenceError(Exception):
    """Countries or centre types the import maps onto are missing."""


@dataclass
class CountryStats:
    processed: int = 0
    inserted: int = 0
    errors: int = 0


@dataclass
class ImportReport:
    malaysia: CountryStats = field(default_factory=CountryStats)
    thailand: CountryStats = field(default_factory=CountryStats)
    errors: List[str] = field(default_factory=list)
    log: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def clean_value(value: object) -> Optional[str]:
    if value is None:
        return None
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        pass
    cleaned = str(value).strip()
    return None if cleaned in MISSING_TOKENS else cleaned


def center_type_for(center_types: List[Mapping[str, Any]], type_text: object) -> Optional[str]:
    """Map free-text type/category onto a centre type id."""
    if not center_types:
        return None
    text = str(type_text or "").lower()
    if "hospital" in text or "medical" in text:
        wanted = "Inpatient"
    elif "ngo" in text or "community" in text:
        wanted = "Community"
    elif "government" in text or "public" in text:
        wanted = "Outpatient"
    elif "traditional" in text:
        wanted = "Traditional"
    else:
        wanted = "Specialist"
    for t in center_types:
        if t.get("name") == wanted:
            return str(t.get("id"))
    return str(center_types[0].get("id"))


def read_first_sheet(source: ExcelSource) -> pd.DataFrame:
    if isinstance(source, bytes):
        source = io.BytesIO(source)
    df = pd.read_excel(source, sheet_name=0, dtype=object, engine="openpyxl")
    df.columns = [str(c).strip() for c in df.columns]
    return df


def malaysia_row(row: Mapping[str, Any], country_id: str, center_types: List[Mapping[str, Any]]) -> Optional[Dict[str, Any]]:
    name = clean_value(row.get("Name"))
    if not name:
        return None
    return {
        "name": name,
        "address": clean_value(row.get("Address")) or "Address not provided",
        "phone": clean_value(row.get("Phone")),
        "email": clean_value(row.get("Email")),
        "website": clean_value(row.get("Website")),
        "services": clean_value(row.get("Notes")) or clean_value(row.get("Type")) or "Services not specified",
        "country_id": country_id,
        "center_type_id": center_type_for(center_types, clean_value(row.get("Type"))),
        "accessibility": False,
        "active": True,
        "verified": False,
    }


def thailand_row(row: Mapping[str, Any], country_id: str, center_types: List[Mapping[str, Any]]) -> Optional[Dict[str, Any]]:
    # "Type" holds the English name, "Name" the Thai one.
    name = clean_value(row.get("Type")) or clean_value(row.get("Name"))
    if not name:
        return None
    return {
        "name": name,
        "address": clean_value(row.get("Address")) or "Address not provided",
        "phone": clean_value(row.get("Phone")),
        "email": clean_value(row.get("Email")),
        "website": clean_value(row.get("Website")),
        "services": clean_value(row.get("Description")) or clean_value(row.get("Category")) or "Services not specified",
        "country_id": country_id,
        "center_type_id": center_type_for(center_types, clean_value(row.get("Category"))),
        "accessibility": False,
        "active": True,
        "verified": False,
    }


ROW_BUILDERS = {"malaysia": malaysia_row, "thailand": thailand_row}


def _import_sheet(
    store: SupabaseStore,
    country: str,
    df: pd.DataFrame,
    country_id: str,
    center_types: List[Mapping[str, Any]],
    report: ImportReport,
    *,
    full_import: bool,
) -> None:
    label = country.capitalize()
    stats: CountryStats = getattr(report, country)
    build = ROW_BUILDERS[country]
    limit = len(df) if full_import else min(PREVIEW_ROWS, len(df))
    report.log.append(f"{label}: Found {len(df)} records, importing {limit}")

    for index, row in enumerate(df.head(limit).to_dict(orient="records")):
        sheet_row = index + 2
        stats.processed += 1
        centre = build(row, country_id, center_types)
        if centre is None:
            report.log.append(f"{label} row {sheet_row}: Skipped - no name")
            continue
        try:
            inserted = store.insert(CENTRES_TABLE, centre)
        except StoreError as exc:
            stats.errors += 1
            report.errors.append(f"{label} row {sheet_row}: {exc}")
            continue
        if inserted:
            stats.inserted += 1
        if index % PROGRESS_EVERY == 0:
            logger.info("%s: %d/%d processed, %d inserted", label, index + 1, limit, stats.inserted)


def import_directories(
    store: SupabaseStore,
    *,
    malaysia: Optional[ExcelSource] = None,
    thailand: Optional[ExcelSource] = None,
    full_import: bool = False,
) -> ImportReport:
    if malaysia is None and thailand is None:
        raise ValueError("Please select at least one Excel file to import")

    countries = store.select(COUNTRIES_TABLE, columns="id,code")
    center_types = store.select(CENTER_TYPES_TABLE, columns="id,name")
    ids = {c["code"]: str(c.get("id")) for c in countries if c.get("code")}
    if "MY" not in ids or "TH" not in ids or not center_types:
        raise ImportReferenceError("Required database references not found")

    report = ImportReport()
    report.log.append(f"Available center types: {', '.join(str(t.get('name')) for t in center_types)}")
    for country, source in (("malaysia", malaysia), ("thailand", thailand)):
        if source is None:
            continue
        df = read_first_sheet(source)
        _import_sheet(
            store,
            country,
            df,
            ids[COUNTRY_CODES[country]],
            center_types,
            report,
            full_import=full_import,
        )
    logger.info("import finished: MY %s, TH %s", asdict(report.malaysia), asdict(report.thailand))
    return report
