"""
Parsing of `lvm fullreport` output.

The report is requested in lvm's JSON report format with byte units and no
suffix, so every column is keyed by name and every size is an integer
string. Each row is validated against a pydantic model; a row that does not
fit raises ReportParseError rather than being skipped.
"""

import json
from typing import Any, ClassVar, Dict, List, NamedTuple, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from lvmctl.lib.exceptions import ReportParseError

VG_COLUMNS = ["vg_name", "vg_uuid", "vg_size", "vg_free"]

LV_COLUMNS = [
    "lv_uuid",
    "lv_name",
    "lv_full_name",
    "lv_path",
    "lv_size",
    "lv_kernel_major",
    "lv_kernel_minor",
    "origin",
    "origin_size",
    "pool_lv",
    "lv_tags",
    "lv_attr",
    "vg_name",
    "data_percent",
    "metadata_percent",
]


def fullreport_args(vg_name: Optional[str] = None) -> List[str]:
    """Arguments of the fullreport query, optionally scoped to one VG."""
    args = [
        "fullreport",
        "--reportformat", "json",
        "--units", "b",
        "--nosuffix",
        "--configreport", "vg", "-o", ",".join(VG_COLUMNS),
        "--configreport", "lv", "-o", ",".join(LV_COLUMNS),
        "--configreport", "pv", "-o,",
        "--configreport", "pvseg", "-o,",
        "--configreport", "seg", "-o,",
    ]
    if vg_name:
        args.append(vg_name)
    return args


class _ReportRow(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    # Columns whose empty value means "not applicable".
    optional_columns: ClassVar[Tuple[str, ...]] = ()

    @model_validator(mode="before")
    @classmethod
    def normalize_columns(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        row = {}
        for key, value in data.items():
            if isinstance(value, str):
                value = value.strip()
                if value == "" and key in cls.optional_columns:
                    value = None
            row[key] = value
        return row


class VGReport(_ReportRow):
    """One row of the vg section."""

    vg_name: str = Field(..., min_length=1)
    vg_uuid: str
    vg_size: int = Field(..., ge=0)
    vg_free: int = Field(..., ge=0)


class LVReport(_ReportRow):
    """One row of the lv section."""

    optional_columns: ClassVar[Tuple[str, ...]] = ("origin_size", "data_percent", "metadata_percent")

    lv_uuid: str
    lv_name: str = Field(..., min_length=1)
    lv_full_name: str
    lv_path: str
    lv_size: int = Field(..., ge=0)
    lv_kernel_major: int
    lv_kernel_minor: int
    origin: str
    origin_size: Optional[int]
    pool_lv: str
    lv_tags: List[str]
    lv_attr: str = Field(..., min_length=1)
    vg_name: str = Field(..., min_length=1)
    data_percent: Optional[float]
    metadata_percent: Optional[float]

    @model_validator(mode="before")
    @classmethod
    def split_tags(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("lv_tags"), str):
            data = dict(data)
            data["lv_tags"] = [t.strip() for t in data["lv_tags"].split(",") if t.strip()]
        return data


class FullReport(NamedTuple):
    vgs: List[VGReport]
    lvs: List[LVReport]


def _rows(section: Dict[str, Any], key: str, index: int) -> List[Dict[str, Any]]:
    rows = section.get(key, [])
    if not isinstance(rows, list):
        raise ReportParseError(f"report {index}: {key!r} is not a list")
    return rows


def _validate(model, row: Any, where: str):
    try:
        return model.model_validate(row)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or '<row>'}: {err['msg']}" for err in e.errors()
        )
        raise ReportParseError(f"invalid {where}: {problems}") from e


def parse_report(source: Union[str, bytes, Any]) -> FullReport:
    """
    Parse the JSON output of `lvm fullreport`.

    Args:
        source: Report text, or a readable object returning it

    Returns:
        FullReport with the vg and lv rows in report order

    Raises:
        ReportParseError: If the output is not a report or a row lacks a column
    """
    try:
        if isinstance(source, (str, bytes, bytearray)):
            doc = json.loads(source)
        else:
            doc = json.load(source)
    except ValueError as e:
        raise ReportParseError(f"report is not valid JSON: {e}") from e

    if not isinstance(doc, dict) or not isinstance(doc.get("report"), list):
        raise ReportParseError("output has no 'report' list")

    vgs: List[VGReport] = []
    lvs: List[LVReport] = []
    for index, section in enumerate(doc["report"]):
        if not isinstance(section, dict):
            raise ReportParseError(f"report {index} is not an object")
        for row_no, row in enumerate(_rows(section, "vg", index)):
            vgs.append(_validate(VGReport, row, f"vg row {row_no} of report {index}"))
        for row_no, row in enumerate(_rows(section, "lv", index)):
            lvs.append(_validate(LVReport, row, f"lv row {row_no} of report {index}"))
    return FullReport(vgs=vgs, lvs=lvs)
