"""
Export data iuran ke xlsx / csv / json / xml.

Fungsi murni: list submission masuk, bytes keluar. Tidak ada akses DB di sini.
"""
import json
from datetime import date, datetime
from io import BytesIO
import xml.etree.ElementTree as ET

import pandas as pd

from sidiq.core.utils import format_month_year, format_short_date

FORMATS = {
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "csv": "text/csv; charset=utf-8",
    "json": "application/json",
    "xml": "application/xml",
}

RECORD_FIELDS = (
    "id", "nama_jamaah", "bulan_tahun", "timestamp_submitted",
    "iuran_1", "iuran_2", "iuran_3", "iuran_4", "iuran_5",
    "total_iuran", "created_at", "updated_at",
)


def _iso(value):
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def filter_submissions(items, start_date: date = None, end_date: date = None, jamaah_name: str = ""):
    """Filter halaman export: rentang bulan_tahun (inklusif) dan nama jamaah (case-insensitive)."""
    term = (jamaah_name or "").strip().lower()
    result = []
    for item in items:
        if start_date and item.bulan_tahun < start_date:
            continue
        if end_date and item.bulan_tahun > end_date:
            continue
        if term and term not in item.nama_jamaah.lower():
            continue
        result.append(item)
    return result


def export_filename(fmt: str, now: datetime = None) -> str:
    now = now or datetime.now()
    return f"iuran_export_{now.strftime('%Y-%m-%dT%H-%M-%S')}.{fmt}"


def to_table(items) -> pd.DataFrame:
    # Kolom versi "manusia" untuk spreadsheet
    rows = [{
        "ID": item.id,
        "Nama Jamaah": item.nama_jamaah,
        "Bulan/Tahun": format_month_year(item.bulan_tahun),
        "Tanggal Submit": format_short_date(item.timestamp_submitted),
        "Iuran 1": item.iuran_1,
        "Iuran 2": item.iuran_2,
        "Iuran 3": item.iuran_3,
        "Iuran 4": item.iuran_4,
        "Iuran 5": item.iuran_5,
        "Total Iuran": item.total_iuran,
        "Dibuat": format_short_date(item.created_at),
        "Diupdate": format_short_date(item.updated_at),
    } for item in items]
    columns = ["ID", "Nama Jamaah", "Bulan/Tahun", "Tanggal Submit", "Iuran 1", "Iuran 2", "Iuran 3",
               "Iuran 4", "Iuran 5", "Total Iuran", "Dibuat", "Diupdate"]
    return pd.DataFrame(rows, columns=columns)


def to_xlsx(items) -> bytes:
    df = to_table(items)
    output = BytesIO()
    with pd.ExcelWriter(output, engine='xlsxwriter') as writer:
        df.to_excel(writer, index=False, sheet_name='Data Iuran')
        # Lebar kolom rata 15 biar kebaca
        writer.sheets['Data Iuran'].set_column(0, len(df.columns) - 1, 15)
    output.seek(0)
    return output.read()


def to_csv(items) -> bytes:
    return to_table(items).to_csv(index=False).encode("utf-8")


def to_json(items, now: datetime = None) -> bytes:
    payload = {
        "exported_at": (now or datetime.utcnow()).isoformat(),
        "total_records": len(items),
        "data": [{f: _iso(getattr(item, f)) for f in RECORD_FIELDS} for item in items],
    }
    return json.dumps(payload, indent=2, ensure_ascii=False).encode("utf-8")


def to_xml(items, now: datetime = None) -> bytes:
    root = ET.Element("iuran_data")

    meta = ET.SubElement(root, "meta")
    ET.SubElement(meta, "exported_at").text = (now or datetime.utcnow()).isoformat()
    ET.SubElement(meta, "total_records").text = str(len(items))

    submissions = ET.SubElement(root, "submissions")
    for item in items:
        node = ET.SubElement(submissions, "submission")
        for field in RECORD_FIELDS:
            value = _iso(getattr(item, field))
            ET.SubElement(node, field).text = "" if value is None else str(value)

    ET.indent(root, space="  ")
    return ET.tostring(root, encoding="utf-8", xml_declaration=True)


WRITERS = {
    "xlsx": to_xlsx,
    "csv": to_csv,
    "json": to_json,
    "xml": to_xml,
}


def export(items, fmt: str) -> bytes:
    writer = WRITERS.get(fmt)
    if writer is None:
        raise ValueError(f"Format export tidak dikenal: {fmt}")
    return writer(items)
