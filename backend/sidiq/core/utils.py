from datetime import date, datetime

NAMA_BULAN = [
    "Januari", "Februari", "Maret", "April", "Mei", "Juni",
    "Juli", "Agustus", "September", "Oktober", "November", "Desember",
]


def month_start(value=None) -> date:
    """Tanggal 1 dari bulan yang diberikan (default: bulan ini)."""
    if value is None:
        value = date.today()
    if isinstance(value, datetime):
        value = value.date()
    return value.replace(day=1)


def format_number(amount) -> str:
    # 1000000 -> "1.000.000" (format Indonesia, titik = pemisah ribuan)
    return f"{int(amount):,}".replace(",", ".")


def format_currency(amount) -> str:
    return f"Rp {format_number(amount)}"


def format_month_year(value: date) -> str:
    # date(2024, 6, 1) -> "Juni 2024"
    return f"{NAMA_BULAN[value.month - 1]} {value.year}"


def format_short_date(value) -> str:
    # Mirip toLocaleDateString('id-ID'): 1/6/2024
    if value is None:
        return ""
    return f"{value.day}/{value.month}/{value.year}"
