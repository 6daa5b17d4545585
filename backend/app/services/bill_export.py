"""
Excel export of a billing period.

One row per bill with both meter readings, rates and amounts, followed
by a totals row. Amounts come from the recomputed bill breakdown.
"""

from io import BytesIO
from typing import List, Optional

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side

from backend.app.models.billing_enums import BillStatus
from backend.app.schemas.billing import BillDetail, UtilityBreakdown

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

THAI_MONTHS = (
    "มกราคม", "กุมภาพันธ์", "มีนาคม", "เมษายน", "พฤษภาคม", "มิถุนายน",
    "กรกฎาคม", "สิงหาคม", "กันยายน", "ตุลาคม", "พฤศจิกายน", "ธันวาคม",
)

STATUS_LABELS = {
    BillStatus.DRAFT: "ร่าง",
    BillStatus.SENT: "ส่งแล้ว",
    BillStatus.PAID: "ชำระแล้ว",
}

HEADERS = (
    "ลำดับ", "เลขที่ห้อง", "ชื่อ-สกุล", "ค่าบำรุงรักษา",
    "มิเตอร์ไฟฟ้า\nเริ่มต้น", "มิเตอร์ไฟฟ้า\nสิ้นสุด", "หน่วยใช้ไฟฟ้า", "อัตราไฟฟ้า\n(บาท/หน่วย)", "ค่าไฟฟ้า",
    "มิเตอร์น้ำ\nเริ่มต้น", "มิเตอร์น้ำ\nสิ้นสุด", "หน่วยใช้น้ำ", "อัตราน้ำ\n(บาท/หน่วย)", "ค่าน้ำ",
    "รวมทั้งสิ้น", "สถานะ",
)

COLUMN_WIDTHS = (6, 14, 22, 11, 9, 9, 9, 10, 11, 9, 9, 9, 10, 11, 12, 9)

# 1-based columns
MONEY_COLUMNS = (4, 8, 9, 13, 14, 15)
COUNT_COLUMNS = (5, 6, 7, 10, 11, 12)
SUM_COLUMNS = (4, 9, 14, 15)

TITLE = "โรงพยาบาลราชพิพัฒน์ - หอพักรวงผึ้ง"
HEADER_ROW = 3

_thin = Side(style="thin")
_border = Border(top=_thin, left=_thin, bottom=_thin, right=_thin)


def period_label(year: int, month: int) -> str:
    return f"{THAI_MONTHS[month - 1]} {year}"


def _reading_cells(breakdown: Optional[UtilityBreakdown], amount: float) -> list:
    if breakdown is None:
        return [0, 0, 0, 0, amount]
    return [breakdown.meter_start, breakdown.meter_end or 0, breakdown.usage, breakdown.rate_per_unit, amount]


def bill_row(index: int, detail: BillDetail) -> list:
    electric_amount = detail.electric.amount if detail.electric else 0
    water_amount = detail.water.amount if detail.water else 0
    return [
        index,
        f"{detail.building_name} - {detail.room_number}",
        detail.tenant_name,
        detail.maintenance_fee,
        *_reading_cells(detail.electric, electric_amount),
        *_reading_cells(detail.water, water_amount),
        detail.total_amount,
        STATUS_LABELS.get(detail.status, detail.status.value),
    ]


def build_bills_workbook(details: List[BillDetail], year: int, month: int) -> bytes:
    """Render the period's bills as an ``.xlsx`` document."""
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = f"บิล {period_label(year, month)}"[:31]

    last_column = len(HEADERS)
    for column, width in enumerate(COLUMN_WIDTHS, start=1):
        sheet.column_dimensions[sheet.cell(row=1, column=column).column_letter].width = width

    sheet.page_setup.paperSize = sheet.PAPERSIZE_A4
    sheet.page_setup.orientation = sheet.ORIENTATION_PORTRAIT
    sheet.page_setup.fitToWidth = 1
    sheet.page_setup.fitToHeight = 0
    sheet.sheet_properties.pageSetUpPr.fitToPage = True

    sheet.merge_cells(start_row=1, start_column=1, end_row=1, end_column=last_column)
    sheet.cell(row=1, column=1, value=TITLE).font = Font(size=14, bold=True)
    sheet.merge_cells(start_row=2, start_column=1, end_row=2, end_column=last_column)
    sheet.cell(row=2, column=1, value=f"รายงานบิลค่าใช้จ่าย รอบบิล {period_label(year, month)}").font = Font(size=12, bold=True)
    for row in (1, 2):
        sheet.cell(row=row, column=1).alignment = Alignment(horizontal="center", vertical="center")

    header_fill = PatternFill(fill_type="solid", fgColor="FFE0E0E0")
    for column, label in enumerate(HEADERS, start=1):
        cell = sheet.cell(row=HEADER_ROW, column=column, value=label)
        cell.font = Font(bold=True, size=8)
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)
        cell.fill = header_fill
        cell.border = _border
    sheet.row_dimensions[HEADER_ROW].height = 30

    for index, detail in enumerate(details, start=1):
        row = HEADER_ROW + index
        for column, value in enumerate(bill_row(index, detail), start=1):
            cell = sheet.cell(row=row, column=column, value=value)
            cell.font = Font(size=8)
            cell.border = _border
            if column in MONEY_COLUMNS:
                cell.number_format = "#,##0.00"
            elif column in COUNT_COLUMNS:
                cell.number_format = "#,##0"

    first_data, last_data = HEADER_ROW + 1, HEADER_ROW + len(details)
    total_row = last_data + 1
    total_fill = PatternFill(fill_type="solid", fgColor="FFFFE0E0")
    sheet.cell(row=total_row, column=1, value="รวม")
    for column in SUM_COLUMNS:
        letter = sheet.cell(row=1, column=column).column_letter
        cell = sheet.cell(row=total_row, column=column, value=f"=SUM({letter}{first_data}:{letter}{last_data})")
        cell.number_format = "#,##0.00"
    for column in range(1, last_column + 1):
        cell = sheet.cell(row=total_row, column=column)
        cell.font = Font(bold=True, size=8)
        cell.fill = total_fill
        cell.border = _border

    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()
