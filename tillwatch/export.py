"""
Export Layer - transaction listings as CSV or formatted Excel.
"""
from io import BytesIO
from typing import Any, Dict, List

import pandas as pd
from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

EXPORT_COLUMNS = [
    "Transaction ID", "Date", "Register ID", "Employee", "Type",
    "Amount", "Status", "Flagged", "Reason",
]

MIMETYPES = {
    "csv": "text/csv",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}


class TransactionExporter:
    """
    Exporter for the transactions list.
    Supported: 'csv', 'xlsx'
    """

    def __init__(self):
        self.currency_format = '$#,##0.00'
        self.date_format = 'yyyy-mm-dd hh:mm'
        self.header_font = Font(bold=True, color="FFFFFF")
        self.header_fill = PatternFill(start_color="1E3A5F", end_color="1E3A5F", fill_type="solid")
        self.flag_fill = PatternFill(start_color="FEE2E2", end_color="FEE2E2", fill_type="solid")
        self.border = Border(bottom=Side(style='thin', color='DDDDDD'))

    def generate(self, transactions: List[Dict[str, Any]], target_format: str = "csv") -> BytesIO:
        if target_format == "xlsx":
            return self._generate_excel(transactions)
        return self._generate_csv(transactions)

    @staticmethod
    def to_row(tx: Dict[str, Any]) -> List[Any]:
        amount = tx.get("amount")
        return [
            tx.get("transaction_id"),
            tx.get("date"),
            tx.get("register_id"),
            tx.get("employee_name"),
            tx.get("transaction_type"),
            float(amount) if amount is not None else 0.0,
            tx.get("status"),
            "Yes" if tx.get("is_flagged") else "No",
            tx.get("flagged_reason") or "",
        ]

    def _generate_csv(self, transactions: List[Dict[str, Any]]) -> BytesIO:
        df = pd.DataFrame([self.to_row(tx) for tx in transactions], columns=EXPORT_COLUMNS)
        df["Amount"] = df["Amount"].map(lambda v: f"{v:.2f}")
        output = BytesIO()
        df.to_csv(output, index=False)
        output.seek(0)
        return output

    def _generate_excel(self, transactions: List[Dict[str, Any]]) -> BytesIO:
        output = BytesIO()
        wb = Workbook()
        ws = wb.active
        ws.title = "Transactions"

        for col_idx, header in enumerate(EXPORT_COLUMNS, 1):
            cell = ws.cell(row=1, column=col_idx, value=header)
            cell.font = self.header_font
            cell.fill = self.header_fill
            cell.alignment = Alignment(horizontal='center')

        amount_col = EXPORT_COLUMNS.index("Amount") + 1
        date_col = EXPORT_COLUMNS.index("Date") + 1
        for row_idx, tx in enumerate(transactions, 2):
            for col_idx, val in enumerate(self.to_row(tx), 1):
                cell = ws.cell(row=row_idx, column=col_idx, value=val)
                if col_idx == amount_col:
                    cell.number_format = self.currency_format
                elif col_idx == date_col:
                    cell.number_format = self.date_format
                if tx.get("is_flagged"):
                    cell.fill = self.flag_fill
                cell.border = self.border

        self._auto_width(ws)
        ws.freeze_panes = "A2"

        wb.save(output)
        output.seek(0)
        return output

    def _auto_width(self, ws) -> None:
        for col_idx, column in enumerate(ws.columns, 1):
            max_length = max((len(str(cell.value)) for cell in column if cell.value is not None), default=0)
            ws.column_dimensions[get_column_letter(col_idx)].width = min(max_length + 4, 60)
