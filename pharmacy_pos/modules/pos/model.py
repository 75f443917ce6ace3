from PySide6.QtCore import QAbstractTableModel, Qt, QModelIndex
from ...utils.helpers import fmt_money


class CartLinesModel(QAbstractTableModel):
    HEADERS = ["#", "Product", "Qty", "Unit Price", "Line Total"]

    def __init__(self, rows: list | None = None):
        super().__init__()
        self._rows = list(rows or [])
        self._total = None

    def rowCount(self, parent=QModelIndex()):
        return len(self._rows)

    def columnCount(self, parent=QModelIndex()):
        return len(self.HEADERS)

    def data(self, idx, role=Qt.DisplayRole):
        if not idx.isValid():
            return None
        ln = self._rows[idx.row()]
        if role in (Qt.DisplayRole, Qt.EditRole):
            m = [ln.line_id if ln.line_id is not None else "-", ln.product_name, str(ln.quantity),
                 fmt_money(ln.unit_price), fmt_money(ln.line_total)]
            return m[idx.column()]
        if role == Qt.TextAlignmentRole and idx.column() >= 2:
            return Qt.AlignRight | Qt.AlignVCenter
        return None

    def headerData(self, s, o, role=Qt.DisplayRole):
        return self.HEADERS[s] if o == Qt.Horizontal and role == Qt.DisplayRole else super().headerData(s, o, role)

    def at(self, row: int):
        return self._rows[row]

    def total_text(self) -> str:
        # server total of the selected sale, never the sum of the rows
        return fmt_money(self._total) if self._total is not None else fmt_money(0)

    def replace(self, rows: list):
        self.beginResetModel()
        self._rows = list(rows)
        self.endResetModel()

    def replace_from_session(self, session):
        self._total = session.displayed_total
        self.replace(session.cart_lines)


class TodaysSalesModel(QAbstractTableModel):
    HEADERS = ["Order #", "Date", "Client", "Operator", "Total", "Paid", "Status"]

    def __init__(self, rows: list | None = None):
        super().__init__()
        self._rows = list(rows or [])

    def rowCount(self, parent=QModelIndex()):
        return len(self._rows)

    def columnCount(self, parent=QModelIndex()):
        return len(self.HEADERS)

    def data(self, index, role=Qt.DisplayRole):
        if not index.isValid():
            return None
        s = self._rows[index.row()]
        if role in (Qt.DisplayRole, Qt.EditRole):
            mapping = [
                s.order_number,
                s.sale_date,
                s.client_name or "Walk-in",
                s.operator_name or "",
                fmt_money(s.total_amount),
                fmt_money(s.paid_amount),
                s.status.value,
            ]
            c = index.column()
            return mapping[c] if c < len(mapping) else None
        if role == Qt.UserRole:
            return s.sale_id
        return None

    def headerData(self, section, orientation, role=Qt.DisplayRole):
        if orientation == Qt.Horizontal and role == Qt.DisplayRole:
            return self.HEADERS[section] if section < len(self.HEADERS) else None
        return super().headerData(section, orientation, role)

    def at(self, row: int):
        return self._rows[row]

    def replace(self, rows: list):
        self.beginResetModel()
        self._rows = list(rows)
        self.endResetModel()
