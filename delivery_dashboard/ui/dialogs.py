from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Set

from PySide6.QtCore import Qt
from PySide6.QtWidgets import (
    QAbstractItemView,
    QDialog,
    QDialogButtonBox,
    QGridLayout,
    QHeaderView,
    QLabel,
    QLineEdit,
    QListWidget,
    QListWidgetItem,
    QPushButton,
    QTableWidget,
    QTableWidgetItem,
    QVBoxLayout,
    QWidget,
)

from delivery_dashboard.config import MetricsSettings
from delivery_dashboard.models import Order
from delivery_dashboard.services.filters import search_orders
from delivery_dashboard.services.summary import effective_durations
from delivery_dashboard.services.timeline import build_timeline

STATUS_LABELS = {
    "COMPLETED": "Completed",
    "PICKED_UP": "Picked up",
    "GIVEN_TO_COURIER": "Given to courier",
    "WAITING_FOR_COURIER": "Waiting for courier",
    "READY": "Ready",
    "CONFIRMED": "Confirmed",
    "CREATED": "Order created",
    "NEW": "New",
    "CANCELED": "Canceled",
}


def format_timestamp(value: Optional[datetime], pattern: str = "%d.%m.%Y %H:%M") -> str:
    if not isinstance(value, datetime):
        return "--"
    return value.astimezone().strftime(pattern)


def _read_only_table(headers: List[str], parent: QWidget) -> QTableWidget:
    table = QTableWidget(0, len(headers), parent)
    table.setHorizontalHeaderLabels(headers)
    table.verticalHeader().setVisible(False)
    table.setEditTriggers(QAbstractItemView.NoEditTriggers)
    table.setSelectionBehavior(QAbstractItemView.SelectRows)
    table.horizontalHeader().setSectionResizeMode(QHeaderView.Stretch)
    return table


class OrderHistoryDialog(QDialog):
    def __init__(self, order: Order, parent: Optional[QWidget] = None) -> None:
        super().__init__(parent)
        self.setWindowTitle(f"Order history: {order.code}")
        self.resize(640, 520)
        layout = QVBoxLayout(self)

        info = QGridLayout()
        info.addWidget(QLabel("Pharmacy:"), 0, 0)
        info.addWidget(QLabel(order.pharmacy_name or "--"), 0, 1)
        info.addWidget(QLabel("Customer:"), 0, 2)
        info.addWidget(QLabel(order.customer_name or "--"), 0, 3)
        info.addWidget(QLabel("Created:"), 1, 0)
        info.addWidget(QLabel(format_timestamp(order.creation_date)), 1, 1)
        info.addWidget(QLabel("Total:"), 1, 2)
        info.addWidget(QLabel(f"{order.invoice_total:,.0f} sum"), 1, 3)
        layout.addLayout(info)

        events = build_timeline(order)
        table = _read_only_table(["When", "Event", "By"], self)
        table.setRowCount(len(events))
        for row, event in enumerate(events):
            if event.is_origin:
                text = STATUS_LABELS["CREATED"]
            else:
                text = f"Status changed to {STATUS_LABELS.get(event.status, event.status)}"
            table.setItem(row, 0, QTableWidgetItem(format_timestamp(event.timestamp, "%d.%m %H:%M")))
            table.setItem(row, 1, QTableWidgetItem(text))
            table.setItem(row, 2, QTableWidgetItem(event.performed_by))
        layout.addWidget(table)

        buttons = QDialogButtonBox(QDialogButtonBox.Close, parent=self)
        buttons.rejected.connect(self.reject)
        layout.addWidget(buttons)


class OrderListDialog(QDialog):
    """Orders behind one distribution bar; double-click opens the history."""

    def __init__(
        self,
        orders: Sequence[Order],
        bucket: str,
        parent: Optional[QWidget] = None,
        *,
        settings: Optional[MetricsSettings] = None,
    ) -> None:
        super().__init__(parent)
        settings = settings or MetricsSettings()
        self._orders = list(orders)
        self.setWindowTitle(f"Orders delivered in {bucket} min ({len(self._orders)})")
        self.resize(640, 480)
        layout = QVBoxLayout(self)

        table = _read_only_table(["Code", "Pharmacy", "Created", "Total time"], self)
        table.setRowCount(len(self._orders))
        for row, order in enumerate(self._orders):
            minutes = effective_durations(
                order,
                clamp_negative=settings.clamp_negative,
                max_total_minutes=settings.max_total_minutes,
            ).total
            table.setItem(row, 0, QTableWidgetItem(order.code))
            table.setItem(row, 1, QTableWidgetItem(order.pharmacy_name))
            table.setItem(row, 2, QTableWidgetItem(format_timestamp(order.creation_date)))
            table.setItem(row, 3, QTableWidgetItem("--" if minutes is None else f"{minutes} min"))
        table.cellDoubleClicked.connect(self._open_history)
        layout.addWidget(table)

        buttons = QDialogButtonBox(QDialogButtonBox.Close, parent=self)
        buttons.rejected.connect(self.reject)
        layout.addWidget(buttons)

    def _open_history(self, row: int, _column: int) -> None:
        if 0 <= row < len(self._orders):
            OrderHistoryDialog(self._orders[row], self).exec()


class CheckListDialog(QDialog):
    """Checkable list with Ok, Cancel and Reset buttons."""

    def __init__(self, title: str, parent: Optional[QWidget] = None) -> None:
        super().__init__(parent)
        self.setWindowTitle(title)
        self.resize(420, 520)
        self._layout = QVBoxLayout(self)
        self.counter_label = QLabel("", self)
        self._layout.addWidget(self.counter_label)
        self.list_widget = QListWidget(self)
        self._layout.addWidget(self.list_widget)
        self.list_widget.itemChanged.connect(self._on_item_changed)

        self.buttons = QDialogButtonBox(QDialogButtonBox.Ok | QDialogButtonBox.Cancel, parent=self)
        self.reset_button = QPushButton("Reset", self)
        self.buttons.addButton(self.reset_button, QDialogButtonBox.ResetRole)
        self.buttons.accepted.connect(self.accept)
        self.buttons.rejected.connect(self.reject)
        self.reset_button.clicked.connect(self._on_reset)
        self._layout.addWidget(self.buttons)

    def _add_item(self, text: str, key: object, checked: bool) -> None:
        item = QListWidgetItem(text)
        item.setFlags(item.flags() | Qt.ItemIsUserCheckable)
        item.setData(Qt.UserRole, key)
        item.setCheckState(Qt.Checked if checked else Qt.Unchecked)
        self.list_widget.addItem(item)

    def _on_item_changed(self, _item: QListWidgetItem) -> None:
        pass

    def _on_reset(self) -> None:
        pass


class PharmacyFilterDialog(CheckListDialog):
    def __init__(self, names: Iterable[str], selected: Set[str], parent: Optional[QWidget] = None) -> None:
        super().__init__("Filter by pharmacy", parent)
        for name in names:
            self._add_item(name, name, name in selected)

    def selected_names(self) -> Set[str]:
        selected = set()
        for index in range(self.list_widget.count()):
            item = self.list_widget.item(index)
            if item.checkState() == Qt.Checked:
                selected.add(item.data(Qt.UserRole))
        return selected

    def _on_reset(self) -> None:
        for index in range(self.list_widget.count()):
            self.list_widget.item(index).setCheckState(Qt.Unchecked)


class ExcludeOrdersDialog(CheckListDialog):
    def __init__(self, orders: Sequence[Order], excluded: Set[int], parent: Optional[QWidget] = None) -> None:
        super().__init__("Exclude orders", parent)
        self.search_edit = QLineEdit(self)
        self.search_edit.setPlaceholderText("Enter order ID or code")
        self._layout.insertWidget(0, self.search_edit)
        self._orders = list(orders)
        self._excluded = set(excluded)
        self._populating = False
        self.search_edit.textChanged.connect(self._populate)
        self._populate("")

    def _populate(self, query: str) -> None:
        self._populating = True
        self.list_widget.clear()
        for order in search_orders(self._orders, query):
            self._add_item(f"#{order.id} - {order.code}  ({order.pharmacy_name})", order.id, order.id in self._excluded)
        self._populating = False
        self._update_counter()

    def _update_counter(self) -> None:
        self.counter_label.setText(f"Excluded: {len(self._excluded)}" if self._excluded else "")

    def _on_item_changed(self, item: QListWidgetItem) -> None:
        if self._populating:
            return
        order_id = item.data(Qt.UserRole)
        if item.checkState() == Qt.Checked:
            self._excluded.add(order_id)
        else:
            self._excluded.discard(order_id)
        self._update_counter()

    def _on_reset(self) -> None:
        self._excluded.clear()
        self.accept()

    def excluded_ids(self) -> Set[int]:
        return set(self._excluded)
