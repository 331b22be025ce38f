from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set, Tuple

from PySide6.QtCharts import QBarCategoryAxis, QBarSeries, QBarSet, QChart, QChartView, QValueAxis
from PySide6.QtCore import QDate, QLocale, Qt, QThread, QObject, QTimer, Signal
from PySide6.QtGui import QBrush, QColor, QPainter, QPalette
from PySide6.QtWidgets import (
    QAbstractItemView,
    QApplication,
    QCalendarWidget,
    QComboBox,
    QDateEdit,
    QFrame,
    QHBoxLayout,
    QHeaderView,
    QLabel,
    QMainWindow,
    QMessageBox,
    QPushButton,
    QTableWidget,
    QTableWidgetItem,
    QVBoxLayout,
    QWidget,
)

from delivery_dashboard.config import MetricsSettings, get_metrics_settings
from delivery_dashboard.models import BUCKET_LABELS, DeliveryMetrics, Order, TimeDistribution
from delivery_dashboard.services.client_interface import DataClientInterface
from delivery_dashboard.services.filters import (
    SORT_ASC,
    SORT_DESC,
    ExclusionSet,
    FilterCriteria,
    SortState,
    filter_sort,
    next_sort_state,
    pharmacy_names,
)
from delivery_dashboard.services.loader import SOURCE_LIVE, DashboardDataLoader, LoadResult
from delivery_dashboard.services.storage import KeyValueStore, InMemoryStore
from delivery_dashboard.services.summary import build_summary, orders_in_bucket
from delivery_dashboard.ui.dialogs import (
    ExcludeOrdersDialog,
    OrderHistoryDialog,
    OrderListDialog,
    PharmacyFilterDialog,
    format_timestamp,
)

logger = logging.getLogger(__name__)

TABLE_COLUMNS: List[Tuple[str, Optional[str]]] = [
    ("#", None),
    ("Order code", "code"),
    ("Pharmacy", "pharmacy"),
    ("Created", "creation_date"),
    ("Delivered", "delivered_at"),
    ("Total time", "total_time"),
    ("Status", None),
]

BUCKET_COLORS = {
    "0-30": QColor(0x10, 0xB9, 0x81),
    "30-60": QColor(0x84, 0xCC, 0x16),
    "60-90": QColor(0xF5, 0x9E, 0x0B),
    "90+": QColor(0xEF, 0x44, 0x44),
}


class SummaryWorker(QObject):
    finished = Signal(object)
    error = Signal(str)

    def __init__(
        self,
        loader: DashboardDataLoader,
        generation: int,
        *,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> None:
        super().__init__()
        self._loader = loader
        self._generation = generation
        self._start_date = start_date
        self._end_date = end_date

    def process(self) -> None:
        try:
            result = self._loader.load(self._start_date, self._end_date, generation=self._generation)
        except Exception as exc:  # pylint: disable=broad-except
            self.error.emit(str(exc))
        else:
            self.finished.emit(result)


class MainWindow(QMainWindow):
    def __init__(
        self,
        client: DataClientInterface,
        *,
        store: Optional[KeyValueStore] = None,
        metrics_settings: Optional[MetricsSettings] = None,
    ) -> None:
        super().__init__()
        self._store = store if store is not None else InMemoryStore()
        self._loader = DashboardDataLoader(client)
        self._metrics_settings = metrics_settings or get_metrics_settings()
        self._workers: Dict[int, Tuple[QThread, SummaryWorker]] = {}
        self._orders: List[Order] = []
        self._visible_orders: List[Order] = []
        self._exclusions = ExclusionSet(self._store)
        self._selected_pharmacies: Set[str] = set()
        self._sort_state = SortState()
        self._range: Tuple[Optional[datetime], Optional[datetime]] = (None, None)

        self.setWindowTitle("Delivery Analytics")
        self.resize(1280, 800)
        self._apply_dark_palette()

        self.status_label = QLabel("Ready")
        self.status_label.setAlignment(Qt.AlignCenter)
        self.status_label.setStyleSheet("color: #B0BCD5;")

        self.spinner_label = QLabel("")
        self.spinner_label.setAlignment(Qt.AlignCenter)
        self.spinner_label.setStyleSheet("color: #7EE787; font-size: 14px;")
        self.spinner_label.setVisible(False)
        self._spinner_frames = ["|", "/", "-", "\\"]
        self._spinner_index = 0
        self._spinner_timer = QTimer(self)
        self._spinner_timer.setInterval(100)
        self._spinner_timer.timeout.connect(self._advance_spinner)

        self.start_date_edit = self._create_date_edit()
        self.end_date_edit = self._create_date_edit()
        self._initialize_default_range()

        button_style = "padding: 10px; font-size: 14px; background-color: #1F3B73; color: white; border-radius: 6px;"
        self.refresh_button = QPushButton("Refresh")
        self.refresh_button.clicked.connect(self.refresh_data)
        self.refresh_button.setStyleSheet(button_style)

        self.pharmacy_button = QPushButton("Pharmacies")
        self.pharmacy_button.clicked.connect(self._open_pharmacy_filter)
        self.pharmacy_button.setStyleSheet(button_style)

        self.exclude_button = QPushButton("Exclude orders")
        self.exclude_button.clicked.connect(self._open_exclusions)
        self.exclude_button.setStyleSheet(button_style)

        self._pharmacy_sort_combo = QComboBox()
        self._pharmacy_sort_combo.setStyleSheet(
            "padding: 8px 12px; font-size: 14px; background-color: #1E2A44; color: #E0E8FF; "
            "border: 1px solid #1F3B73; border-radius: 6px;"
        )
        self._pharmacy_sort_combo.addItem("Pharmacy order: column sort", None)
        self._pharmacy_sort_combo.addItem("Pharmacy A-Z", SORT_ASC)
        self._pharmacy_sort_combo.addItem("Pharmacy Z-A", SORT_DESC)
        self._pharmacy_sort_combo.currentIndexChanged.connect(lambda _index: self._apply_view())

        controls = QHBoxLayout()
        controls.addWidget(QLabel("From"))
        controls.addWidget(self.start_date_edit)
        controls.addWidget(QLabel("To"))
        controls.addWidget(self.end_date_edit)
        controls.addWidget(self.refresh_button)
        controls.addWidget(self.spinner_label)
        controls.addStretch()
        controls.addWidget(self.pharmacy_button)
        controls.addWidget(self._pharmacy_sort_combo)
        controls.addWidget(self.exclude_button)

        cards = QHBoxLayout()
        avg_total_card, self.avg_total_value = self._create_metric_card("Avg total time", "#E0E8FF")
        avg_prep_card, self.avg_prep_value = self._create_metric_card("Avg preparation", "#F59E0B")
        avg_wait_card, self.avg_wait_value = self._create_metric_card("Avg courier waiting", "#E0E8FF")
        avg_delivery_card, self.avg_delivery_value = self._create_metric_card("Avg delivery", "#7EE787")
        on_time_card, self.on_time_value = self._create_metric_card("Delivered on time", "#7EE787")
        for card in (avg_total_card, avg_prep_card, avg_wait_card, avg_delivery_card, on_time_card):
            cards.addWidget(card)

        self.chart = QChart()
        self.chart.setBackgroundBrush(Qt.transparent)
        self.chart.legend().setVisible(False)
        self.chart.setTitle("Delivery time distribution")
        self.chart.setTitleBrush(QBrush(Qt.white))
        self.distribution_series = QBarSeries()
        self.distribution_set = QBarSet("Orders")
        self.distribution_set.setColor(QColor(0x4C, 0x6E, 0xF5))
        self.distribution_set.clicked.connect(self._on_bar_clicked)
        self.distribution_series.append(self.distribution_set)
        self.chart.addSeries(self.distribution_series)
        self.axis_x = QBarCategoryAxis()
        self.axis_x.append([f"{label} min" for label in BUCKET_LABELS])
        self.axis_x.setLabelsBrush(QBrush(Qt.white))
        self.axis_y = QValueAxis()
        self.axis_y.setLabelFormat("%d")
        self.axis_y.setLabelsBrush(QBrush(Qt.white))
        self.chart.addAxis(self.axis_x, Qt.AlignBottom)
        self.chart.addAxis(self.axis_y, Qt.AlignLeft)
        self.distribution_series.attachAxis(self.axis_x)
        self.distribution_series.attachAxis(self.axis_y)
        chart_view = QChartView(self.chart)
        chart_view.setRenderHint(QPainter.Antialiasing)
        chart_view.setMinimumHeight(260)

        self.details_table = self._create_table_widget([title for title, _ in TABLE_COLUMNS])
        self.details_table.horizontalHeader().sectionClicked.connect(self._on_header_clicked)
        self.details_table.cellDoubleClicked.connect(self._on_row_double_clicked)
        self.shown_label = QLabel("")
        self.shown_label.setStyleSheet("color: #B0BCD5;")

        central = QWidget()
        layout = QVBoxLayout(central)
        layout.setContentsMargins(24, 24, 24, 24)
        layout.setSpacing(16)
        layout.addLayout(controls)
        layout.addLayout(cards)
        layout.addWidget(chart_view)
        layout.addWidget(self.details_table, stretch=1)
        layout.addWidget(self.shown_label)
        layout.addWidget(self.status_label)
        self.setCentralWidget(central)

    def _create_metric_card(self, title: str, value_color: str) -> Tuple[QFrame, QLabel]:
        frame = QFrame()
        frame.setFrameShape(QFrame.StyledPanel)
        frame.setStyleSheet(
            "QFrame { background-color: #111C34; border: 1px solid #1F3B73; border-radius: 10px; }"
        )
        layout = QVBoxLayout(frame)
        layout.setContentsMargins(16, 16, 16, 16)
        layout.setSpacing(6)

        value_label = QLabel("--")
        value_label.setAlignment(Qt.AlignLeft | Qt.AlignBottom)
        value_label.setStyleSheet(f"font-size: 30px; font-weight: 600; color: {value_color};")

        title_label = QLabel(title)
        title_label.setAlignment(Qt.AlignLeft | Qt.AlignTop)
        title_label.setStyleSheet("color: #B0BCD5; font-size: 13px; font-weight: 500;")

        layout.addWidget(title_label)
        layout.addSpacing(4)
        layout.addWidget(value_label)
        layout.addStretch()

        return frame, value_label

    def _create_table_widget(self, headers: List[str]) -> QTableWidget:
        table = QTableWidget()
        table.setColumnCount(len(headers))
        table.setHorizontalHeaderLabels(headers)
        header = table.horizontalHeader()
        for index in range(table.columnCount()):
            if index in (0, table.columnCount() - 1):
                mode = QHeaderView.ResizeToContents
            else:
                mode = QHeaderView.Stretch
            header.setSectionResizeMode(index, mode)
        header.setDefaultAlignment(Qt.AlignLeft | Qt.AlignVCenter)
        header.setSectionsClickable(True)
        header.setHighlightSections(False)
        table.verticalHeader().setVisible(False)
        table.setEditTriggers(QAbstractItemView.NoEditTriggers)
        table.setSelectionBehavior(QAbstractItemView.SelectRows)
        table.setAlternatingRowColors(True)
        table.setStyleSheet("QTableWidget { background-color: #0F172A; alternate-background-color: #17233D; color: #E0E8FF; }")
        table.setMinimumHeight(200)
        return table

    def _apply_dark_palette(self) -> None:
        palette = QPalette()
        palette.setColor(QPalette.Window, Qt.black)
        palette.setColor(QPalette.WindowText, Qt.white)
        palette.setColor(QPalette.Base, Qt.black)
        palette.setColor(QPalette.AlternateBase, Qt.black)
        palette.setColor(QPalette.ToolTipBase, Qt.white)
        palette.setColor(QPalette.ToolTipText, Qt.black)
        palette.setColor(QPalette.Text, Qt.white)
        palette.setColor(QPalette.Button, Qt.black)
        palette.setColor(QPalette.ButtonText, Qt.white)
        palette.setColor(QPalette.Highlight, Qt.darkBlue)
        palette.setColor(QPalette.HighlightedText, Qt.white)
        self.setPalette(palette)

    def _create_date_edit(self) -> QDateEdit:
        date_edit = QDateEdit()
        date_edit.setCalendarPopup(True)
        date_edit.setDisplayFormat("yyyy-MM-dd")
        date_edit.setStyleSheet(
            "padding: 10px; font-size: 14px; background-color: #1E2A44; color: #E0E8FF; border: 1px solid #1F3B73; border-radius: 6px;"
        )
        date_edit.setMinimumWidth(130)

        calendar = date_edit.calendarWidget()
        calendar.setLocale(QLocale(QLocale.English, QLocale.UnitedStates))
        calendar.setFirstDayOfWeek(Qt.Monday)
        calendar.setHorizontalHeaderFormat(QCalendarWidget.SingleLetterDayNames)
        calendar.setMinimumWidth(280)
        return date_edit

    def _initialize_default_range(self) -> None:
        today = QDate.currentDate()
        self.end_date_edit.setMaximumDate(today)
        self.end_date_edit.setDate(today)
        self.start_date_edit.setMaximumDate(today)
        self.start_date_edit.setDate(today.addDays(-6))

    def _get_selected_range(self) -> Tuple[datetime, datetime]:
        start_qdate = self.start_date_edit.date()
        end_qdate = self.end_date_edit.date()
        start_dt = datetime(start_qdate.year(), start_qdate.month(), start_qdate.day(), tzinfo=timezone.utc)
        end_dt = datetime(
            end_qdate.year(),
            end_qdate.month(),
            end_qdate.day(),
            23,
            59,
            59,
            999999,
            tzinfo=timezone.utc,
        )
        if end_dt < start_dt:
            raise ValueError("Start date cannot be after the end date.")
        return start_dt, end_dt

    def refresh_data(self) -> None:
        try:
            start_dt, end_dt = self._get_selected_range()
        except ValueError as exc:
            self._show_error(str(exc))
            return
        self._begin_data_fetch(start_dt, end_dt)

    def _begin_data_fetch(self, start_dt: datetime, end_dt: datetime) -> None:
        generation = self._loader.next_generation()
        self._range = (start_dt, end_dt)
        self._set_loading(True)
        self._update_status(f"Updating... Range: {start_dt:%Y-%m-%d} - {end_dt:%Y-%m-%d}")

        thread = QThread(self)
        worker = SummaryWorker(self._loader, generation, start_date=start_dt, end_date=end_dt)
        worker.moveToThread(thread)
        thread.started.connect(worker.process)
        worker.finished.connect(thread.quit)
        worker.error.connect(thread.quit)
        thread.finished.connect(thread.deleteLater)
        worker.finished.connect(worker.deleteLater)
        worker.error.connect(worker.deleteLater)
        worker.finished.connect(self._on_worker_finished)
        worker.error.connect(self._on_worker_error)
        thread.finished.connect(lambda: self._on_thread_finished(generation))
        self._workers[generation] = (thread, worker)
        thread.start()

    def _on_worker_finished(self, result: LoadResult) -> None:
        if not self._loader.is_current(result.generation):
            logger.debug("Dropping stale load %d", result.generation)
            return
        self._orders = list(result.orders)
        if result.source != SOURCE_LIVE:
            self._update_status(f"Showing {result.source} data: {result.error}")
        else:
            self._update_status(f"Loaded {len(self._orders)} orders, {len(result.pharmacies)} pharmacies")
        self._apply_view()

    def _on_worker_error(self, message: str) -> None:
        self._show_error(message)

    def _on_thread_finished(self, generation: int) -> None:
        self._workers.pop(generation, None)
        if not self._workers:
            self._set_loading(False)

    def _criteria(self) -> FilterCriteria:
        start_dt, end_dt = self._range
        return FilterCriteria(
            start_date=start_dt,
            end_date=end_dt,
            pharmacies=frozenset(self._selected_pharmacies),
            excluded_ids=self._exclusions.ids,
            sort=self._sort_state,
            pharmacy_sort=self._pharmacy_sort_combo.currentData(),
            metrics=self._metrics_settings,
        )

    def _apply_view(self) -> None:
        self._visible_orders = filter_sort(self._orders, self._criteria())
        summary = build_summary(
            self._visible_orders,
            settings=self._metrics_settings,
            start_date=self._range[0],
            end_date=self._range[1],
        )
        self._update_metrics(summary["metrics"])
        self._update_distribution(summary["distribution"])
        self._update_details_table(summary["rows"])

    def _update_metrics(self, metrics: DeliveryMetrics) -> None:
        self.avg_total_value.setText(f"{metrics.avg_total_time} min")
        self.avg_prep_value.setText(f"{metrics.avg_preparation_time} min")
        self.avg_wait_value.setText(f"{metrics.avg_courier_waiting_time} min")
        self.avg_delivery_value.setText(f"{metrics.avg_delivery_time} min")
        color = "#7EE787" if metrics.on_time_percentage >= 80 else "#EF4444"
        self.on_time_value.setStyleSheet(f"font-size: 30px; font-weight: 600; color: {color};")
        self.on_time_value.setText(f"{metrics.on_time_percentage}%")

    def _update_distribution(self, distribution: TimeDistribution) -> None:
        counts = distribution.as_dict()
        self.distribution_set.remove(0, self.distribution_set.count())
        self.distribution_set.append([float(counts[label]) for label in BUCKET_LABELS])
        self.axis_y.setRange(0, max([1, *counts.values()]))

    def _update_details_table(self, rows: List[Dict[str, Any]]) -> None:
        table = self.details_table
        table.setRowCount(len(rows))
        for index, row in enumerate(rows):
            order: Order = row["order"]
            total = row["durations"].total
            table.setItem(index, 0, QTableWidgetItem(str(index + 1)))
            table.setItem(index, 1, QTableWidgetItem(order.code))
            table.setItem(index, 2, QTableWidgetItem(order.pharmacy_name))
            table.setItem(index, 3, QTableWidgetItem(format_timestamp(order.creation_date)))
            table.setItem(index, 4, QTableWidgetItem(format_timestamp(order.delivered_at)))
            total_item = QTableWidgetItem("--" if total is None else f"{total} min")
            if row["bucket"] in BUCKET_COLORS:
                total_item.setForeground(QBrush(BUCKET_COLORS[row["bucket"]]))
            table.setItem(index, 5, total_item)
            if row["on_time"] is None:
                status_item = QTableWidgetItem("--")
            else:
                status_item = QTableWidgetItem("On time" if row["on_time"] else "Late")
                status_item.setForeground(QBrush(QColor("#7EE787" if row["on_time"] else "#EF4444")))
            table.setItem(index, 6, status_item)
        self.shown_label.setText(f"Shown: {len(rows)}  |  Excluded: {len(self._exclusions)}")

    def _on_header_clicked(self, section: int) -> None:
        field_name = TABLE_COLUMNS[section][1] if 0 <= section < len(TABLE_COLUMNS) else None
        if field_name is None:
            return
        self._sort_state = next_sort_state(self._sort_state, field_name)
        self._apply_view()

    def _on_row_double_clicked(self, row: int, _column: int) -> None:
        if 0 <= row < len(self._visible_orders):
            OrderHistoryDialog(self._visible_orders[row], self).exec()

    def _on_bar_clicked(self, index: int) -> None:
        if not 0 <= index < len(BUCKET_LABELS):
            return
        bucket = BUCKET_LABELS[index]
        orders = orders_in_bucket(
            self._visible_orders,
            bucket,
            clamp_negative=self._metrics_settings.clamp_negative,
            max_total_minutes=self._metrics_settings.max_total_minutes,
        )
        OrderListDialog(orders, bucket, self, settings=self._metrics_settings).exec()

    def _open_pharmacy_filter(self) -> None:
        dialog = PharmacyFilterDialog(pharmacy_names(self._orders), self._selected_pharmacies, self)
        if dialog.exec():
            self._selected_pharmacies = dialog.selected_names()
            self._apply_view()

    def _open_exclusions(self) -> None:
        dialog = ExcludeOrdersDialog(self._orders, set(self._exclusions.ids), self)
        if dialog.exec():
            self._exclusions.replace(dialog.excluded_ids())
            self._apply_view()

    def _advance_spinner(self) -> None:
        if not self.spinner_label.isVisible():
            return
        self._spinner_index = (self._spinner_index + 1) % len(self._spinner_frames)
        self.spinner_label.setText(self._spinner_frames[self._spinner_index])

    def _set_loading(self, loading: bool) -> None:
        if loading:
            self._spinner_index = 0
            self.spinner_label.setText(self._spinner_frames[self._spinner_index])
            self.spinner_label.setVisible(True)
            if not self._spinner_timer.isActive():
                self._spinner_timer.start()
        else:
            if self._spinner_timer.isActive():
                self._spinner_timer.stop()
            self.spinner_label.setVisible(False)
            self.spinner_label.setText("")

    def _update_status(self, message: str) -> None:
        self.status_label.setText(message)

    def _show_error(self, message: str) -> None:
        self._update_status("Update failed")
        box = QMessageBox(self)
        box.setIcon(QMessageBox.Critical)
        box.setWindowTitle("Error")
        box.setText(message)
        box.exec()


def launch_app(client: DataClientInterface, *, store: Optional[KeyValueStore] = None) -> None:
    app = QApplication.instance() or QApplication([])
    window = MainWindow(client, store=store)
    window.show()
    window.refresh_data()
    app.exec()
