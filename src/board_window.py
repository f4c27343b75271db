"""Main board window: in-progress, unattended and fixed-cycle columns."""
from PyQt6.QtWidgets import (
    QMainWindow, QWidget, QVBoxLayout, QHBoxLayout, QSplitter, QStatusBar,
    QLabel, QPushButton, QLineEdit, QCheckBox, QListWidget, QListWidgetItem, QMessageBox
)
from PyQt6.QtCore import Qt, pyqtSignal
from PyQt6.QtGui import QColor, QBrush
from typing import List, Optional

try:
    from .logger import get_logger
    from .board_sorter import Board, BoardEntry, KIND_FIXED
    from .quick_cut import QUICK_CUT_HELP
except ImportError:
    from logger import get_logger
    from board_sorter import Board, BoardEntry, KIND_FIXED
    from quick_cut import QUICK_CUT_HELP

logger = get_logger(__name__)

BOSS_ID_ROLE = Qt.ItemDataRole.UserRole

_GRACE_COLOR = QColor("#c62828")
_SOON_COLOR = QColor("#ef6c00")
_CAUGHT_COLOR = QColor("#808080")
_MISSED_COLOR = QColor("#ad1457")


class BoardColumn(QListWidget):
    """One column of the board. Rows keep their selection across re-renders."""

    def __init__(self, parent=None):
        super().__init__(parent)
        self.setAlternatingRowColors(True)
        self.setWordWrap(True)

    def selected_boss_id(self) -> Optional[str]:
        item = self.currentItem()
        return item.data(BOSS_ID_ROLE) if item is not None else None

    def set_entries(self, entries: List[BoardEntry], formatter, flash_on: bool) -> None:
        """
        Replace the rows.

        Args:
            entries: Sorted board entries for this column
            formatter: TimestampFormatter for countdown and clock labels
            flash_on: Phase of the flashing highlight for this tick
        """
        selected = self.selected_boss_id()
        self.setUpdatesEnabled(False)
        try:
            self.clear()
            for entry in entries:
                item = QListWidgetItem(self._row_text(entry, formatter))
                item.setData(BOSS_ID_ROLE, entry.boss_id)
                self._style_item(item, entry, flash_on)
                self.addItem(item)
                if entry.boss_id == selected:
                    self.setCurrentItem(item)
        finally:
            self.setUpdatesEnabled(True)

    @staticmethod
    def _row_text(entry: BoardEntry, formatter) -> str:
        remaining = formatter.format_remaining(entry.remaining_ms, in_grace=entry.in_grace)
        location = f" ({entry.location})" if entry.location else ""
        text = f"{entry.name}{location}  {remaining}  @ {formatter.format_clock(entry.occurrence_ms)}"
        if entry.kind == KIND_FIXED and entry.caught:
            text += "  [caught]"
        if entry.miss_streak:
            text += f"  [missed x{entry.miss_streak}]"
        if entry.daze_count:
            text += f"  [daze {entry.daze_count}]"
        return text

    @staticmethod
    def _style_item(item: QListWidgetItem, entry: BoardEntry, flash_on: bool) -> None:
        if entry.flashing:
            color = _GRACE_COLOR if entry.in_grace else _SOON_COLOR
            if flash_on:
                item.setBackground(QBrush(color))
                item.setForeground(QBrush(QColor("white")))
            else:
                item.setForeground(QBrush(color))
        elif entry.kind == KIND_FIXED and entry.caught:
            item.setForeground(QBrush(_CAUGHT_COLOR))
        elif entry.miss_streak:
            item.setForeground(QBrush(_MISSED_COLOR))


class BoardWindow(QMainWindow):
    """Main application window."""

    # Signals
    cut_requested = pyqtSignal(str)  # boss_id
    miss_requested = pyqtSignal(str)  # boss_id
    quick_cut_submitted = pyqtSignal(str)  # raw text
    search_changed = pyqtSignal(str)
    alerts_toggled = pyqtSignal(bool)
    refresh_requested = pyqtSignal()

    def __init__(self, parent=None, debug_mode: bool = False):
        """Initialize the board window."""
        super().__init__(parent)
        self.debug_mode = debug_mode
        self.setWindowTitle("Guild Boss Board")
        self.setMinimumSize(900, 600)
        self._flash_on = False
        self._board = Board()

        logger.info("Initializing board window")
        self._setup_ui()

    def _setup_ui(self) -> None:
        central_widget = QWidget()
        self.setCentralWidget(central_widget)
        main_layout = QVBoxLayout(central_widget)

        # Toolbar row: search, quick cut, alerts, refresh
        controls = QHBoxLayout()
        self.search_edit = QLineEdit()
        self.search_edit.setPlaceholderText("Search name / location")
        self.search_edit.textChanged.connect(self.search_changed.emit)
        controls.addWidget(self.search_edit, 2)

        self.quick_cut_edit = QLineEdit()
        self.quick_cut_edit.setPlaceholderText("Quick cut: 2200 name")
        self.quick_cut_edit.setToolTip(QUICK_CUT_HELP)
        self.quick_cut_edit.returnPressed.connect(self._on_quick_cut)
        controls.addWidget(self.quick_cut_edit, 2)

        self.alerts_checkbox = QCheckBox("Voice alerts")
        self.alerts_checkbox.setChecked(True)
        self.alerts_checkbox.toggled.connect(self.alerts_toggled.emit)
        controls.addWidget(self.alerts_checkbox)

        refresh_button = QPushButton("Refresh")
        refresh_button.clicked.connect(self.refresh_requested.emit)
        controls.addWidget(refresh_button)
        main_layout.addLayout(controls)

        self.splitter = QSplitter(Qt.Orientation.Horizontal)
        self.in_progress_list = self._add_column("In progress")
        self.unattended_list = self._add_column("Unattended")
        self.fixed_list = self._add_column("Fixed cycle")
        main_layout.addWidget(self.splitter)

        # Action row
        actions = QHBoxLayout()
        actions.addStretch()
        cut_button = QPushButton("Cut now")
        cut_button.clicked.connect(self._on_cut_clicked)
        actions.addWidget(cut_button)
        miss_button = QPushButton("Miss (daze)")
        miss_button.clicked.connect(self._on_miss_clicked)
        actions.addWidget(miss_button)
        main_layout.addLayout(actions)

        self.status_bar = QStatusBar()
        self.setStatusBar(self.status_bar)
        self.status_bar.showMessage("Ready")

    def _add_column(self, title: str) -> BoardColumn:
        panel = QWidget()
        layout = QVBoxLayout(panel)
        label = QLabel(title)
        label.setProperty("class", "heading")
        layout.addWidget(label)
        column = BoardColumn()
        column.itemClicked.connect(lambda _item, c=column: self._clear_other_selections(c))
        layout.addWidget(column)
        self.splitter.addWidget(panel)
        return column

    def _columns(self) -> List[BoardColumn]:
        return [self.in_progress_list, self.unattended_list, self.fixed_list]

    def _clear_other_selections(self, keep: BoardColumn) -> None:
        for column in self._columns():
            if column is not keep:
                column.setCurrentItem(None)

    def selected_boss_id(self) -> Optional[str]:
        for column in self._columns():
            boss_id = column.selected_boss_id()
            if boss_id:
                return boss_id
        return None

    def set_board(self, board: Board, formatter, advance_flash: bool = True) -> None:
        """
        Render a new board.

        Args:
            board: Sorted board for this tick
            formatter: TimestampFormatter for the row labels
            advance_flash: Flip the flashing phase. Only the clock tick does this,
                so extra renders after a poll or command keep the rhythm.
        """
        self._board = board
        if advance_flash:
            self._flash_on = not self._flash_on
        self.in_progress_list.set_entries(board.in_progress, formatter, self._flash_on)
        self.unattended_list.set_entries(board.unattended, formatter, self._flash_on)
        self.fixed_list.set_entries(board.fixed, formatter, self._flash_on)

    def set_alerts_enabled(self, enabled: bool) -> None:
        self.alerts_checkbox.blockSignals(True)
        self.alerts_checkbox.setChecked(enabled)
        self.alerts_checkbox.blockSignals(False)

    def set_status(self, message: str) -> None:
        self.status_bar.showMessage(message)

    def clear_quick_cut(self) -> None:
        self.quick_cut_edit.clear()

    def show_error(self, title: str, message: str) -> None:
        QMessageBox.warning(self, title, message)

    def _on_cut_clicked(self) -> None:
        boss_id = self.selected_boss_id()
        if not boss_id:
            self.set_status("Select a boss first")
            return
        logger.debug(f"Cut requested for {boss_id}")
        self.cut_requested.emit(boss_id)

    def _on_miss_clicked(self) -> None:
        boss_id = self.selected_boss_id()
        if not boss_id:
            self.set_status("Select a boss first")
            return
        entry = self._board.find(boss_id)
        if entry is not None and not entry.is_random:
            self.show_error("Miss", f"{entry.name} is not a random-interval boss.")
            return
        logger.debug(f"Miss requested for {boss_id}")
        self.miss_requested.emit(boss_id)

    def _on_quick_cut(self) -> None:
        text = self.quick_cut_edit.text().strip()
        if text:
            self.quick_cut_submitted.emit(text)
