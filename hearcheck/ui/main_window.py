from __future__ import annotations
from typing import Optional, Dict, Any, List
import logging
import os

from PySide6.QtWidgets import (
    QMainWindow,
    QWidget,
    QHBoxLayout,
    QVBoxLayout,
    QGridLayout,
    QMessageBox,
    QFileDialog,
    QLabel,
    QStackedLayout,
    QPushButton,
    QComboBox,
    QProgressBar,
    QTableWidget,
    QTableWidgetItem,
)
from PySide6.QtCore import Qt, QTimer
from PySide6.QtGui import QKeySequence, QShortcut
from matplotlib.backends.backend_qtagg import FigureCanvasQTAgg

from ..analysis import generate_analysis_text
from ..app_controller import Mode, TestOrchestrator
from ..audio.device import AudioDevice, Channel, open_audio_device
from ..errors import AudioUnavailableError, InvariantError, VoiceUnavailableError
from ..export.csv_export import default_filename, export_csv
from ..export.png import export_figure_png
from ..paths import default_export_dir
from ..plotting.audiogram_plot import TITLES, matrix_rows, render_results_figure, threshold_rows
from ..screening.game import ForcedChoiceController
from ..screening.puretone import PracticeSummary, PureToneController
from ..screening.results import Ear, ResultKind, ResultsBundle, SKIPPED
from ..screening.scenes import SceneLayout
from ..screening.speech import SpeechController
from ..screening.words import LANGUAGES
from ..settings import game_config, load_settings, puretone_config, save_settings, speech_config
from ..version import __version__
from .log_panel import LogPanel, QtLogHandler
from .qt_scheduler import QtScheduler
from .voice_loader import VoiceListThread

PAGE_HOME, PAGE_PURETONE, PAGE_GAME, PAGE_SPEECH, PAGE_RESULTS = range(5)

LANGUAGE_NAMES = {"en": "English", "he": "Hebrew"}
EAR_NAMES = {Ear.RIGHT: "Right ear", Ear.LEFT: "Left ear", Ear.BOTH: "Both ears"}


class MainWindow(QMainWindow):
    """Main window: mode selection, one page per test, results."""

    def __init__(self, parent: Optional[QWidget] = None, language: Optional[str] = None, settings: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(parent)
        self.setWindowTitle(f"Hearing check v{__version__}")
        self.resize(1100, 760)
        self._logger = logging.getLogger('hearcheck.ui')
        self._settings = settings if settings is not None else load_settings()
        if language:
            self._settings['language'] = language

        self.scheduler = QtScheduler(self)
        self.device: Optional[AudioDevice] = None
        self.orchestrator: Optional[TestOrchestrator] = None
        self.bundle: Optional[ResultsBundle] = None
        self._figure = None
        self._voices_ready = False
        self._voice_thread: Optional[VoiceListThread] = None
        self._last_export_dir = self._settings.get('last_export_dir') or default_export_dir()

        central = QWidget(self)
        root_layout = QVBoxLayout(central)
        root_layout.setContentsMargins(6, 6, 6, 6)
        self.pages = QStackedLayout()
        self.pages.addWidget(self._build_home())
        self.pages.addWidget(self._build_puretone_page())
        self.pages.addWidget(self._build_game_page())
        self.pages.addWidget(self._build_speech_page())
        self.pages.addWidget(self._build_results_page())
        pages_container = QWidget(self)
        pages_container.setLayout(self.pages)
        root_layout.addWidget(pages_container, 1)
        self.log_panel = LogPanel(self)
        root_layout.addWidget(self.log_panel)
        self.setCentralWidget(central)

        self._log_handler = QtLogHandler(self.log_panel)
        logging.getLogger('hearcheck').addHandler(self._log_handler)

        heard = QShortcut(QKeySequence(Qt.Key_Space), self)
        heard.activated.connect(self._on_heard_clicked)

        QTimer.singleShot(0, self._initial_setup)

    # ----- Initial workflow -----

    def _initial_setup(self) -> None:
        try:
            self.device = open_audio_device(self._settings.get('output_device'))
        except AudioUnavailableError as exc:
            self._logger.error("Audio unavailable: %s", exc)
            self._set_mode_buttons_enabled(False)
            QMessageBox.critical(self, "Audio", f"{exc}\n\nThe hearing tests cannot run on this computer.")
            return
        self.orchestrator = TestOrchestrator(
            self.device,
            self.scheduler,
            language=self._settings.get('language', 'en'),
            on_finished=self._on_session_finished,
            listener=self,
            puretone_config=puretone_config(self._settings),
            game_config=game_config(self._settings),
            speech_config=speech_config(self._settings),
        )
        self._refresh_voice_gate()
        self._voice_thread = VoiceListThread(self.device.voice.voices)
        self._voice_thread.finished.connect(self._on_voices_listed)
        self._voice_thread.start()
        self.set_status("Ready. Put your headphones on and choose a test.")

    def _on_voices_listed(self, voices: list) -> None:
        self._voices_ready = True
        self._logger.debug("%d synthesis voices listed", len(voices))
        self._refresh_voice_gate()

    # ----- Page builders -----

    def _build_home(self) -> QWidget:
        page = QWidget(self)
        layout = QVBoxLayout(page)
        title = QLabel("Hearing check")
        title.setStyleSheet("font-size: 24px; font-weight: bold;")
        layout.addWidget(title)
        note = QLabel(
            "This is a screening aid, not a medical device. Use it in a quiet room with headphones; "
            "results are uncalibrated and not diagnostic."
        )
        note.setWordWrap(True)
        layout.addWidget(note)

        row = QHBoxLayout()
        row.addWidget(QLabel("Language"))
        self.cmb_language = QComboBox()
        for code in LANGUAGES:
            self.cmb_language.addItem(LANGUAGE_NAMES.get(code, code), code)
        idx = self.cmb_language.findData(self._settings.get('language', 'en'))
        self.cmb_language.setCurrentIndex(max(0, idx))
        self.cmb_language.currentIndexChanged.connect(self._on_language_changed)
        row.addWidget(self.cmb_language)
        row.addStretch(1)
        layout.addLayout(row)

        setup = QHBoxLayout()
        self.btn_calibration = QPushButton("Reference tone")
        self.btn_calibration.clicked.connect(lambda: self.device and self.device.play_calibration_tone())
        self.btn_check_left = QPushButton("Check left")
        self.btn_check_left.clicked.connect(lambda: self.device and self.device.play_headphone_check(Channel.LEFT))
        self.btn_check_right = QPushButton("Check right")
        self.btn_check_right.clicked.connect(lambda: self.device and self.device.play_headphone_check(Channel.RIGHT))
        self.btn_practice = QPushButton("Practice")
        self.btn_practice.clicked.connect(self.start_practice)
        for btn in (self.btn_calibration, self.btn_check_left, self.btn_check_right, self.btn_practice):
            setup.addWidget(btn)
        setup.addStretch(1)
        layout.addLayout(setup)

        grid = QGridLayout()
        self.mode_buttons: Dict[Mode, QPushButton] = {}
        labels = {
            Mode.PURETONE: "Pure-tone test",
            Mode.SPEECH: "Speech test",
            Mode.BOTH: "Pure-tone + speech",
            Mode.GAMEMODE: "Game mode",
        }
        for i, mode in enumerate(Mode):
            btn = QPushButton(labels[mode])
            btn.setMinimumHeight(64)
            btn.clicked.connect(lambda _checked=False, m=mode: self.start_mode(m))
            grid.addWidget(btn, i // 2, i % 2)
            self.mode_buttons[mode] = btn
        layout.addLayout(grid)
        layout.addStretch(1)
        return page

    def _build_puretone_page(self) -> QWidget:
        page = QWidget(self)
        layout = QVBoxLayout(page)
        self.lbl_pt_pair = QLabel("-")
        self.lbl_pt_pair.setStyleSheet("font-size: 20px;")
        layout.addWidget(self.lbl_pt_pair)
        self.pt_progress = QProgressBar()
        layout.addWidget(self.pt_progress)
        self.lbl_pt_hint = QLabel("Press the button (or SPACE) as soon as you hear a tone.")
        layout.addWidget(self.lbl_pt_hint)
        self.btn_heard = QPushButton("I heard it")
        self.btn_heard.setMinimumHeight(120)
        self.btn_heard.setStyleSheet("font-size: 22px;")
        self.btn_heard.clicked.connect(self._on_heard_clicked)
        layout.addWidget(self.btn_heard)
        row = QHBoxLayout()
        self.btn_skip = QPushButton("Skip this frequency")
        self.btn_skip.clicked.connect(self._on_skip_clicked)
        row.addWidget(self.btn_skip)
        row.addStretch(1)
        btn_stop = QPushButton("Stop test")
        btn_stop.clicked.connect(self.stop_test)
        row.addWidget(btn_stop)
        layout.addLayout(row)
        layout.addStretch(1)
        return page

    def _build_game_page(self) -> QWidget:
        page = QWidget(self)
        layout = QVBoxLayout(page)
        self.lbl_game_pair = QLabel("-")
        self.lbl_game_pair.setStyleSheet("font-size: 18px;")
        layout.addWidget(self.lbl_game_pair)
        self.game_progress = QProgressBar()
        layout.addWidget(self.game_progress)
        self.lbl_game_instruction = QLabel("")
        self.lbl_game_instruction.setStyleSheet("font-size: 18px;")
        layout.addWidget(self.lbl_game_instruction)
        grid = QGridLayout()
        self.tile_buttons: List[QPushButton] = []
        self.confirm_buttons: List[QPushButton] = []
        for slot in range(3):
            tile = QPushButton("?")
            tile.setMinimumHeight(110)
            tile.clicked.connect(lambda _checked=False, s=slot: self._on_tile_clicked(s))
            confirm = QPushButton("This one!")
            confirm.clicked.connect(lambda _checked=False, s=slot: self._on_confirm_clicked(s))
            grid.addWidget(tile, 0, slot)
            grid.addWidget(confirm, 1, slot)
            self.tile_buttons.append(tile)
            self.confirm_buttons.append(confirm)
        layout.addLayout(grid)
        row = QHBoxLayout()
        self.btn_dont_know = QPushButton("I don't know")
        self.btn_dont_know.clicked.connect(self._on_dont_know_clicked)
        row.addWidget(self.btn_dont_know)
        self.lbl_game_feedback = QLabel("")
        row.addWidget(self.lbl_game_feedback, 1)
        self.btn_matrix = QPushButton("Show matrix")
        self.btn_matrix.setCheckable(True)
        self.btn_matrix.toggled.connect(self._on_matrix_toggled)
        row.addWidget(self.btn_matrix)
        btn_stop = QPushButton("Stop test")
        btn_stop.clicked.connect(self.stop_test)
        row.addWidget(btn_stop)
        layout.addLayout(row)

        # Every level tried so far: rows are levels, columns frequencies.
        self.matrix_panel = QWidget(page)
        tables = QHBoxLayout(self.matrix_panel)
        self.matrix_tables: Dict[Ear, QTableWidget] = {}
        for ear in (Ear.RIGHT, Ear.LEFT):
            column = QVBoxLayout()
            column.addWidget(QLabel(EAR_NAMES[ear]))
            table = QTableWidget(0, 0)
            table.setEditTriggers(QTableWidget.NoEditTriggers)
            column.addWidget(table)
            tables.addLayout(column)
            self.matrix_tables[ear] = table
        self.matrix_panel.setVisible(False)
        layout.addWidget(self.matrix_panel, 1)
        layout.addStretch(1)
        return page

    def _build_speech_page(self) -> QWidget:
        page = QWidget(self)
        layout = QVBoxLayout(page)
        self.lbl_speech_volume = QLabel("-")
        self.lbl_speech_volume.setStyleSheet("font-size: 18px;")
        layout.addWidget(self.lbl_speech_volume)
        self.speech_progress = QProgressBar()
        layout.addWidget(self.speech_progress)
        layout.addWidget(QLabel("Listen to the word and pick the one you heard."))
        grid = QGridLayout()
        self.option_buttons: List[QPushButton] = []
        for i in range(4):
            btn = QPushButton("")
            btn.setMinimumHeight(70)
            btn.setStyleSheet("font-size: 18px;")
            btn.clicked.connect(lambda _checked=False, idx=i: self._on_option_clicked(idx))
            grid.addWidget(btn, i // 2, i % 2)
            self.option_buttons.append(btn)
        layout.addLayout(grid)
        row = QHBoxLayout()
        self.btn_replay = QPushButton("Replay word")
        self.btn_replay.clicked.connect(self._on_replay_clicked)
        row.addWidget(self.btn_replay)
        row.addStretch(1)
        btn_stop = QPushButton("Stop test")
        btn_stop.clicked.connect(self.stop_test)
        row.addWidget(btn_stop)
        layout.addLayout(row)
        layout.addStretch(1)
        return page

    def _build_results_page(self) -> QWidget:
        page = QWidget(self)
        layout = QVBoxLayout(page)
        self.results_canvas_holder = QVBoxLayout()
        layout.addLayout(self.results_canvas_holder, 1)
        self.results_table = QTableWidget(0, 0)
        self.results_table.setEditTriggers(QTableWidget.NoEditTriggers)
        self.results_table.setMaximumHeight(200)
        layout.addWidget(self.results_table)
        self.lbl_analysis = QLabel("")
        self.lbl_analysis.setWordWrap(True)
        layout.addWidget(self.lbl_analysis)
        row = QHBoxLayout()
        btn_csv = QPushButton("Export CSV...")
        btn_csv.clicked.connect(self.export_results_csv)
        btn_png = QPushButton("Export PNG...")
        btn_png.clicked.connect(self.export_graph_png)
        btn_new = QPushButton("New test")
        btn_new.clicked.connect(self._go_home)
        for btn in (btn_csv, btn_png):
            row.addWidget(btn)
        row.addStretch(1)
        row.addWidget(btn_new)
        layout.addLayout(row)
        return page

    # ----- Helpers -----

    def set_status(self, message: str, *, log: bool = True, timeout: int = 6000) -> None:
        if log:
            self.log_panel.append(message)
        self.statusBar().showMessage(message, timeout)

    def _set_mode_buttons_enabled(self, enabled: bool) -> None:
        for btn in self.mode_buttons.values():
            btn.setEnabled(enabled)
        for btn in (self.btn_practice, self.btn_calibration, self.btn_check_left, self.btn_check_right):
            btn.setEnabled(enabled)

    def _refresh_voice_gate(self) -> None:
        if self.orchestrator is None:
            return
        if not self._voices_ready:
            for mode in (Mode.SPEECH, Mode.BOTH):
                self.mode_buttons[mode].setEnabled(False)
                self.mode_buttons[mode].setToolTip("Looking for synthesis voices...")
            return
        has_voice = self.orchestrator.voice_available()
        tip = "" if has_voice else "No synthesis voice installed for this language."
        for mode in (Mode.SPEECH, Mode.BOTH):
            self.mode_buttons[mode].setEnabled(True)
            self.mode_buttons[mode].setToolTip(tip)

    def _save_settings(self) -> None:
        try:
            save_settings(self._settings)
        except OSError as exc:
            self._logger.warning("Settings not saved: %s", exc)

    def _go_home(self) -> None:
        if self.orchestrator is not None:
            self.orchestrator.teardown()
        self.pages.setCurrentIndex(PAGE_HOME)

    def _on_matrix_toggled(self, shown: bool) -> None:
        self.btn_matrix.setText("Hide matrix" if shown else "Show matrix")
        self.matrix_panel.setVisible(shown)
        self._refresh_matrix()

    def _refresh_matrix(self) -> None:
        controller = self.orchestrator.controller if self.orchestrator else None
        if not isinstance(controller, ForcedChoiceController) or not self.btn_matrix.isChecked():
            return
        freqs = list(controller.config.frequencies)
        for ear, table in self.matrix_tables.items():
            rows = matrix_rows(controller.matrix, ear, freqs)
            table.setColumnCount(len(freqs))
            table.setHorizontalHeaderLabels([str(f) for f in freqs])
            table.setRowCount(len(rows))
            table.setVerticalHeaderLabels([f"{level:.0f} dB" for level, _cells in rows])
            for r, (_level, cells) in enumerate(rows):
                for c, symbol in enumerate(cells):
                    item = QTableWidgetItem(symbol)
                    item.setTextAlignment(Qt.AlignCenter)
                    table.setItem(r, c, item)

    def _pair_text(self, ear: Ear, freq: int) -> str:
        return f"{EAR_NAMES.get(ear, ear.value)} - {freq} Hz"

    def _pair_progress(self, controller) -> tuple:
        pair = controller.current_pair
        total = len(controller.pairs)
        done = controller.pairs.index(pair) if pair in controller.pairs else total
        return done, total

    # ----- Actions -----

    def _on_language_changed(self, _index: int) -> None:
        code = self.cmb_language.currentData()
        self._settings['language'] = code
        self._save_settings()
        if self.orchestrator is not None:
            self.orchestrator.language = code
        self._refresh_voice_gate()

    def start_mode(self, mode: Mode, allow_default_voice: bool = False) -> None:
        if self.orchestrator is None:
            return
        try:
            self.orchestrator.select_mode(mode, allow_default_voice=allow_default_voice)
        except VoiceUnavailableError as exc:
            self._offer_voice_fallback(mode, exc)
        except InvariantError as exc:
            self._logger.exception("Internal error while starting %s", mode.value)
            QMessageBox.critical(self, "Internal error", str(exc))

    def _offer_voice_fallback(self, mode: Mode, exc: VoiceUnavailableError) -> None:
        msg = QMessageBox(self)
        msg.setWindowTitle("Speech test")
        msg.setText(f"{exc}\nWords may be pronounced with the wrong accent.")
        default_btn = msg.addButton("Use default voice", QMessageBox.AcceptRole)
        tone_btn = msg.addButton("Pure-tone test instead", QMessageBox.ActionRole)
        msg.addButton(QMessageBox.Cancel)
        msg.exec()
        if msg.clickedButton() == default_btn:
            self.start_mode(mode, allow_default_voice=True)
        elif msg.clickedButton() == tone_btn:
            self.start_mode(Mode.PURETONE)

    def start_practice(self) -> None:
        if self.orchestrator is None:
            return
        self.lbl_pt_pair.setText("Practice")
        self.lbl_pt_hint.setText("Practice: press the button whenever you hear a tone.")
        self.btn_skip.setText("End practice")
        self.pages.setCurrentIndex(PAGE_PURETONE)
        self.orchestrator.start_practice(self._on_practice_done)

    def _on_practice_done(self, summary: PracticeSummary) -> None:
        self.btn_skip.setText("Skip this frequency")
        self.lbl_pt_hint.setText("Press the button (or SPACE) as soon as you hear a tone.")
        self.pages.setCurrentIndex(PAGE_HOME)
        QMessageBox.information(self, "Practice", f"You heard {summary.heard} of {summary.total} practice tones.")

    def stop_test(self) -> None:
        self.set_status("Test stopped.")
        self._go_home()

    def _on_heard_clicked(self) -> None:
        controller = self.orchestrator.controller if self.orchestrator else None
        if controller is not None and hasattr(controller, "respond") and self.pages.currentIndex() == PAGE_PURETONE:
            controller.respond()

    def _on_skip_clicked(self) -> None:
        controller = self.orchestrator.controller if self.orchestrator else None
        if controller is not None and hasattr(controller, "skip"):
            controller.skip()

    def _on_tile_clicked(self, slot: int) -> None:
        controller = self.orchestrator.controller
        if isinstance(controller, ForcedChoiceController) and controller.listen(slot):
            for btn in self.tile_buttons:
                btn.setEnabled(False)

    def _on_confirm_clicked(self, slot: int) -> None:
        controller = self.orchestrator.controller
        if isinstance(controller, ForcedChoiceController):
            controller.confirm(slot)

    def _on_dont_know_clicked(self) -> None:
        controller = self.orchestrator.controller
        if isinstance(controller, ForcedChoiceController):
            controller.dont_know()

    def _on_option_clicked(self, index: int) -> None:
        controller = self.orchestrator.controller
        if isinstance(controller, SpeechController):
            controller.answer(index)

    def _on_replay_clicked(self) -> None:
        controller = self.orchestrator.controller
        if isinstance(controller, SpeechController) and controller.replay():
            for btn in self.option_buttons:
                btn.setEnabled(False)
            self.btn_replay.setEnabled(False)

    # ----- Orchestrator listener -----

    def on_test_started(self, kind: ResultKind, controller) -> None:
        page = {ResultKind.PURETONE: PAGE_PURETONE, ResultKind.GAMEMODE: PAGE_GAME, ResultKind.SPEECH: PAGE_SPEECH}[kind]
        self.pages.setCurrentIndex(page)
        self.set_status(f"{kind.value} test started.")

    def on_practice_tone(self, number: int, total: int) -> None:
        self.lbl_pt_pair.setText(f"Practice tone {number} of {total}")
        self.pt_progress.setMaximum(total)
        self.pt_progress.setValue(number - 1)

    def on_frequency_started(self, ear: Ear, freq: int) -> None:
        controller = self.orchestrator.controller
        done, total = self._pair_progress(controller)
        if isinstance(controller, PureToneController):
            self.lbl_pt_pair.setText(self._pair_text(ear, freq))
            self.pt_progress.setMaximum(total)
            self.pt_progress.setValue(done)
        else:
            self.lbl_game_pair.setText(self._pair_text(ear, freq))
            self.game_progress.setMaximum(total)
            self.game_progress.setValue(done)
            self._refresh_matrix()

    def on_level_changed(self, ear: Ear, freq: int, level: float) -> None:
        self._logger.debug("tone %s %d Hz %.0f dB HL", ear.value, freq, level)

    def on_threshold_captured(self, ear: Ear, freq: int, value) -> None:
        shown = "skipped" if value is SKIPPED else f"{value:.0f} dB HL"
        self.set_status(f"{self._pair_text(ear, freq)}: {shown}")

    def on_trial(self, layout: SceneLayout) -> None:
        self.lbl_game_instruction.setText(f"{layout.scene.title}: {layout.scene.instruction}")
        self.lbl_game_feedback.setText("Tap a tile to listen.")
        for btn, option in zip(self.tile_buttons, layout.slots()):
            btn.setText(option)
            btn.setEnabled(True)
        for btn in self.confirm_buttons:
            btn.setEnabled(False)
        self.btn_dont_know.setEnabled(True)

    def on_listen(self, slot: int) -> None:
        self.lbl_game_feedback.setText("Listening...")

    def on_listen_finished(self, slot: int) -> None:
        for btn in self.tile_buttons + self.confirm_buttons:
            btn.setEnabled(True)
        self.lbl_game_feedback.setText("Which one made the sound?")

    def on_answer(self, index: int, correct: bool) -> None:
        controller = self.orchestrator.controller
        if isinstance(controller, ForcedChoiceController):
            for btn in self.tile_buttons + self.confirm_buttons:
                btn.setEnabled(False)
            self.btn_dont_know.setEnabled(False)
            self.lbl_game_feedback.setText("Correct!" if correct else "Not that one, listen again.")
            self._refresh_matrix()
        else:
            for btn in self.option_buttons:
                btn.setEnabled(False)

    def on_louder(self, level: float) -> None:
        for btn in self.tile_buttons + self.confirm_buttons:
            btn.setEnabled(False)
        self.lbl_game_feedback.setText("Let's make it louder.")
        self._refresh_matrix()

    def on_word(self, options: List[str], volume: float, index: int, total: int) -> None:
        self.lbl_speech_volume.setText(f"Volume {volume * 100:.0f}%")
        self.speech_progress.setMaximum(total)
        self.speech_progress.setValue(index)
        for btn, word in zip(self.option_buttons, options):
            btn.setText(word)
            btn.setEnabled(False)
        self.btn_replay.setEnabled(False)

    def on_spoken(self, volume: float) -> None:
        for btn in self.option_buttons:
            btn.setEnabled(True)
        self.btn_replay.setEnabled(True)

    def _on_session_finished(self, bundle: ResultsBundle) -> None:
        self.bundle = bundle
        self._show_results(bundle)

    # ----- Results -----

    def _show_results(self, bundle: ResultsBundle) -> None:
        while self.results_canvas_holder.count():
            item = self.results_canvas_holder.takeAt(0)
            if item.widget() is not None:
                item.widget().deleteLater()
        self._figure = render_results_figure(bundle)
        canvas = FigureCanvasQTAgg(self._figure)
        self.results_canvas_holder.addWidget(canvas)
        tone = bundle.puretone or (bundle.gamemode.thresholds if bundle.gamemode else None)
        if tone is not None:
            self.lbl_analysis.setText(generate_analysis_text(tone, bundle.speech))
        elif bundle.speech is not None and bundle.speech.threshold is not None:
            self.lbl_analysis.setText(f"Speech threshold: {bundle.speech.threshold * 100:.0f}% volume.")
        else:
            self.lbl_analysis.setText("")
        self._fill_results_table(bundle)
        self.pages.setCurrentIndex(PAGE_RESULTS)
        self.set_status("Test completed.")

    def _fill_results_table(self, bundle: ResultsBundle) -> None:
        tone_results = bundle.tone_results()
        self.results_table.setVisible(bool(tone_results))
        if not tone_results:
            return
        freqs = sorted({f for _kind, tm in tone_results for f in tm.frequencies})
        headers = []
        columns: List[Dict[int, str]] = []
        for kind, tm in tone_results:
            rows = threshold_rows(tm, freqs)
            for side, name in ((0, "Right"), (1, "Left")):
                headers.append(f"{TITLES[kind]}\n{name} (dB HL)")
                columns.append({f: cells[side] for f, cells in rows.items()})
        self.results_table.setRowCount(len(freqs))
        self.results_table.setColumnCount(len(headers))
        self.results_table.setHorizontalHeaderLabels(headers)
        self.results_table.setVerticalHeaderLabels([f"{f} Hz" for f in freqs])
        for c, column in enumerate(columns):
            for r, f in enumerate(freqs):
                item = QTableWidgetItem(column[f])
                item.setTextAlignment(Qt.AlignCenter)
                self.results_table.setItem(r, c, item)

    def _suggest_export_path(self, extension: str) -> str:
        return os.path.join(self._last_export_dir, default_filename(extension))

    def _remember_export_dir(self, path: str) -> None:
        self._last_export_dir = os.path.dirname(path) or self._last_export_dir
        self._settings['last_export_dir'] = self._last_export_dir
        self._save_settings()

    def export_results_csv(self) -> None:
        if self.bundle is None or self.bundle.is_empty():
            QMessageBox.information(self, "Export", "No results to export.")
            return
        path, _ = QFileDialog.getSaveFileName(self, "Export CSV", self._suggest_export_path("csv"), "CSV (*.csv)")
        if not path:
            return
        try:
            export_csv(self.bundle, path)
        except OSError as exc:
            QMessageBox.critical(self, "Export", str(exc))
            return
        self._remember_export_dir(path)
        self.set_status(f"Results saved to {path}")

    def export_graph_png(self) -> None:
        if self._figure is None:
            QMessageBox.information(self, "Export", "No chart to export.")
            return
        path, _ = QFileDialog.getSaveFileName(self, "Export PNG", self._suggest_export_path("png"), "PNG (*.png)")
        if not path:
            return
        try:
            export_figure_png(self._figure, path)
        except OSError as exc:
            QMessageBox.critical(self, "Export", str(exc))
            return
        self._remember_export_dir(path)
        self.set_status(f"Chart saved to {path}")

    def closeEvent(self, event) -> None:
        if self._voice_thread is not None:
            self._voice_thread.wait()
        if self.orchestrator is not None:
            self.orchestrator.teardown()
        self.scheduler.cancel_all()
        if self.device is not None:
            self.device.close()
        logging.getLogger('hearcheck').removeHandler(self._log_handler)
        super().closeEvent(event)
