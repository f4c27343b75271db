"""Main application entry point."""
import sys
import json
import os
import logging
import argparse
from pathlib import Path
from typing import Any, Dict, Optional

from PyQt6.QtWidgets import QApplication
from PyQt6.QtCore import QTimer, QObject

try:
    from .logger import setup_logging, get_logger
    from .timestamp_formatter import TimestampFormatter, now_ms
    from .durable_store import JsonFileStore
    from .announcer import SpeechAnnouncer, RecordingAnnouncer
    from .dashboard_client import DashboardClient, DEFAULT_API_BASE, DEFAULT_CUT_MODE
    from .snapshot_poller import SnapshotPoller, CommandRunner
    from .respawn_engine import RespawnEngine, EngineConfig
    from .quick_cut import QuickCutParser, QUICK_CUT_HELP
    from .board_window import BoardWindow
except ImportError:
    from logger import setup_logging, get_logger
    from timestamp_formatter import TimestampFormatter, now_ms
    from durable_store import JsonFileStore
    from announcer import SpeechAnnouncer, RecordingAnnouncer
    from dashboard_client import DashboardClient, DEFAULT_API_BASE, DEFAULT_CUT_MODE
    from snapshot_poller import SnapshotPoller, CommandRunner
    from respawn_engine import RespawnEngine, EngineConfig
    from quick_cut import QuickCutParser, QUICK_CUT_HELP
    from board_window import BoardWindow

logger = get_logger(__name__)

APP_NAME = "guild boss board"

DEFAULT_SETTINGS: Dict[str, Any] = {
    "api_base": DEFAULT_API_BASE,
    "access_token": "",
    "timezone": "",  # empty = detect from the system
    "speech_voice": "en-us",
    "alert_thresholds_minutes": [5, 1],
    "grace_minutes": 5,
    "missed_warn_minutes": 3,
    "soon_minutes": 5,
    "tick_interval_ms": 1000,
    "poll_interval_seconds": 60,
    "fixed_sentinel_boss_id": "",
    "alert_message_template": "{name} spawns in {minutes} minutes",
    "fixed_alert_message_template": "{name} at {location} spawns in {minutes} minutes",
    "missed_warning_template": "{name} will be marked missed soon",
    "cut_mode": DEFAULT_CUT_MODE,
}


def get_user_data_dir() -> Path:
    """
    Get the user data directory for settings, state and logs.
    Uses OS-specific application data directories.
    """
    if sys.platform == 'win32':
        appdata = os.getenv('APPDATA')
        if appdata:
            return Path(appdata) / APP_NAME
        return Path.home() / "AppData" / "Roaming" / APP_NAME
    elif sys.platform == 'darwin':
        return Path.home() / "Library" / "Application Support" / APP_NAME
    xdg_config = os.getenv('XDG_CONFIG_HOME')
    if xdg_config:
        return Path(xdg_config) / APP_NAME
    return Path.home() / ".config" / APP_NAME


def load_settings(settings_path: Path) -> Dict[str, Any]:
    """Load settings.json merged over the defaults, then apply environment overrides."""
    settings = json.loads(json.dumps(DEFAULT_SETTINGS))
    if settings_path.exists():
        try:
            with open(settings_path, 'r', encoding='utf-8') as f:
                loaded = json.load(f)
            if isinstance(loaded, dict):
                settings.update(loaded)
                logger.info(f"[SETTINGS] Loaded from {settings_path!s}")
            else:
                logger.error(f"[SETTINGS] Ignoring {settings_path!s}: expected an object")
        except (json.JSONDecodeError, IOError) as e:
            logger.error(f"[SETTINGS] Error loading settings from {settings_path!s}: {e}", exc_info=True)
    else:
        logger.info(f"[SETTINGS] File not found: {settings_path!s}, using defaults")

    env_base = os.getenv('GUILD_BOARD_API_BASE')
    if env_base:
        settings['api_base'] = env_base
        logger.info("[SETTINGS] api_base taken from GUILD_BOARD_API_BASE")
    env_token = os.getenv('GUILD_BOARD_TOKEN')
    if env_token:
        settings['access_token'] = env_token
        logger.info("[SETTINGS] access_token taken from GUILD_BOARD_TOKEN")
    return settings


def save_settings(settings_path: Path, settings: Dict[str, Any]) -> None:
    """Write settings.json and flush it to disk."""
    try:
        settings_path.parent.mkdir(parents=True, exist_ok=True)
        with open(settings_path, 'w', encoding='utf-8') as f:
            json.dump(settings, f, indent=2, ensure_ascii=False)
            f.flush()
            os.fsync(f.fileno())
        logger.info("Settings saved successfully")
    except IOError as e:
        logger.error(f"[SETTINGS] Error saving to {settings_path!s}: {e}", exc_info=True)


class BossBoardApp(QObject):
    """Main application class: wires timers, backend, engine and window together."""

    def __init__(self, app: QApplication, debug_mode: bool = False, no_audio: bool = False,
                 data_dir: Optional[Path] = None):
        """Initialize the application."""
        super().__init__()
        self.app = app
        self.debug_mode = debug_mode

        self.data_dir = Path(data_dir) if data_dir else get_user_data_dir()
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.settings_path = self.data_dir / "settings.json"
        first_run = not self.settings_path.exists()
        self.settings = load_settings(self.settings_path)
        if first_run:
            # Leave a template the user can edit
            save_settings(self.settings_path, self.settings)

        self.formatter = TimestampFormatter(self.settings.get('timezone'))
        self.store = JsonFileStore(str(self.data_dir / "state.json"))
        if no_audio:
            self.announcer = RecordingAnnouncer()
        else:
            self.announcer = SpeechAnnouncer(voice=self.settings.get('speech_voice') or 'en-us',
                                             tone_path=str(self.data_dir / "alert_tone.wav"))
            self.announcer.start()
        self.client = DashboardClient(self.settings.get('api_base'),
                                      self.settings.get('access_token') or None,
                                      timestamp_formatter=self.formatter)
        self.config = EngineConfig.from_settings(self.settings)
        self.engine = RespawnEngine(self.store, self.announcer, self.client, self.formatter,
                                    self.config, on_refresh_requested=self._request_poll)
        self.poller = SnapshotPoller(self.client.fetch_snapshot)
        self.commands = CommandRunner()

        self.window = BoardWindow(debug_mode=debug_mode)
        self.window.set_alerts_enabled(self.engine.alerts_enabled)
        self.window.cut_requested.connect(self._on_cut_requested)
        self.window.miss_requested.connect(self._on_miss_requested)
        self.window.quick_cut_submitted.connect(self._on_quick_cut)
        self.window.search_changed.connect(self._on_search_changed)
        self.window.alerts_toggled.connect(self._on_alerts_toggled)
        self.window.refresh_requested.connect(self._request_poll)

        # 1 s clock tick: predict, grace, alerts, sort, render
        self.tick_timer = QTimer()
        self.tick_timer.timeout.connect(self._on_tick)
        self.tick_timer.start(self.config.tick_ms)

        # Snapshot poll
        poll_seconds = self.settings.get('poll_interval_seconds') or 60
        self.poll_timer = QTimer()
        self.poll_timer.timeout.connect(self._request_poll)
        self.poll_timer.start(int(max(5, poll_seconds) * 1000))

        # Worker results are handed back on the main thread
        self.result_timer = QTimer()
        self.result_timer.timeout.connect(self._drain_results)
        self.result_timer.start(100)

        QTimer.singleShot(0, self._request_poll)
        self.window.show()
        logger.info("BossBoardApp initialized successfully")

    def _request_poll(self) -> None:
        generation = self.poller.request()
        self.window.set_status(f"Refreshing... (#{generation})")

    def _drain_results(self) -> None:
        polled = False
        try:
            for result in self.poller.drain():
                polled = True
                if result.ok:
                    self.engine.apply_snapshot(result.data)
                    self.window.set_status(f"Updated {self.formatter.format_clock(now_ms())}")
                else:
                    self.engine.on_poll_failed(result.error)
                    self.window.set_status(f"Refresh failed: {result.error}")
        except Exception as e:
            logger.error(f"[POLL] Error applying poll result: {e}", exc_info=True)
        try:
            if self.commands.drain() or polled:
                self._on_tick(advance_flash=False)
        except Exception as e:
            logger.error(f"Error processing worker results: {e}", exc_info=True)

    def _on_tick(self, advance_flash: bool = True) -> None:
        try:
            result = self.engine.tick()
            self.window.set_board(result.board, self.formatter, advance_flash)
        except Exception as e:
            logger.error(f"[TICK] Tick failed: {e}", exc_info=True)

    def _on_cut_requested(self, boss_id: str, at_ms: Optional[int] = None) -> None:
        boss = self.engine.snapshots.find_any(boss_id)
        name = boss.name if boss else boss_id

        def done(result):
            if result.error is not None:
                logger.error(f"[CUT] Cut for {name} failed: {result.error}")
                self.window.show_error("Cut failed", str(result.error))
                return
            self.engine.confirm_cut(boss_id)
            self.window.set_status(f"Cut recorded for {name}")

        self.commands.submit(f"cut {name}", lambda: self.engine.send_cut(boss_id, at_ms), done)

    def _on_miss_requested(self, boss_id: str) -> None:
        boss = self.engine.snapshots.find_any(boss_id)
        name = boss.name if boss else boss_id

        def done(result):
            if result.error is not None:
                logger.error(f"[DAZE] Daze for {name} failed: {result.error}")
                self.window.show_error("Miss failed", str(result.error))
                return
            self.engine.confirm_miss(boss_id, result.value)
            self.window.set_status(f"Daze recorded for {name}")

        self.commands.submit(f"daze {name}", lambda: self.engine.send_miss(boss_id), done)

    def _on_quick_cut(self, text: str) -> None:
        request = QuickCutParser.resolve(text, self.engine.snapshots.all_bosses(), self.formatter, now_ms())
        if request is None:
            self.window.show_error("Quick cut", QUICK_CUT_HELP)
            return
        if request.boss is None:
            self.window.show_error("Quick cut", f"No boss matches '{request.name_query}'.")
            return
        logger.info(f"[CUT] Quick cut: {request.boss.name} at {request.hour:02d}:{request.minute:02d}")
        self.window.clear_quick_cut()
        self._on_cut_requested(request.boss.id, request.at_ms)

    def _on_search_changed(self, query: str) -> None:
        self.engine.set_search_query(query)
        self._on_tick(advance_flash=False)

    def _on_alerts_toggled(self, enabled: bool) -> None:
        self.engine.set_alerts_enabled(enabled)

    def shutdown(self) -> None:
        """Stop timers and the announcer worker."""
        logger.info("Shutting down")
        self.tick_timer.stop()
        self.poll_timer.stop()
        self.result_timer.stop()
        self.poller.cancel()
        self.announcer.stop()


def main():
    """Application entry point."""
    parser = argparse.ArgumentParser(description='Guild Boss Board')
    parser.add_argument('--debug', '-d', action='store_true',
                        help='Enable debug logging (verbose)')
    parser.add_argument('--no-audio', action='store_true',
                        help='Do not speak or play alert tones')
    parser.add_argument('--data-dir', help='Directory for settings, state and logs')
    args, unknown = parser.parse_known_args()  # Use parse_known_args to avoid Qt argument conflicts

    log_level = logging.INFO
    if args.debug or os.getenv('GUILD_BOARD_DEBUG', '').lower() in ('1', 'true', 'yes'):
        log_level = logging.DEBUG

    data_dir = Path(args.data_dir) if args.data_dir else get_user_data_dir()
    setup_logging(data_dir / "logs", log_level)

    app = QApplication(sys.argv[:1] + unknown)
    app.setApplicationName("Guild Boss Board")
    board_app = BossBoardApp(app, debug_mode=args.debug, no_audio=args.no_audio, data_dir=data_dir)
    app.aboutToQuit.connect(board_app.shutdown)
    sys.exit(app.exec())


if __name__ == "__main__":
    main()
