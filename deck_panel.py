import sys
import argparse

from PySide6.QtCore import QThread
from PySide6.QtGui import QFont
from PySide6.QtWidgets import (
    QApplication,
    QGridLayout,
    QHBoxLayout,
    QLabel,
    QMainWindow,
    QPushButton,
    QVBoxLayout,
    QWidget,
)

from deck_config import DeckConfig
from logger import get_logger, setup_logging
from VTR422.vtr_worker import VTRWorker

logger = get_logger(__name__)

# (label, session method, args) laid out left to right, top to bottom
TRANSPORT_BUTTONS = [
    [("<< REW", "rewind", ()), ("< STEP", "frame_step_reverse", ()), ("STOP", "stop", ()),
     ("PLAY", "play", ()), ("STEP >", "frame_step_forward", ()), ("FF >>", "fast_forward", ())],
    [("SHTL -32", "shuttle", (-32,)), ("JOG -1", "jog", (-1,)), ("STILL", "var_speed", (0,)),
     ("JOG +1", "jog", (1,)), ("SHTL +32", "shuttle", (32,)), ("REC", "record", ())],
    [("STBY ON", "standby_on", ()), ("STBY OFF", "standby_off", ()), ("EJECT", "eject", ()),
     ("LOCAL ON", "local_enable", ()), ("LOCAL OFF", "local_disable", ()), ("DEVICE?", "device_type", ())],
]


class DeckPanel(QMainWindow):
    def __init__(self, config: DeckConfig):
        super().__init__()
        self.config = config

        self.setWindowTitle(f"Sony 9-pin Deck - {self.config.vtr_port_name}")
        self.setGeometry(100, 100, 640, 300)

        central = QWidget(self)
        layout = QVBoxLayout(central)

        # Timecode + device readout
        self.tc_label = QLabel("--:--:--:--")
        mono = QFont("Monospace")
        mono.setStyleHint(QFont.TypeWriter)
        mono.setPointSize(32)
        self.tc_label.setFont(mono)
        self.device_label = QLabel("Device: ?")
        top = QHBoxLayout()
        top.addWidget(self.tc_label, 1)
        top.addWidget(self.device_label)
        layout.addLayout(top)

        self.status_label = QLabel("Status: (no reply yet)")
        self.status_label.setWordWrap(True)
        layout.addWidget(self.status_label)

        grid = QGridLayout()
        for row, buttons in enumerate(TRANSPORT_BUTTONS):
            for col, (text, method, args) in enumerate(buttons):
                btn = QPushButton(text)
                btn.clicked.connect(lambda _=False, m=method, a=args: self._send(m, *a))
                grid.addWidget(btn, row, col)
        layout.addLayout(grid)

        self.link_label = QLabel("Link: closed")
        layout.addWidget(self.link_label)

        self.setCentralWidget(central)

        self._initialize_vtr()
        logger.info("DECK PANEL STARTED")

    def _initialize_vtr(self):
        """Create the VTR worker in its own QThread and start background polling."""
        self._vtr_thread = QThread(self)

        vtr = self.config.create_vtr()
        self._vtr_worker = VTRWorker(
            port=self.config.vtr_port_name,
            baud=self.config.vtr_baud_rate,
            poll_ms=self.config.vtr_poll_ms,
            vtr=vtr,
        )
        self._vtr_worker.moveToThread(self._vtr_thread)

        # Lifecycle wiring
        self._vtr_thread.started.connect(self._vtr_worker.start)
        self._vtr_worker.disconnected.connect(self._vtr_thread.quit)
        self._vtr_thread.finished.connect(self._vtr_worker.deleteLater)

        # Logging hooks
        self._vtr_worker.status.connect(lambda s: logger.info(f"[VTR][STATUS] {s}"))
        self._vtr_worker.error.connect(self._on_error)
        self._vtr_worker.connected.connect(lambda: self.link_label.setText("Link: open"))
        self._vtr_worker.disconnected.connect(lambda: self.link_label.setText("Link: closed"))
        self._vtr_worker.nak.connect(
            lambda reasons: logger.warning(f"[VTR][NAK] {', '.join(sorted(r.value for r in reasons))}")
        )

        # Readouts
        self._vtr_worker.timecode.connect(lambda tc: self.tc_label.setText(str(tc)))
        self._vtr_worker.statusFlags.connect(self._on_status_flags)
        self._vtr_worker.deviceType.connect(lambda dt: self.device_label.setText(f"Device: 0x{dt:04X}"))

        # Go!
        self._vtr_thread.start()

    def _send(self, method: str, *args):
        # Called on the UI thread; the session serializes writes itself.
        self._vtr_worker.send(method, *args)

    def _on_status_flags(self, flags):
        text = " ".join(sorted(f.value for f in flags)) or "(none)"
        self.status_label.setText(f"Status: {text}")

    def _on_error(self, msg: str):
        logger.error(f"[VTR][ERROR] {msg}")
        self.statusBar().showMessage(msg, 5000)

    def closeEvent(self, e):
        # stop VTR worker cleanly
        try:
            if getattr(self, "_vtr_worker", None) is not None:
                self._vtr_worker.stop()
            if getattr(self, "_vtr_thread", None) is not None:
                self._vtr_thread.quit()
                self._vtr_thread.wait()
        except RuntimeError as ex:
            # Qt raises RuntimeError once the C++ side of the worker is already gone.
            logger.warning(f"Error during VTR shutdown: {ex}")

        super().closeEvent(e)


def main():
    parser = argparse.ArgumentParser(description="Sony 9-pin deck control panel")
    parser.add_argument("--config", default="config.json", help="JSON config file")
    parser.add_argument("--fullscreen", action="store_true",
                        help="Start the app in fullscreen")
    args = parser.parse_args()

    config = DeckConfig(args.config)
    setup_logging(config.log_level, config.log_file)

    app = QApplication(sys.argv)
    window = DeckPanel(config=config)

    if args.fullscreen:
        window.showFullScreen()
    else:
        window.show()

    sys.exit(app.exec())


if __name__ == "__main__":
    main()
