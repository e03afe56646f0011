import json
import sys
from typing import Optional

from VTR422.vtr_core import VTR422


class DeckConfig:
    """A simple class to load and manage deck/link configuration from a JSON file."""
    def __init__(self, config_path='config.json', config_data: Optional[dict] = None):
        if config_data is None:
            try:
                with open(config_path, 'r', encoding='utf-8') as f:
                    config_data = json.load(f)
            except (FileNotFoundError, json.JSONDecodeError) as e:
                print(f"Error: Could not load or parse {config_path}. {e}")
                print("Copy 'config.example.json' to 'config.json' and adjust the port.")
                sys.exit(1)

        # ---- vtr block: link parameters go to pyserial untouched ----
        vtr = config_data.get("vtr") or {}
        self.vtr_port_name: str = vtr.get("port_name", "COM1")
        self.vtr_baud_rate: int = int(vtr.get("baud_rate", 38400))
        self.vtr_data_bits: int = int(vtr.get("data_bits", 8))
        self.vtr_parity: str = str(vtr.get("parity", "odd"))
        self.vtr_stop_bits = vtr.get("stop_bits", 1)
        self.vtr_ack_timeout_ms: int = int(vtr.get("ack_timeout_ms", 800))
        self.vtr_max_packet_len: int = int(vtr.get("max_packet_len", 18))
        self.vtr_poll_ms: int = int(vtr.get("poll_ms", 250))
        self.vtr_debug: bool = bool(vtr.get("debug", False))

        logging_cfg = config_data.get("logging") or {}
        self.log_level: str = str(logging_cfg.get("level", "INFO"))
        self.log_file: Optional[str] = logging_cfg.get("file")

        if self.vtr_max_packet_len < 3:
            print("Error: 'vtr.max_packet_len' must be at least 3.")
            sys.exit(1)

    @classmethod
    def defaults(cls) -> "DeckConfig":
        """Config with every key at its default (no file)."""
        return cls(config_data={})

    @property
    def ack_timeout(self) -> float:
        return self.vtr_ack_timeout_ms / 1000.0

    @property
    def poll_interval(self) -> float:
        return self.vtr_poll_ms / 1000.0

    def create_vtr(self, **overrides) -> VTR422:
        params = dict(
            port_path=self.vtr_port_name,
            baud_rate=self.vtr_baud_rate,
            data_bits=self.vtr_data_bits,
            parity=self.vtr_parity,
            stop_bits=self.vtr_stop_bits,
            debug=self.vtr_debug,
            max_packet_len=self.vtr_max_packet_len,
        )
        params.update(overrides)
        return VTR422(**params)

    def to_dict(self) -> dict:
        return {
            "vtr": {
                "port_name": self.vtr_port_name,
                "baud_rate": self.vtr_baud_rate,
                "data_bits": self.vtr_data_bits,
                "parity": self.vtr_parity,
                "stop_bits": self.vtr_stop_bits,
                "ack_timeout_ms": self.vtr_ack_timeout_ms,
                "max_packet_len": self.vtr_max_packet_len,
                "poll_ms": self.vtr_poll_ms,
                "debug": self.vtr_debug,
            },
            "logging": {
                "level": self.log_level,
                "file": self.log_file,
            },
        }
