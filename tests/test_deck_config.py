"""Tests for the JSON deck configuration."""

import json

import pytest

from deck_config import DeckConfig


def _write(tmp_path, payload):
    path = tmp_path / "config.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return str(path)


class TestDeckConfig:
    def test_defaults(self):
        cfg = DeckConfig.defaults()
        assert cfg.vtr_port_name == "COM1"
        assert cfg.vtr_baud_rate == 38400
        assert cfg.vtr_parity == "odd"
        assert cfg.ack_timeout == pytest.approx(0.8)
        assert cfg.poll_interval == pytest.approx(0.25)
        assert cfg.log_file is None

    def test_load_file(self, tmp_path):
        path = _write(tmp_path, {
            "vtr": {"port_name": "/dev/ttyUSB0", "baud_rate": "19200", "ack_timeout_ms": 500, "debug": True},
            "logging": {"level": "DEBUG", "file": "deck.log"},
        })
        cfg = DeckConfig(path)
        assert cfg.vtr_port_name == "/dev/ttyUSB0"
        assert cfg.vtr_baud_rate == 19200
        assert cfg.ack_timeout == pytest.approx(0.5)
        assert cfg.vtr_debug is True
        assert cfg.log_level == "DEBUG"
        assert cfg.log_file == "deck.log"

    def test_to_dict_round_trip(self, tmp_path):
        cfg = DeckConfig(_write(tmp_path, {"vtr": {"port_name": "COM7", "max_packet_len": 256}}))
        again = DeckConfig(config_data=cfg.to_dict())
        assert again.to_dict() == cfg.to_dict()
        assert again.vtr_max_packet_len == 256

    def test_missing_file_exits(self, tmp_path, capsys):
        with pytest.raises(SystemExit) as exc:
            DeckConfig(str(tmp_path / "nope.json"))
        assert exc.value.code == 1
        assert "Could not load" in capsys.readouterr().out

    def test_bad_json_exits(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(SystemExit):
            DeckConfig(str(path))

    def test_too_small_max_packet_len_exits(self):
        with pytest.raises(SystemExit):
            DeckConfig(config_data={"vtr": {"max_packet_len": 2}})

    def test_create_vtr(self):
        cfg = DeckConfig(config_data={"vtr": {"port_name": "loop://", "max_packet_len": 64, "debug": True}})
        vtr = cfg.create_vtr()
        assert vtr.port_path == "loop://"
        assert vtr.decoder.max_packet_len == 64
        assert vtr.debug is True
        assert cfg.create_vtr(port_path="COM9").port_path == "COM9"
