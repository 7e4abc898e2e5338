"""Tests for the time-ordered history store."""

from __future__ import annotations

from dataclasses import replace

from src.bbt.config_loader import EngineConfig, HistoryConfig
from src.bbt.history import HistoryStore
from src.bbt.tests.conftest import make_reading


class TestHistoryStore:
    def test_out_of_order_readings_are_sorted(self, engine_config: EngineConfig) -> None:
        store = HistoryStore(engine_config)
        for day in (3, 0, 2, 1):
            store.append(make_reading(97.0 + day / 10, day=day))
        assert [r.timestamp.day for r in store.readings] == [1, 2, 3, 4]

    def test_equal_timestamps_keep_arrival_order(self, engine_config: EngineConfig) -> None:
        store = HistoryStore(engine_config)
        store.append(make_reading(97.1, day=0))
        store.append(make_reading(97.2, day=0))
        assert [r.temperature_f for r in store.readings] == [97.1, 97.2]

    def test_recent_window_skips_invalid(self, engine_config: EngineConfig) -> None:
        store = HistoryStore(engine_config)
        store.append(make_reading(97.2, day=0))
        store.append(make_reading(103.0, day=1, is_valid=False))
        store.append(make_reading(97.4, day=2))
        window = store.recent_window()
        assert [r.temperature_f for r in window] == [97.2, 97.4]
        assert len(store) == 3
        assert store.valid_count == 2

    def test_recent_window_size(self, engine_config: EngineConfig) -> None:
        store = HistoryStore(engine_config)
        for day in range(70):
            store.append(make_reading(97.3, day=day))
        window = store.recent_window()
        assert len(window) == 60
        assert window[-1].timestamp == store.readings[-1].timestamp
        assert len(store.recent_window(5)) == 5

    def test_recent_includes_invalid(self, engine_config: EngineConfig) -> None:
        store = HistoryStore(engine_config)
        store.append(make_reading(97.2, day=0))
        store.append(make_reading(103.0, day=1, is_valid=False))
        assert [r.is_valid for r in store.recent(2)] == [True, False]
        assert store.recent(0) == []

    def test_device_readings(self, engine_config: EngineConfig) -> None:
        store = HistoryStore(engine_config)
        store.append(make_reading(97.2, day=0, device_id="wearable"))
        store.append(make_reading(97.3, day=1))
        store.append(make_reading(103.0, day=2, device_id="wearable", is_valid=False))
        store.append(make_reading(97.4, day=3, device_id="wearable"))

        wearable = store.device_readings("wearable")
        assert [r.temperature_f for r in wearable] == [97.2, 103.0, 97.4]
        assert [r.temperature_f for r in store.device_readings("wearable", limit=1)] == [97.4]

    def test_device_readings_before(self, engine_config: EngineConfig) -> None:
        store = HistoryStore(engine_config)
        for day, temp in enumerate([97.0, 97.1, 97.2, 97.3]):
            store.append(make_reading(temp, day=day))
        cutoff = store.readings[2].timestamp
        earlier = store.device_readings("manual", before=cutoff)
        assert [r.temperature_f for r in earlier] == [97.0, 97.1]
        assert store.device_readings("manual", limit=1, before=cutoff)[0].temperature_f == 97.1

    def test_retention_limit_drops_oldest(self, engine_config: EngineConfig) -> None:
        config = replace(engine_config, history=HistoryConfig(window_size=5, retention_limit=5))
        store = HistoryStore(config)
        for day in range(8):
            store.append(make_reading(97.0 + day / 10, day=day))
        assert len(store) == 5
        assert store.readings[0].timestamp.day == 4

    def test_readings_property_is_a_copy(self, engine_config: EngineConfig) -> None:
        store = HistoryStore(engine_config)
        store.append(make_reading(97.2))
        store.readings.clear()
        assert len(store) == 1
