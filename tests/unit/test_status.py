"""Unit tests for telemetry-to-snapshot translation."""

from __future__ import annotations

import json

import pytest

from roomba_bridge.status import malformed_fields, parse_phase, phase_of, state_is_complete
from roomba_bridge.structs import EMPTY_STATUS, StatusSnapshot

ALL_PHASES = ["run", "charge", "recharge", "stop", "stuck", "evac", "hmUsrDock", "hmMidMsn", "hmPostMsn", "new"]


class TestPhaseMapping:
    """Tests for the phase -> flags mapping."""

    def test_run_phase(self):
        snapshot = parse_phase({"batPct": 77, "bin": {"full": False}, "cleanMissionStatus": {"phase": "run"}})
        assert snapshot.battery_level == 77
        assert snapshot.bin_full is False
        assert snapshot.running is True
        assert snapshot.charging is False
        assert snapshot.docking is False

    def test_charge_phase(self):
        snapshot = parse_phase({"batPct": 100, "bin": {"full": False}, "cleanMissionStatus": {"phase": "charge"}})
        assert (snapshot.running, snapshot.charging, snapshot.docking) == (False, True, False)
        assert snapshot.battery_level == 100

    def test_dock_approach_phase(self):
        snapshot = parse_phase({"batPct": 50, "bin": {"full": False}, "cleanMissionStatus": {"phase": "hmUsrDock"}})
        assert (snapshot.running, snapshot.charging, snapshot.docking) == (False, False, True)

    @pytest.mark.parametrize("phase", ["hmMidMsn", "hmPostMsn"])
    def test_other_dock_phases(self, phase: str):
        assert parse_phase({"cleanMissionStatus": {"phase": phase}}).docking is True

    def test_recharge_counts_as_charging(self):
        assert parse_phase({"cleanMissionStatus": {"phase": "recharge"}}).charging is True

    @pytest.mark.parametrize("phase", ["stop", "stuck", "evac", "somethingNew"])
    def test_other_phases_are_idle(self, phase: str):
        snapshot = parse_phase({"cleanMissionStatus": {"phase": phase}})
        assert (snapshot.running, snapshot.charging, snapshot.docking) == (False, False, False)

    @pytest.mark.parametrize("phase", ALL_PHASES)
    @pytest.mark.parametrize("previous_phase", ALL_PHASES)
    def test_at_most_one_phase_flag(self, phase: str, previous_phase: str):
        """Whatever came before, a new phase never leaves two flags set."""
        previous = parse_phase({"cleanMissionStatus": {"phase": previous_phase}})
        snapshot = parse_phase({"cleanMissionStatus": {"phase": phase}}, previous)
        assert sum((snapshot.running, snapshot.charging, snapshot.docking)) <= 1


class TestPartialTelemetry:
    """Tests for merging fragments onto the previous snapshot."""

    def test_empty_state_keeps_defaults(self):
        assert parse_phase({}) == EMPTY_STATUS

    def test_non_mapping_returns_previous(self):
        previous = StatusSnapshot(battery_level=40, charging=True)
        assert parse_phase(None, previous) is previous
        assert parse_phase("garbage", previous) is previous

    def test_battery_only_fragment_keeps_phase(self):
        previous = parse_phase({"batPct": 90, "cleanMissionStatus": {"phase": "run"}})
        snapshot = parse_phase({"batPct": 85}, previous)
        assert snapshot.battery_level == 85
        assert snapshot.running is True

    def test_phase_only_fragment_keeps_battery(self):
        previous = parse_phase({"batPct": 63, "bin": {"full": True}})
        snapshot = parse_phase({"cleanMissionStatus": {"phase": "charge"}}, previous)
        assert snapshot.battery_level == 63
        assert snapshot.bin_full is True
        assert snapshot.charging is True

    def test_malformed_fields_are_ignored(self):
        previous = StatusSnapshot(battery_level=55, bin_full=True)
        snapshot = parse_phase({"batPct": "lots", "bin": {"full": "yes"}, "cleanMissionStatus": "run"}, previous)
        assert snapshot == previous

    def test_battery_is_clamped(self):
        assert parse_phase({"batPct": 130}).battery_level == 100
        assert parse_phase({"batPct": -5}).battery_level == 0

    def test_boolean_battery_is_rejected(self):
        assert parse_phase({"batPct": True}).battery_level == 0

    @pytest.mark.parametrize("literal", ["NaN", "Infinity", "-Infinity"])
    def test_non_finite_battery_is_ignored(self, literal: str):
        previous = StatusSnapshot(battery_level=42, charging=True)
        state = json.loads(f'{{"batPct": {literal}}}')
        assert parse_phase(state, previous) == previous

    def test_timestamp_is_applied(self):
        assert parse_phase({"batPct": 10}, timestamp=1234.5).timestamp == 1234.5

    def test_timestamp_defaults_to_previous(self):
        previous = StatusSnapshot(timestamp=99.0)
        assert parse_phase({"batPct": 10}, previous).timestamp == 99.0

    def test_parse_is_pure(self):
        state = {"batPct": 77, "bin": {"full": False}, "cleanMissionStatus": {"phase": "run"}}
        assert parse_phase(state) == parse_phase(state)
        assert state == {"batPct": 77, "bin": {"full": False}, "cleanMissionStatus": {"phase": "run"}}


class TestPausedFlag:
    """Tests for detecting a cleaning cycle stopped part way."""

    def test_stopped_mid_clean_is_paused(self):
        assert parse_phase({"cleanMissionStatus": {"phase": "stop", "cycle": "clean"}}).paused is True

    def test_running_is_not_paused(self):
        assert parse_phase({"cleanMissionStatus": {"phase": "run", "cycle": "clean"}}).paused is False

    def test_no_cycle_is_not_paused(self):
        assert parse_phase({"cleanMissionStatus": {"phase": "charge", "cycle": "none"}}).paused is False


class TestHelpers:
    """Tests for state_is_complete and phase_of."""

    def test_complete_state(self):
        assert state_is_complete({"batPct": 1, "bin": {}, "cleanMissionStatus": {}}) is True

    def test_incomplete_state(self):
        assert state_is_complete({"batPct": 1, "bin": {}}) is False
        assert state_is_complete({"batPct": 1, "bin": {}, "cleanMissionStatus": None}) is False
        assert state_is_complete([]) is False

    def test_well_formed_state(self):
        state = {"batPct": 80, "bin": {"present": True, "full": False}, "cleanMissionStatus": {"phase": "run"}}
        assert malformed_fields(state) == []

    def test_malformed_fields(self):
        state = json.loads('{"batPct": NaN, "bin": {"full": "no"}, "cleanMissionStatus": "garbage"}')
        assert malformed_fields(state) == ["batPct", "bin", "cleanMissionStatus"]

    def test_phase_of(self):
        assert phase_of({"cleanMissionStatus": {"phase": "run"}}) == "run"
        assert phase_of({"cleanMissionStatus": {}}) is None
        assert phase_of({}) is None
        assert phase_of(None) is None


class TestSnapshot:
    """Tests for StatusSnapshot helpers."""

    def test_is_active(self):
        assert StatusSnapshot(running=True).is_active is True
        assert StatusSnapshot(docking=True).is_active is True
        assert StatusSnapshot(charging=True).is_active is False

    def test_as_dict_uses_camel_case(self):
        data = StatusSnapshot(battery_level=77, bin_full=True).as_dict()
        assert data["batteryLevel"] == 77
        assert data["binFull"] is True
        assert set(data) == {"timestamp", "batteryLevel", "binFull", "running", "charging", "docking", "paused"}
