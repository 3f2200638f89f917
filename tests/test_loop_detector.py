"""Tests for loop and stuck detection."""

from taskAgent.loop.detection import DetectionOutcome, LoopDetector
from taskAgent.config.settings import LoopSettings


class TestIdenticalRepeats:
    """Trigger 1: identical tool and arguments."""

    def test_third_identical_call_stops(self):
        detector = LoopDetector()
        assert detector.check("local::search", {"q": "x"}).outcome == DetectionOutcome.OK
        assert detector.check("local::search", {"q": "x"}).outcome == DetectionOutcome.OK
        detection = detector.check("local::search", {"q": "x"})
        assert detection.outcome == DetectionOutcome.STOP
        assert "3 times in a row" in detection.message

    def test_argument_key_order_does_not_matter(self):
        detector = LoopDetector(max_repeats=2)
        detector.check("a::b", {"x": 1, "y": 2})
        assert detector.check("a::b", {"y": 2, "x": 1}).outcome == DetectionOutcome.STOP

    def test_different_call_resets_run(self):
        detector = LoopDetector()
        detector.check("local::search", {"q": "x"})
        detector.check("local::search", {"q": "x"})
        detector.check("local::file_read", {"path": "a"})
        assert detector.check("local::search", {"q": "x"}).outcome == DetectionOutcome.OK


class TestWarnThenStop:
    """Triggers 2 and 3 share one warning."""

    def test_consecutive_same_name_warns_then_stops(self):
        detector = LoopDetector()
        outcomes = [detector.check("local::search", {"q": str(i)}).outcome for i in range(6)]
        assert outcomes[:4] == [DetectionOutcome.OK] * 4
        assert outcomes[4] == DetectionOutcome.WARN
        assert outcomes[5] == DetectionOutcome.STOP
        assert detector.warning_given

    def test_frequency_limit_for_interleaved_calls(self):
        detector = LoopDetector()
        outcomes = []
        for i in range(8):
            outcomes.append(detector.check("local::search", {"q": str(i)}).outcome)
            detector.check("local::lookup", {"id": i})
        assert outcomes[-1] == DetectionOutcome.WARN
        assert detector.tool_count("search") == 8

    def test_read_only_tools_get_higher_limit(self):
        detector = LoopDetector()
        for i in range(10):
            assert detector.check("local::file_read", {"path": f"f{i}"}).outcome == DetectionOutcome.OK
            detector.check("local::lookup", {"id": i})
        assert detector.tool_count("file_read") == 10

    def test_single_shared_warning(self):
        detector = LoopDetector(max_frequency=3, max_consecutive=2)
        assert detector.check("a::x", {"n": 1}).outcome == DetectionOutcome.OK
        assert detector.check("a::x", {"n": 2}).outcome == DetectionOutcome.WARN
        detector.check("a::y", {})
        # Frequency trigger fires next, but the warning is already spent
        assert detector.check("a::x", {"n": 3}).outcome == DetectionOutcome.STOP

    def test_from_settings(self):
        detector = LoopDetector.from_settings(LoopSettings(max_loop_repeats=4, max_consecutive_same=6))
        assert detector.max_repeats == 4
        assert detector.max_consecutive == 6
