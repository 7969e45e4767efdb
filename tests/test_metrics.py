"""Tests for Metrics counters."""

from flagsync.metrics import Metrics


class TestMetrics:
    def test_count(self):
        metrics = Metrics("app", "instance")
        metrics.count("a", True)
        metrics.count("a", False)
        metrics.count("a", True)

        bucket = metrics.get_bucket()

        assert bucket["appName"] == "app"
        assert bucket["toggles"]["a"] == {"yes": 2, "no": 1, "variants": {}}

    def test_disabled(self):
        metrics = Metrics("app", disabled=True)
        assert metrics.count("a", True) is False
        assert metrics.get_bucket()["toggles"] == {}

    def test_invalid_name_warns(self):
        metrics = Metrics("app")
        warnings = []
        metrics.on("warn", warnings.append)

        assert metrics.count(None, True) is False
        assert len(warnings) == 1

    def test_reset_bucket(self):
        metrics = Metrics("app")
        metrics.count_variant("a", "blue")

        snapshot = metrics.reset_bucket()

        assert snapshot["toggles"]["a"]["variants"] == {"blue": 1}
        assert metrics.get_bucket()["toggles"] == {}

    def test_stop(self):
        metrics = Metrics("app")
        metrics.on("warn", lambda msg: None)
        metrics.stop()

        assert metrics.count("a", True) is False
        assert metrics.listener_count("warn") == 0
