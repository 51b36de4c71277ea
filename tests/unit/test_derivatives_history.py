"""Tests for the funding / open interest cache."""

import json
from unittest.mock import Mock

import pytest

from plan_tracker.data.models import FundingSnapshot, OpenInterestSnapshot, Point
from plan_tracker.errors import UpstreamError
from plan_tracker.history.derivatives import DerivativesHistory, backfill_15m, build_bundle

NOW = 1704198600000
STEP = 300_000


def _records(values, key, start=NOW - 6 * STEP):
    return [{"t": start + i * STEP, key: v} for i, v in enumerate(values)]


def _doc(funding_values=(), oi_values=()):
    return {
        "version": 1,
        "updated_at": NOW,
        "symbols": {
            "BTC-USDT": {
                "funding": {"last_sample_time": NOW,
                            "series_5m_6h": _records(funding_values, "lastFundingRate"),
                            "series_15m_24h": []},
                "openInterest": {"last_sample_time": NOW,
                                 "series_5m_6h": _records(oi_values, "openInterest"),
                                 "series_15m_24h": []},
            }
        },
    }


class TestSample:
    """Test the write side of the derivatives cache."""

    def setup_method(self):
        self.client = Mock()
        self.client.fetch_funding.return_value = FundingSnapshot(
            t=NOW, mark_price=42000.0, index_price=41990.0,
            last_funding_rate=0.0001, next_funding_time=None,
        )
        self.client.fetch_open_interest.return_value = OpenInterestSnapshot(
            ok=True, open_interest=5000.0, time=NOW,
        )

    def test_sample_writes_all_series(self, tmp_path):
        history = DerivativesHistory(tmp_path / "deriv.json", self.client, clock=lambda: NOW)
        summary = history.sample("BTC-USDT")

        assert summary["funding_points_5m"] == 1
        assert summary["funding_points_15m"] == 1
        assert summary["oi_points_5m"] == 1
        assert summary["oi_recorded"] is True

        doc = json.loads((tmp_path / "deriv.json").read_text(encoding="utf-8"))
        entry = doc["symbols"]["BTC-USDT"]
        assert doc["updated_at"] == NOW
        assert entry["funding"]["series_5m_6h"][0]["lastFundingRate"] == 0.0001
        assert entry["openInterest"]["series_15m_24h"] == [{"t": NOW, "openInterest": 5000.0}]

    def test_open_interest_not_supported(self, tmp_path):
        self.client.fetch_open_interest.return_value = OpenInterestSnapshot.not_supported()
        history = DerivativesHistory(tmp_path / "deriv.json", self.client, clock=lambda: NOW)

        summary = history.sample("NEW-USDT")

        assert summary["oi_recorded"] is False
        assert summary["oi_reason"] == "NOT_SUPPORTED"
        assert summary["funding_points_5m"] == 1
        doc = history.load()
        assert doc["symbols"]["NEW-USDT"]["openInterest"]["last_sample_time"] == NOW

    def test_repeated_sample_in_bucket_replaces(self, tmp_path):
        path = tmp_path / "deriv.json"
        DerivativesHistory(path, self.client, clock=lambda: NOW).sample("BTC-USDT")
        summary = DerivativesHistory(path, self.client, clock=lambda: NOW + 60_000).sample("BTC-USDT")

        assert summary["funding_points_5m"] == 1
        assert summary["funding_points_15m"] == 1

    def test_upstream_failure_leaves_cache_untouched(self, tmp_path):
        self.client.fetch_open_interest.side_effect = UpstreamError("boom", endpoint="/oi")
        history = DerivativesHistory(tmp_path / "deriv.json", self.client, clock=lambda: NOW)

        with pytest.raises(UpstreamError):
            history.sample("BTC-USDT")
        assert not (tmp_path / "deriv.json").exists()

    def test_corrupt_cache_starts_empty(self, tmp_path):
        path = tmp_path / "deriv.json"
        path.write_text("{truncated", encoding="utf-8")

        assert DerivativesHistory(path).load()["symbols"] == {}


class TestBackfill:
    def test_complete_groups_only(self):
        points = [Point(t=i * STEP, v=float(i + 1)) for i in range(7)]
        out, backfilled = backfill_15m(points, [], lambda vs: sum(vs) / len(vs))

        assert backfilled
        assert out == [Point(t=0, v=2.0), Point(t=3 * STEP, v=5.0)]

    def test_native_series_kept_when_dense_enough(self):
        points = [Point(t=i * STEP, v=1.0) for i in range(6)]
        native = [Point(t=0, v=9.0), Point(t=3 * STEP, v=9.0)]

        assert backfill_15m(points, native, max) == (native, False)


class TestBuildBundle:
    """Test rebuilding the bundle from cache documents."""

    def test_backfills_thin_15m(self):
        bundle = build_bundle(_doc([1, 2, 3, 4, 5, 6], [10, 20, 30, 40, 50, 60]), "BTC-USDT")

        assert [p.v for p in bundle.funding15] == [2.0, 5.0]
        assert [p.v for p in bundle.oi15] == [30.0, 60.0]
        assert bundle.sources["funding15"] == "backfill_from_5m"
        assert bundle.sources["funding5"] == "funding.series_5m_6h"
        assert bundle.sources["locator"] == "symbols.<symbol>"
        assert bundle.updated_at == NOW

    def test_oi_fallback_missing(self):
        bundle = build_bundle(_doc([1, 2, 3]), "BTC-USDT")
        assert bundle.oi_fallback == {"used": False, "reason": "oi_fallback_missing"}

    def test_oi_fallback_empty(self):
        bundle = build_bundle(_doc([1, 2, 3]), "BTC-USDT", oi_fallback_doc={"symbols": {}})
        assert bundle.oi_fallback["reason"] == "oi_fallback_empty"

    def test_oi_fallback_used(self):
        fallback = {"BTCUSDT": {"oi": {"series5m": _records([7, 8, 9], "value")}}}
        bundle = build_bundle(_doc([1, 2, 3]), "BTC-USDT", oi_fallback_doc=fallback)

        assert bundle.oi_fallback["used"] is True
        assert [p.v for p in bundle.oi5] == [7.0, 8.0, 9.0]
        assert bundle.sources["oi5"] == "oi_fallback:oi.series5m"
        assert bundle.sources["oi15"] == "oi_fallback:backfill_from_5m"

    def test_legacy_top_level_shape(self):
        legacy = {"BTCUSDT": {"fundingRate": {"series5m": [
            {"time": NOW - STEP, "rate": "0.0002"},
            {"time": NOW, "rate": "0.0003"},
        ]}}}
        bundle = build_bundle(legacy, "BTC-USDT")

        assert bundle.sources["locator"] == "<symbol>"
        assert bundle.sources["funding5"] == "fundingRate.series5m"
        assert [p.v for p in bundle.funding5] == [0.0002, 0.0003]

    def test_updated_at_from_primary_file(self):
        bundle = build_bundle(_doc([1, 2, 3]), "BTC-USDT", oi_fallback_doc={"updated_at": NOW - STEP})
        assert bundle.updated_at == NOW
        assert bundle.sources["updated_at"] == "file"

    def test_updated_at_falls_back_to_oi_fallback_file(self):
        doc = _doc([1, 2, 3])
        del doc["updated_at"]
        fallback = {"updated_at": NOW - STEP, "BTCUSDT": {"oi": {"series5m": _records([7, 8], "value")}}}

        bundle = build_bundle(doc, "BTC-USDT", oi_fallback_doc=fallback)

        assert bundle.updated_at == NOW - STEP
        assert bundle.sources["updated_at"] == "oi_fallback_file"

    def test_updated_at_falls_back_to_newest_point(self):
        doc = _doc([1, 2, 3], [10, 20, 30, 40])
        del doc["updated_at"]

        bundle = build_bundle(doc, "BTC-USDT")

        assert bundle.updated_at == NOW - 3 * STEP
        assert bundle.sources["updated_at"] == "newest_point"

    def test_no_document(self):
        bundle = build_bundle(None, "BTC-USDT")
        assert bundle.is_empty
        assert bundle.sources["locator"] == "none"
        assert bundle.updated_at is None


class TestReadSide:
    def test_bundle_debug(self, tmp_path, write_json):
        path = write_json(tmp_path / "deriv.json", _doc([1, 2, 3], [1, 2, 3]))
        bundle, debug = DerivativesHistory(path).bundle("BTC-USDT")

        assert len(bundle.oi5) == 3
        assert debug["deriv_primary"] == {"file": "deriv.json", "reason": None}
        assert debug["oi_fallback"]["used"] is False

    def test_missing_primary(self, tmp_path):
        bundle, debug = DerivativesHistory(tmp_path / "deriv.json").bundle("BTC-USDT")

        assert bundle.is_empty
        assert "not_found" in debug["deriv_primary"]["reason"]
        assert debug["oi_fallback"]["detail"] == "not_configured"
