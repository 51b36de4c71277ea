"""Default configuration parameters for the plan tracker."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class SeriesLimits:
    """Retention window and point cap for one cached series."""
    bucket_ms: int
    retention_ms: int
    cap: int


MINUTE_MS = 60_000
HOUR_MS = 60 * MINUTE_MS
DAY_MS = 24 * HOUR_MS


@dataclass(frozen=True)
class CacheParams:
    """Bucketing, retention and caps for every rolling series."""
    deriv_5m: SeriesLimits = SeriesLimits(5 * MINUTE_MS, 6 * HOUR_MS, 72)
    deriv_15m: SeriesLimits = SeriesLimits(15 * MINUTE_MS, 24 * HOUR_MS, 96)
    raw_5m: SeriesLimits = SeriesLimits(5 * MINUTE_MS, 24 * HOUR_MS, 288)
    agg_1h_cap: int = 200
    tf_1h: SeriesLimits = SeriesLimits(HOUR_MS, 14 * DAY_MS, 336)
    cache_version: int = 1


@dataclass(frozen=True)
class SchedulerParams:
    """Background sampling timers."""
    enabled: bool = True
    derivatives_interval_seconds: float = 300.0
    volatility_interval_seconds: float = 300.0
    jitter_seconds: float = 10.0
    startup_delay_seconds: float = 1.0
    backoff_seconds: float = 30.0
    pipeline_timeout_seconds: float = 25.0


@dataclass(frozen=True)
class ExchangeParams:
    """Exchange data source endpoints and call budget."""
    base_url: str = "https://open-api.bingx.com"
    klines_path: str = "/openApi/swap/v3/quote/klines"
    premium_index_path: str = "/openApi/swap/v2/quote/premiumIndex"
    open_interest_path: str = "/openApi/swap/v2/quote/openInterest"
    timeout_seconds: float = 8.0
    max_attempts: int = 2
    retry_pause_seconds: float = 0.3
    kline_limit: int = 120
    user_agent: str = "plan-tracker/0.1"


@dataclass(frozen=True)
class SignalParams:
    """Derivative signal windows and freshness thresholds."""
    slope_window_5m: int = 24
    slope_window_15m: int = 32
    trend_lookback_5m: int = 12
    trend_lookback_15m: int = 8
    trend_flat_pct: float = 0.05
    min_points: int = 3
    fresh_seconds: int = 180
    stale_seconds: int = 1800
    sweep_match_tolerance_ms: int = 10 * MINUTE_MS


@dataclass(frozen=True)
class VolatilityParams:
    """ATR/BBW periods and regime thresholds."""
    atr_period: int = 14
    bbw_period: int = 20
    bbw_k: float = 2.0
    baseline_window: int = 50
    quiet_below: float = 0.8
    normal_below: float = 1.2
    hot_below: float = 1.6
    stale_seconds: int = 1800


@dataclass(frozen=True)
class GridParams:
    """Grid sweep pipeline parameters."""
    sweep_lookback: int = 12
    wick_ratio_min: float = 0.45
    wick_body_multiple: float = 1.2
    sweep_band_pct: float = 0.0035


@dataclass(frozen=True)
class TrendParams:
    """Trend-up pipeline parameters."""
    higher_low_window: int = 6
    oi_rising_points: int = 3


@dataclass(frozen=True)
class PathParams:
    """Filesystem layout under the data directory."""
    data_dir: str = "data"
    decision_file: str = "latest_decision.json"
    derivatives_cache_file: str = "derivatives_history_cache.json"
    oi_fallback_file: str = "oi_history_cache.json"
    volatility_cache_file: str = "volatility_baseline_cache.json"
    # one file per symbol: plan_status_state.<SYMBOL>.json
    state_file: str = "plan_status_state.json"
    log_file: str = "plan_status_log.jsonl"
    news_file: str = "news_context.json"


@dataclass(frozen=True)
class DefaultConfig:
    """Complete default configuration."""
    cache: CacheParams
    scheduler: SchedulerParams
    exchange: ExchangeParams
    signals: SignalParams
    volatility: VolatilityParams
    grid: GridParams
    trend: TrendParams
    paths: PathParams
    symbols: tuple = field(default=("BTC-USDT",))


def get_default_config() -> DefaultConfig:
    """Get the default configuration instance."""
    return DefaultConfig(
        cache=CacheParams(),
        scheduler=SchedulerParams(),
        exchange=ExchangeParams(),
        signals=SignalParams(),
        volatility=VolatilityParams(),
        grid=GridParams(),
        trend=TrendParams(),
        paths=PathParams(),
    )
