"""Public market data client for the perpetual swap exchange."""

import json
import socket
import time
from typing import Any, Callable, Optional
from urllib.error import URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

import structlog

from ..config.defaults import ExchangeParams
from ..data.models import Candle, FundingSnapshot, OpenInterestSnapshot
from ..data.normalizer import normalize_klines, to_float
from ..errors import UpstreamError
from ..utils.time import now_ms

logger = structlog.get_logger(__name__)

OI_NOT_EXIST_CODE = 109400
OI_NOT_EXIST_MSG = "OpenInterestNotExist"


class ExchangeClient:
    """
    Thin GET client over the exchange's public quote endpoints.

    Every call has its own timeout; transport failures and non-zero response
    codes are retried up to ``max_attempts`` in total, then raised as
    ``UpstreamError``.
    """

    def __init__(self, params: ExchangeParams = ExchangeParams(),
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], int] = now_ms):
        self.params = params
        self._sleep = sleep
        self._clock = clock

    def _get(self, path: str, query: dict[str, Any]) -> dict[str, Any]:
        url = f"{self.params.base_url}{path}?{urlencode(query)}"
        req = Request(url, headers={"User-Agent": self.params.user_agent}, method="GET")

        with urlopen(req, timeout=self.params.timeout_seconds) as response:
            body = response.read().decode("utf-8")

        payload = json.loads(body)
        if not isinstance(payload, dict):
            raise ValueError(f"Unexpected response type {type(payload).__name__}")
        return payload

    def _call(self, path: str, query: dict[str, Any],
              accept: Callable[[dict[str, Any]], bool]) -> dict[str, Any]:
        """GET with retry; ``accept`` decides whether a payload is usable."""
        attempts = max(1, self.params.max_attempts)
        last_error: Optional[Exception] = None
        last_code = None

        for attempt in range(1, attempts + 1):
            try:
                payload = self._get(path, query)
                if accept(payload):
                    return payload
                last_code = payload.get("code")
                last_error = ValueError(f"Unexpected response: {json.dumps(payload)[:200]}")
            except (OSError, URLError, socket.timeout, ValueError) as e:
                last_error = e

            logger.warning("Exchange request failed", endpoint=path, attempt=attempt,
                           max_attempts=attempts, error=str(last_error))
            if attempt < attempts:
                self._sleep(self.params.retry_pause_seconds * attempt)

        raise UpstreamError(f"{path} failed after {attempts} attempt(s): {last_error}",
                            endpoint=path, code=last_code, retry_count=attempts,
                            max_retries=attempts - 1)

    def fetch_klines(self, symbol: str, interval: str = "5m",
                     limit: Optional[int] = None) -> list[Candle]:
        """Recent candles, ascending by open time."""
        payload = self._call(
            self.params.klines_path,
            {"symbol": symbol, "interval": interval, "limit": limit or self.params.kline_limit},
            lambda p: p.get("code") == 0 and isinstance(p.get("data"), list),
        )
        candles, strategy = normalize_klines(payload["data"])
        logger.debug("Klines fetched", symbol=symbol, interval=interval,
                     count=len(candles), strategy=strategy)
        return candles

    def fetch_funding(self, symbol: str) -> FundingSnapshot:
        """Current premium index reading; ``t`` is the local sample time."""
        payload = self._call(
            self.params.premium_index_path,
            {"symbol": symbol},
            lambda p: p.get("code") == 0 and isinstance(p.get("data"), dict),
        )
        data = payload["data"]
        next_funding = to_float(data.get("nextFundingTime", data.get("nextFundingTimestamp")))
        return FundingSnapshot(
            t=self._clock(),
            mark_price=to_float(data.get("markPrice")),
            index_price=to_float(data.get("indexPrice")),
            last_funding_rate=to_float(data.get("lastFundingRate")),
            next_funding_time=int(next_funding) if next_funding is not None else None,
        )

    def fetch_open_interest(self, symbol: str) -> OpenInterestSnapshot:
        """
        Current open interest.

        Symbols without published open interest return a NOT_SUPPORTED
        snapshot instead of raising.
        """
        def accept(p: dict[str, Any]) -> bool:
            if p.get("code") == OI_NOT_EXIST_CODE and p.get("msg") == OI_NOT_EXIST_MSG:
                return True
            return p.get("code") == 0 and isinstance(p.get("data"), dict)

        payload = self._call(self.params.open_interest_path, {"symbol": symbol}, accept)
        if payload.get("code") == OI_NOT_EXIST_CODE:
            logger.info("Open interest not supported", symbol=symbol)
            return OpenInterestSnapshot.not_supported()

        data = payload["data"]
        oi_time = to_float(data.get("time", data.get("timestamp", data.get("t"))))
        return OpenInterestSnapshot(
            ok=True,
            open_interest=to_float(data.get("openInterest")),
            time=int(oi_time) if oi_time is not None else None,
        )
