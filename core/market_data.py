"""
voltrader Core: Market Data Connector (Bitquery)

Volatility-ranked universe and hourly OHLC metrics from the Bitquery
streaming GraphQL API.
"""

import logging
import os
import random
import time
from typing import Any, Dict, List, Optional

import requests

from ai.schemas import MetricSample, RankedAsset
from core.exceptions import MarketDataError

logger = logging.getLogger(__name__)

BITQUERY_URL = "https://streaming.bitquery.io/graphql"

VOLATILITY_QUERY = """
query VolatilityRanked {
  Trading {
    Currencies(
      orderBy: {descendingByField: "volatility", descending: Interval_Time_Start}
      where: {Price: {IsQuotedInUsd: true}, Interval: {Time: {Duration: {eq: 3600}}}}
    ) {
      Currency {
        Id
      }
      average(of: Price_Ohlc_Close)
      standard_deviation(of: Price_Ohlc_Close)
      volatility: calculate(expression: "100 * ( $standard_deviation / $average )")
      Interval {
        Time {
          Start
          End
        }
      }
    }
  }
}
"""

METRICS_QUERY = """
query TradeMetrics($currency: String!, $hours: Int!) {
  Trading {
    Currencies(
      where: {Currency: {Id: {is: $currency}}, Interval: {Time: {Duration: {eq: 3600}}}, Block: {Time: {since_relative: {hours_ago: $hours}}}}
      orderBy: {ascending: Interval_Time_Start}
    ) {
      Price {
        Average {
          Estimate
          WeightedSimpleMoving
        }
        Ohlc {
          Open
          High
          Low
          Close
        }
      }
      Volume {
        Usd
      }
      Interval {
        Time {
          Start
          End
        }
      }
    }
  }
}
"""


def _as_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_metric_sample(row: Dict[str, Any]) -> MetricSample:
    """Map one Bitquery Currencies row onto a MetricSample."""
    price = row.get("Price") or {}
    ohlc = price.get("Ohlc") or {}
    average = price.get("Average") or {}
    volume = row.get("Volume") or {}
    interval = (row.get("Interval") or {}).get("Time") or {}
    return MetricSample(
        open=_as_float(ohlc.get("Open")),
        high=_as_float(ohlc.get("High")),
        low=_as_float(ohlc.get("Low")),
        close=_as_float(ohlc.get("Close")),
        volume_usd=_as_float(volume.get("Usd")),
        estimate=_as_float(average.get("Estimate")),
        weighted_sma=_as_float(average.get("WeightedSimpleMoving")),
        interval_start=interval.get("Start"),
        interval_end=interval.get("End"),
    )


def parse_ranked_asset(row: Dict[str, Any]) -> Optional[RankedAsset]:
    """Map one volatility row onto a RankedAsset (None without an id)."""
    identifier = (row.get("Currency") or {}).get("Id")
    if not identifier:
        return None
    return RankedAsset(
        identifier=str(identifier),
        volatility_pct=_as_float(row.get("volatility")) or 0.0,
        average_price=_as_float(row.get("average")) or 0.0,
    )


class BitqueryClient:
    """
    Bitquery GraphQL client.

    Supports:
    - Volatility-ranked currency universe (descending by volatility)
    - Hourly trade metrics (OHLC, volume, estimate, weighted SMA)
    - Latest price lookup for liquidation
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = BITQUERY_URL,
        timeout_s: float = 20.0,
        max_retries: int = 3,
    ):
        self.api_key = api_key if api_key is not None else os.getenv("BITQUERY_API_KEY", "")
        self.base_url = base_url
        self.timeout_s = timeout_s
        self.max_retries = max(1, int(max_retries))

        if not self.api_key:
            logger.warning("No Bitquery API key configured, requests will likely be rejected")

        logger.info(f"Initialized BitqueryClient (url={self.base_url})")

    def _headers(self) -> dict:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

    def _req(self, query: str, variables: Optional[Dict[str, Any]] = None) -> dict:
        """
        POST a GraphQL query with exponential backoff.

        Retries on:
        - 429 (rate limit)
        - 5xx (server errors)
        - Network errors (timeout, connection)

        Does NOT retry on:
        - 4xx (except 429) - client errors like 400, 401, 403
        - GraphQL errors in the response body
        """
        last_exception: Optional[Exception] = None

        for attempt in range(self.max_retries):
            try:
                response = requests.request(
                    "POST",
                    self.base_url,
                    headers=self._headers(),
                    json={"query": query, "variables": variables or {}},
                    timeout=self.timeout_s,
                )
                response.raise_for_status()
                result = response.json()

            except requests.exceptions.HTTPError as e:
                status_code = e.response.status_code if e.response is not None else None

                if status_code is not None and 400 <= status_code < 500 and status_code != 429:
                    logger.error(f"Bitquery client error: {status_code} - {e.response.text}")
                    raise MarketDataError(f"HTTP Error {status_code}: {e.response.text}", status_code) from e

                if status_code == 429:
                    logger.warning(f"Rate limited (429), attempt {attempt + 1}/{self.max_retries}")
                else:
                    logger.warning(f"Server error ({status_code}), attempt {attempt + 1}/{self.max_retries}")
                last_exception = e

            except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as e:
                logger.warning(f"Network error: {e}, attempt {attempt + 1}/{self.max_retries}")
                last_exception = e

            except ValueError as e:
                raise MarketDataError(f"Invalid JSON from Bitquery: {e}") from e

            else:
                if result.get("errors"):
                    message = result["errors"][0].get("message", "unknown error")
                    logger.error(f"Bitquery API errors: {result['errors']}")
                    raise MarketDataError(message)
                return result

            # Exponential backoff with jitter if not last attempt
            if attempt < self.max_retries - 1:
                backoff = (2 ** attempt) + random.uniform(0, 1)  # 1-2s, 2-3s, 4-5s
                logger.info(f"Retrying in {backoff:.1f}s...")
                time.sleep(backoff)

        logger.error(f"All {self.max_retries} retries exhausted")
        raise MarketDataError(f"Request failed after {self.max_retries} attempts: {last_exception}")

    @staticmethod
    def _currencies(result: dict) -> List[dict]:
        try:
            rows = result["data"]["Trading"]["Currencies"]
        except (KeyError, TypeError):
            raise MarketDataError("Unexpected response structure from Bitquery API")
        if rows is None:
            raise MarketDataError("Unexpected response structure from Bitquery API")
        return rows

    def fetch_volatility_ranked(self) -> List[RankedAsset]:
        """
        Fetch currencies ranked by volatility (highest first).

        Raises:
            MarketDataError: on transport, auth or response-shape errors
        """
        logger.info("Fetching currency volatility data from Bitquery")
        rows = self._currencies(self._req(VOLATILITY_QUERY))
        ranked = [asset for asset in (parse_ranked_asset(row) for row in rows) if asset]
        logger.info(f"Fetched {len(ranked)} ranked currencies")
        return ranked

    def fetch_metrics(self, identifier: str, lookback_hours: int = 24) -> List[MetricSample]:
        """
        Fetch hourly metrics for one currency, ascending by time (may be empty).

        Raises:
            MarketDataError: on transport, auth or response-shape errors
        """
        logger.info(f"Fetching trade metrics for {identifier} for last {lookback_hours} hours")
        rows = self._currencies(
            self._req(METRICS_QUERY, {"currency": identifier, "hours": int(lookback_hours)})
        )
        return [parse_metric_sample(row) for row in rows]

    def latest_price(self, identifier: str) -> Optional[float]:
        """Latest estimate (or close) over the last hour, None if no data."""
        samples = self.fetch_metrics(identifier, 1)
        if not samples:
            return None
        return samples[-1].price
