"""
Batch Decision Resolver - single reasoning call per cycle.

Turns N metric records into exactly N decisions, in input order:
- Builds one prompt covering the whole batch
- Calls the reasoning service once (never per record)
- Tolerantly parses the JSON response into ParsedDecisions | ParseFailure
- Reconciles entries against the inputs by identifier
- Falls back to the deterministic rule for anything missing or unusable

Never raises past resolve_batch().
"""

import json
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .fallback import fallback_decision
from .model_client import ModelClient, strip_markdown_fences
from .risk_profile import RiskProfile
from .schemas import (
    Decision,
    MetricRecord,
    ParsedDecision,
    ParsedDecisions,
    ParseFailure,
    ParseResult,
)
from .strategies import get_strategy

logger = logging.getLogger(__name__)

_JSON_ARRAY = re.compile(r"\[[\s\S]*\]")


@dataclass
class ResolverSettings:
    """Runtime knobs for the batch resolver."""

    timeout_s: float = 30.0
    # The reasoning service does not return calibrated confidence
    default_confidence: float = 0.7
    default_reasoning: str = "Market analysis completed"


class BatchDecisionResolver:
    """Resolves a batch of metric records into ordered decisions."""

    def __init__(
        self,
        client: Optional[ModelClient],
        settings: Optional[ResolverSettings] = None,
    ) -> None:
        self._client = client
        self.settings = settings or ResolverSettings()

    def resolve_batch(self, records: List[MetricRecord], profile: RiskProfile) -> List[Decision]:
        """
        Produce one decision per record.

        Args:
            records: Metric records in the order they should be executed
            profile: Active risk profile (selects strategy guidance text)

        Returns:
            List of decisions; decisions[i].identifier == records[i].identifier
        """
        if not records:
            return []

        if self._client is None:
            logger.warning("No reasoning client configured, using fallback logic")
            return self._fallback_all(records)

        logger.info(f"Analyzing {len(records)} currencies in a single reasoning call")
        start = time.perf_counter()

        try:
            prompt = self.build_prompt(records, profile)
            response_text = self._client.generate(prompt, timeout=self.settings.timeout_s)
            parsed = self.parse_response(response_text)
        except Exception as e:
            logger.error(f"Reasoning call failed: {e}", exc_info=True)
            return self._fallback_all(records)

        if isinstance(parsed, ParseFailure):
            logger.warning(f"Failed to parse reasoning response: {parsed.reason}, using fallback")
            return self._fallback_all(records)

        decisions = self.reconcile(records, parsed)
        ai_count = sum(1 for d in decisions if d.source == "ai")
        logger.info(
            f"Resolved {len(decisions)} decisions in {(time.perf_counter() - start)*1000:.1f}ms "
            f"(ai={ai_count}, fallback={len(decisions) - ai_count})"
        )
        return decisions

    # ------------------------------------------------------------------
    # Prompt
    # ------------------------------------------------------------------

    def build_prompt(self, records: List[MetricRecord], profile: RiskProfile) -> str:
        """Build prompt with strategy text and per-record metrics."""
        parts = [get_strategy(profile.name).strip(), ""]
        parts.append(f"Analyze the following {len(records)} currencies and provide trading decisions:")
        parts.append("")

        for num, record in enumerate(records, start=1):
            parts.append(f"--- CURRENCY {num} ---")
            parts.append(f"Currency ID: {record.identifier}")
            parts.append(f"Volatility: {float(record.volatility_pct or 0.0):.2f}%")
            parts.append(f"Average Price: {float(record.average_price or 0.0):.6f} USD")

            latest = record.latest
            if latest is not None:
                close = latest.close or 0.0
                estimate = latest.estimate if latest.estimate is not None else close
                sma = latest.weighted_sma if latest.weighted_sma is not None else estimate
                parts.append(
                    f"OHLC: Open={latest.open or 0.0:.6f}, High={latest.high or 0.0:.6f}, "
                    f"Low={latest.low or 0.0:.6f}, Close={close:.6f}"
                )
                parts.append(f"Price Estimate: {estimate:.6f} USD")
                parts.append(f"Weighted SMA: {sma:.6f} USD")
                parts.append(f"Volume (USD): {latest.volume_usd or 0.0:.2f} USD")
            else:
                parts.append("Metrics: Not available")
            parts.append("")

        parts.append("Return your decisions as a JSON array. Example format:")
        parts.append("[")
        parts.append('  {"identifier": "bid:solana:XXX", "action": "OPEN LONG", "positionType": "long", '
                     '"reasoning": "Strong bullish trend"},')
        parts.append('  {"identifier": "bid:solana:YYY", "action": "HOLD", "positionType": null, '
                     '"reasoning": "Waiting for confirmation"}')
        parts.append("]")

        return "\n".join(parts)

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------

    def parse_response(self, text: Optional[str]) -> ParseResult:
        """
        Tolerantly parse response text into decision entries.

        Accepts a bare JSON array, an object wrapping a list, markdown-fenced
        JSON, or the first [...] span inside free text.
        """
        if not text or not str(text).strip():
            return ParseFailure(reason="empty response")

        raw = str(text)
        data = self._load_json(strip_markdown_fences(raw).strip())
        if data is None:
            match = _JSON_ARRAY.search(raw)
            if not match:
                return ParseFailure(reason="no JSON array found in response", raw=raw[:500])
            data = self._load_json(match.group(0))
            if data is None:
                return ParseFailure(reason="malformed JSON array", raw=raw[:500])

        items = self._extract_list(data)
        if items is None:
            return ParseFailure(reason="response does not contain a decision list", raw=raw[:500])

        entries: List[ParsedDecision] = []
        for item in items:
            if not isinstance(item, dict):
                logger.debug(f"Ignoring non-object decision entry: {item!r}")
                continue
            identifier = item.get("identifier") or item.get("currencyId")
            if not identifier:
                logger.debug(f"Ignoring decision entry without identifier: {item}")
                continue
            action = item.get("action")
            position_type = item.get("positionType")
            reasoning = item.get("reasoning")
            entries.append(
                ParsedDecision(
                    identifier=str(identifier),
                    action=str(action) if action else "HOLD",
                    position_type=str(position_type) if position_type else None,
                    reasoning=str(reasoning) if reasoning else None,
                )
            )

        return ParsedDecisions(entries=entries)

    @staticmethod
    def _load_json(text: str) -> Any:
        try:
            return json.loads(text)
        except (ValueError, TypeError):
            return None

    @staticmethod
    def _extract_list(data: Any) -> Optional[List[Any]]:
        if isinstance(data, list):
            return data
        if isinstance(data, dict):
            for key in ("decisions", "currencies", "results"):
                if isinstance(data.get(key), list):
                    return data[key]
            for value in data.values():
                if isinstance(value, list):
                    return value
        return None

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def reconcile(self, records: List[MetricRecord], parsed: ParsedDecisions) -> List[Decision]:
        """Match parsed entries to records by identifier, in record order."""
        lookup: Dict[str, ParsedDecision] = {}
        for entry in parsed.entries:
            lookup[entry.identifier] = entry

        decisions: List[Decision] = []
        for record in records:
            entry = lookup.get(record.identifier)
            if entry is None:
                logger.debug(f"No reasoning entry for {record.identifier}, using fallback")
                decisions.append(fallback_decision(record.identifier, record))
                continue
            decisions.append(self._normalize(record, entry))
        return decisions

    def _normalize(self, record: MetricRecord, entry: ParsedDecision) -> Decision:
        action_text = (entry.action or "HOLD").upper()
        if "OPEN" in action_text:
            action = "open"
        elif "CLOSE" in action_text:
            action = "close"
        else:
            action = "hold"

        explicit_type = (entry.position_type or "").strip().lower()
        if explicit_type in ("long", "short"):
            position_type = explicit_type
        elif "SHORT" in action_text:
            position_type = "short"
        else:
            position_type = "long"

        return Decision(
            identifier=record.identifier,
            action=action,
            position_type=position_type,
            confidence=self.settings.default_confidence,
            reasoning=entry.reasoning or self.settings.default_reasoning,
            reference_price=record.reference_price,
            source="ai",
        )

    @staticmethod
    def _fallback_all(records: List[MetricRecord]) -> List[Decision]:
        return [fallback_decision(record.identifier, record) for record in records]
