"""
voltrader Core: Audit Logger

Structured logging of every cycle's decisions and the shutdown liquidation
for debugging and after-the-fact analysis.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class AuditLogger:
    """
    Structured audit trail logger.

    Logs:
    - Risk profile and candidate universe per cycle
    - Every resolved decision (with source: ai or fallback)
    - Execution outcomes
    - Liquidation summary at shutdown

    Output format: JSONL (one JSON object per line)
    """

    def __init__(self, audit_file: Optional[str] = None):
        """
        Initialize audit logger.

        Args:
            audit_file: Path to audit log file (default: logs/audit.jsonl)
        """
        if audit_file:
            self.audit_file = Path(audit_file)
        else:
            self.audit_file = Path("logs/audit.jsonl")

        # Ensure directory exists
        self.audit_file.parent.mkdir(parents=True, exist_ok=True)

        logger.info(f"Initialized AuditLogger at {self.audit_file}")

    def log_cycle(self,
                  ts: datetime,
                  risk_profile: str,
                  records: List[Any],
                  decisions: List[Any],
                  outcomes: List[Any],
                  allocated_capital: float,
                  error: Optional[str] = None) -> None:
        """
        Log a complete decision cycle.

        Args:
            ts: Cycle timestamp
            risk_profile: Active risk tag
            records: Metric records handed to the resolver
            decisions: Resolved decisions (same order as records)
            outcomes: Execution outcomes
            allocated_capital: Ledger allocation after execution
            error: Error string if the cycle aborted
        """
        entry = {
            "type": "cycle",
            "timestamp": ts.isoformat(),
            "risk_profile": risk_profile,
            "status": "ERROR" if error else "EXECUTED",
            "error": error,
            "assets": len(records),
            "assets_without_data": sum(1 for r in records if not getattr(r, "samples", None)),
            "decisions": [self._serialize_decision(d) for d in decisions],
            "outcomes": [
                {
                    "identifier": getattr(o, "identifier", None),
                    "action": getattr(o, "action", None),
                    "executed": getattr(o, "executed", None),
                    "position_id": getattr(o, "position_id", None),
                    "pnl": getattr(o, "pnl", None),
                }
                for o in outcomes
            ],
            "allocated_capital": round(float(allocated_capital), 2),
        }
        self._write(entry)

    def log_liquidation(self, summary: Any) -> None:
        """Log the shutdown liquidation summary."""
        entry = {
            "type": "liquidation",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "closed_count": summary.closed_count,
            "total_pnl": round(summary.total_pnl, 2),
            "positions": [
                {
                    "id": closed.position.id,
                    "identifier": closed.position.identifier,
                    "type": closed.position.type,
                    "entry_price": closed.position.entry_price,
                    "exit_price": closed.current_price,
                    "size": closed.position.size,
                    "pnl": round(closed.pnl, 2),
                }
                for closed in summary.positions
            ],
        }
        self._write(entry)

    def _serialize_decision(self, decision: Any) -> Dict[str, Any]:
        return {
            "identifier": getattr(decision, "identifier", None),
            "action": getattr(decision, "action", None),
            "position_type": getattr(decision, "position_type", None),
            "confidence": getattr(decision, "confidence", None),
            "source": getattr(decision, "source", None),
            "reference_price": getattr(decision, "reference_price", None),
            "reasoning": (getattr(decision, "reasoning", "") or "")[:200],
        }

    def _write(self, entry: Dict[str, Any]) -> None:
        try:
            # Write JSONL (one JSON per line)
            with open(self.audit_file, "a", encoding="utf-8") as f:
                f.write(json.dumps(entry, default=str) + "\n")
            logger.debug(f"Audited {entry['type']} entry")
        except Exception as e:
            logger.error(f"Failed to write audit log: {e}")

    def get_recent_entries(self, n: int = 10) -> List[Dict[str, Any]]:
        """
        Get the N most recent audit entries.

        Args:
            n: Number of entries to retrieve

        Returns:
            List of entries (most recent first)
        """
        if not self.audit_file.exists():
            return []

        try:
            with open(self.audit_file, "r", encoding="utf-8") as f:
                lines = f.readlines()

            entries = []
            for line in lines[-n:]:
                try:
                    entries.append(json.loads(line))
                except json.JSONDecodeError:
                    continue

            return list(reversed(entries))  # Most recent first

        except Exception as e:
            logger.error(f"Failed to read audit log: {e}")
            return []
