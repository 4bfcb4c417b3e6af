"""
voltrader Runner: Main Loop

Orchestrates one decision cycle and the shutdown liquidation.

Flow:
1. Load + validate config, configure logging
2. Select risk profile (CLI flag, config, or interactive menu)
3. Fetch ranked universe and per-asset metrics
4. Resolve decisions in one batched reasoning call
5. Execute decisions against the simulated ledger
6. Rest until SIGINT/SIGTERM (optionally enforcing stop-loss/take-profit)
7. Liquidate all open positions and print the P&L summary
"""

import logging
import signal
import sys
import threading
from pathlib import Path
from typing import Optional

from ai.decision_resolver import BatchDecisionResolver, ResolverSettings
from ai.model_client import ModelClient, create_model_client
from ai.risk_profile import get_risk_profile
from core.audit_log import AuditLogger
from core.exceptions import CriticalDataUnavailable, CycleCancelled
from core.market_data import BitqueryClient
from core.position_ledger import LiquidationSummary, PositionLedger
from core.position_manager import PositionManager
from core.trading_cycle import CycleSettings, TradingCyclePipeline
from infra.metrics import MetricsRecorder
from infra.symbols import display_name
from runner.terminal import TerminalUI
from tools.config_validator import load_app_config, validate_all_configs

logger = logging.getLogger(__name__)

_IDLE_POLL_SECONDS = 1.0


class TradingLoop:
    """
    Main loop orchestrator.

    Responsibilities:
    - Load config and wire collaborators
    - Run the decision cycle
    - Own the ledger for the whole run
    - Turn SIGINT/SIGTERM into a graceful liquidation
    """

    def __init__(self,
                 config_dir: str = "config",
                 risk_profile: Optional[str] = None,
                 ui: Optional[TerminalUI] = None,
                 market_data: Optional[BitqueryClient] = None,
                 model_client: Optional[ModelClient] = None,
                 install_signal_handlers: bool = True):
        self.config_dir = Path(config_dir)
        validation_errors = validate_all_configs(config_dir)
        if validation_errors:
            logger.error("=" * 80)
            logger.error("CONFIGURATION VALIDATION FAILED")
            logger.error("=" * 80)
            for idx, error in enumerate(validation_errors, start=1):
                logger.error(f"{idx:>2}. {error}")
            logger.error("=" * 80)
            raise ValueError(f"Invalid configuration: {len(validation_errors)} error(s) found")

        self.config = load_app_config(config_dir)

        # Logging setup
        log_cfg = self.config.logging
        log_path = Path(log_cfg.file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        logging.basicConfig(
            level=getattr(logging, log_cfg.level.upper()),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
            handlers=[logging.FileHandler(log_path), logging.StreamHandler()],
        )

        monitoring_cfg = self.config.monitoring
        self.metrics = MetricsRecorder(enabled=monitoring_cfg.metrics_enabled, port=monitoring_cfg.metrics_port)
        self.metrics.start()

        self.ui = ui or TerminalUI()

        md_cfg = self.config.market_data
        self.market_data = market_data or BitqueryClient(
            api_key=self.config.secret(md_cfg.api_key_env),
            base_url=md_cfg.base_url,
            timeout_s=md_cfg.timeout_seconds,
            max_retries=md_cfg.max_retries,
        )

        ai_cfg = self.config.ai
        if model_client is None:
            model_client = create_model_client(
                ai_cfg.provider,
                api_key=self.config.secret(ai_cfg.api_key_env),
                model=ai_cfg.model,
                temperature=ai_cfg.temperature,
                max_tokens=ai_cfg.max_tokens,
            )
        self.resolver = BatchDecisionResolver(
            model_client,
            ResolverSettings(timeout_s=ai_cfg.timeout_seconds, default_confidence=ai_cfg.default_confidence),
        )

        ledger_cfg = self.config.ledger
        self.ledger = PositionLedger(
            total_capital=ledger_cfg.total_capital,
            capital_guard_fraction=ledger_cfg.capital_guard_fraction,
        )
        self.position_manager = PositionManager(self.ledger)

        audit_file = log_cfg.audit_file or str(log_path).replace(".log", "_audit.jsonl")
        self.audit = AuditLogger(audit_file=audit_file)

        self.risk_tag = risk_profile or self.config.app.risk_profile
        self.pipeline: Optional[TradingCyclePipeline] = None
        self.summary: Optional[LiquidationSummary] = None

        # Cancellation channel: set by signal handlers, observed by the pipeline
        self.cancel_event = threading.Event()
        self._prompting = False
        if install_signal_handlers:
            signal.signal(signal.SIGINT, self._handle_stop)
            signal.signal(signal.SIGTERM, self._handle_stop)

        logger.info(f"Initialized TradingLoop (provider={ai_cfg.provider}, capital=${ledger_cfg.total_capital:,.2f})")

    def _handle_stop(self, *_):
        """
        Signal handler: request shutdown. Liquidation runs on the main flow.

        While the risk menu is up, also interrupts the blocking input() call.
        """
        logger.warning("=" * 80)
        logger.warning("SHUTDOWN SIGNAL RECEIVED - Initiating graceful shutdown")
        logger.warning("=" * 80)
        self.cancel_event.set()
        if self._prompting:
            raise KeyboardInterrupt

    def build_pipeline(self, risk_tag: str) -> TradingCyclePipeline:
        md_cfg = self.config.market_data
        return TradingCyclePipeline(
            market_data=self.market_data,
            resolver=self.resolver,
            ledger=self.ledger,
            profile=get_risk_profile(risk_tag),
            settings=CycleSettings(
                top_n=md_cfg.top_n,
                lookback_hours=md_cfg.lookback_hours,
                request_delay_s=md_cfg.request_delay_seconds,
            ),
            audit=self.audit,
            metrics=self.metrics,
            cancel_event=self.cancel_event,
            notify=self.ui.info,
        )

    def run(self, once: bool = False) -> LiquidationSummary:
        """
        Run one cycle, rest until cancelled, then liquidate.

        Args:
            once: Skip the resting wait and liquidate right after the cycle

        Raises:
            CriticalDataUnavailable: ranked universe could not be fetched
        """
        self.ui.display_welcome()
        risk_tag = self.risk_tag or self._prompt_risk_profile()
        if self.cancel_event.is_set():
            logger.info("Shutdown requested before the cycle started")
            return self.shutdown()

        profile = get_risk_profile(risk_tag)
        logger.info(f"Fund manager started with {profile.name} risk profile")

        self.pipeline = self.build_pipeline(profile.name)

        try:
            self.ui.info("\n📊 Fetching currency data...\n")
            self.pipeline.run_cycle()
            self.ui.info("\n✅ AI Trading cycle completed\n")

            if not once:
                self.ui.info("💡 Press Ctrl+C to shutdown and close all positions...\n")
                self.wait_for_cancellation()

        except CycleCancelled:
            logger.info("Cycle interrupted by shutdown request")

        finally:
            summary = self.shutdown()

        return summary

    def _prompt_risk_profile(self) -> Optional[str]:
        self._prompting = True
        try:
            return self.ui.select_risk_profile()
        except KeyboardInterrupt:
            self.cancel_event.set()
            return None
        finally:
            self._prompting = False

    def wait_for_cancellation(self) -> None:
        """
        Block until the cancellation event fires.

        With monitor_interval_seconds > 0 the wait wakes periodically to
        close positions that crossed their stop-loss or take-profit.
        """
        interval = self.config.loop.monitor_interval_seconds
        timeout = interval if interval > 0 else _IDLE_POLL_SECONDS

        while not self.cancel_event.wait(timeout):
            if interval <= 0 or len(self.ledger) == 0:
                continue
            for closed in self.position_manager.enforce_exits(self.market_data.latest_price):
                self.metrics.record_realized_pnl(closed.pnl)
                outcome = "profit" if closed.is_profit else "loss"
                self.ui.info(
                    f"📉 Exit rule closed {closed.position.type} position for "
                    f"{display_name(closed.identifier)} for {outcome} of ${abs(closed.pnl):.2f}"
                )

    def shutdown(self) -> LiquidationSummary:
        """Liquidate every open position once and show the summary."""
        if self.summary is not None:
            return self.summary

        self.ui.info("\n\n🛑 Shutting down gracefully...")
        open_count = len(self.ledger)
        if open_count:
            self.ui.info(f"\n📊 Closing {open_count} open position(s)...\n")

        if self.pipeline is not None:
            summary = self.pipeline.shutdown()
        else:
            summary = self.ledger.close_all(self.market_data.latest_price)

        self.summary = summary
        self.ui.display_summary(summary)
        self.ui.info("\n✅ Shutdown complete.\n")
        return summary


def main(argv=None) -> int:
    """Entry point"""
    import argparse

    parser = argparse.ArgumentParser(description="voltrader - volatility-ranked AI decision loop")
    parser.add_argument("--risk-profile", choices=["low", "high"], help="Skip the interactive menu")
    parser.add_argument("--once", action="store_true", help="Liquidate right after the first cycle")
    parser.add_argument("--config-dir", default="config", help="Config directory")

    args = parser.parse_args(argv)

    try:
        loop = TradingLoop(config_dir=args.config_dir, risk_profile=args.risk_profile)
    except ValueError as e:
        print(f"\n❌ {e}", file=sys.stderr)
        return 1

    try:
        loop.run(once=args.once)
    except CriticalDataUnavailable as e:
        logger.error(f"Failed to start: {e.original or e}", exc_info=True)
        loop.ui.error(f"\n❌ Error fetching data: {e.original or e}")
        loop.ui.info("\nPlease check your API key in the environment")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
