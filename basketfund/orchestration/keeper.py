"""Fund Keeper - APScheduler jobs for periodic fee collection and rebalancing.

This module provides the FundKeeper, a trusted background process that acts
with each fund's agent identity:
- Collects management fees on every registered fund at a fixed interval
- Checks drift and rebalances funds whose deviation exceeds the threshold
- Optionally persists touched funds after each cycle
"""

from typing import Callable, Dict, List, Optional

import pytz
from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from basketfund.engine.fees import FeeCollection
from basketfund.engine.rebalance import RebalanceResult
from basketfund.fund.registry import FundRegistry
from basketfund.storage.fund_store import FundStore
from basketfund.utils.exceptions import (
    NothingToCollectError,
    SwapFailedError,
    ValuationUnavailableError,
)
from basketfund.utils.logging import get_logger

logger = get_logger(__name__)

FEE_JOB_ID = "collect_fees"
REBALANCE_JOB_ID = "rebalance_check"


class FundKeeper:
    """APScheduler wrapper for fund maintenance.

    Example:
        >>> keeper = FundKeeper(registry, config.get("keeper", {}))
        >>> keeper.schedule_default_jobs()
        >>> keeper.start()
    """

    def __init__(
        self,
        registry: FundRegistry,
        config: Optional[dict] = None,
        store: Optional[FundStore] = None,
    ):
        """Initialize keeper.

        Args:
            registry: Funds to maintain
            config: Keeper settings
                - fee_interval_minutes: Fee collection interval (default: 1440)
                - rebalance_interval_minutes: Drift check interval (default: 60)
                - max_instances: Max concurrent job instances (default: 1)
                - coalesce: Combine missed jobs (default: True)
                - misfire_grace_time: Seconds a late job may still run (default: 60)
            store: Optional store; funds changed by a cycle are saved to it
        """
        self.registry = registry
        self.config = config or {}
        self.store = store
        self.timezone = pytz.utc

        self.scheduler = BackgroundScheduler(
            timezone=self.timezone,
            job_defaults={
                "coalesce": self.config.get("coalesce", True),
                "max_instances": self.config.get("max_instances", 1),
                "misfire_grace_time": self.config.get("misfire_grace_time", 60),
            },
        )
        self.tasks: Dict[str, dict] = {}

        self.scheduler.add_listener(self._on_job_executed, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)

        logger.info("FundKeeper initialized for %d funds", len(registry))

    def register_task(self, name: str, func: Callable, trigger: str, trigger_args: dict) -> None:
        """Register a scheduled task.

        Args:
            name: Unique task identifier
            func: Function to execute
            trigger: Trigger type ('cron' or 'interval')
            trigger_args: Arguments for the trigger
        """
        if name in self.tasks:
            logger.warning("Task '%s' already registered, replacing", name)

        job_trigger = self._create_trigger(trigger, trigger_args)
        self.tasks[name] = {"func": func, "trigger": trigger, "trigger_args": trigger_args}

        self.scheduler.add_job(
            func=self._wrap(name, func),
            trigger=job_trigger,
            id=name,
            name=name,
            replace_existing=True,
        )
        logger.info("Registered task '%s' with trigger %s %s", name, trigger, trigger_args)

    def schedule_default_jobs(self) -> None:
        """Register the fee and rebalance jobs.

        Each job runs on a cron schedule when ``fee_cron`` or
        ``rebalance_cron`` is configured (APScheduler cron fields such as
        ``{"hour": 0, "minute": 5}``), otherwise every
        ``fee_interval_minutes`` or ``rebalance_interval_minutes``.
        """
        self._schedule_job(FEE_JOB_ID, self.run_fee_cycle, "fee", 1440)
        self._schedule_job(REBALANCE_JOB_ID, self.run_rebalance_cycle, "rebalance", 60)

    def _schedule_job(self, name: str, func: Callable, prefix: str, default_minutes: int) -> None:
        cron = self.config.get(f"{prefix}_cron")
        if cron:
            self.register_task(name=name, func=func, trigger="cron", trigger_args=dict(cron))
        else:
            self.register_task(
                name=name,
                func=func,
                trigger="interval",
                trigger_args={"minutes": self.config.get(f"{prefix}_interval_minutes", default_minutes)},
            )

    def _create_trigger(self, trigger_type: str, args: dict):
        if trigger_type == "cron":
            return CronTrigger(timezone=self.timezone, **args)
        elif trigger_type == "interval":
            return IntervalTrigger(timezone=self.timezone, **args)
        else:
            raise ValueError(f"Unknown trigger type: {trigger_type}")

    def _wrap(self, task_name: str, func: Callable) -> Callable:
        def wrapped():
            try:
                logger.info("Executing task '%s'", task_name)
                result = func()
                logger.info("Task '%s' completed successfully", task_name)
                return result
            except Exception as e:
                logger.error("Task '%s' failed: %s", task_name, e, exc_info=True)
                raise

        return wrapped

    def run_fee_cycle(self) -> Dict[str, FeeCollection]:
        """Collect the management fee on every registered fund.

        Funds with nothing accrued are skipped.

        Returns:
            Collections keyed by fund id
        """
        collections: Dict[str, FeeCollection] = {}
        for fund in self.registry:
            try:
                collections[fund.fund_id] = fund.collect_management_fee()
            except NothingToCollectError:
                logger.debug("No fee to collect for fund %s", fund.fund_id)
                continue
            except ValuationUnavailableError as e:
                logger.warning("Skipping fee collection for fund %s: %s", fund.fund_id, e)
                continue
            self._save(fund)
        logger.info("Fee cycle collected from %d funds", len(collections))
        return collections

    def run_rebalance_cycle(self) -> Dict[str, RebalanceResult]:
        """Rebalance every fund whose drift exceeds its threshold.

        Swap failures are logged and left for the next tick.

        Returns:
            Executed rebalances keyed by fund id
        """
        results: Dict[str, RebalanceResult] = {}
        for fund in self.registry:
            try:
                needed, max_deviation = fund.is_rebalance_needed()
                if not needed:
                    continue
                logger.info(
                    "Fund %s drifted %d bps, rebalancing", fund.fund_id, max_deviation
                )
                result = fund.trigger_rebalance(caller=fund.agent)
            except (SwapFailedError, ValuationUnavailableError) as e:
                logger.warning("Rebalance of fund %s deferred: %s", fund.fund_id, e)
                continue
            if result.executed:
                results[fund.fund_id] = result
                self._save(fund)
        logger.info("Rebalance cycle executed on %d funds", len(results))
        return results

    def _save(self, fund) -> None:
        if self.store is not None:
            self.store.save_fund(fund)

    def _on_job_executed(self, event):
        if event.exception:
            logger.error(
                "Job '%s' raised exception: %s",
                event.job_id,
                event.exception,
                exc_info=event.exception,
            )
        else:
            logger.debug("Job '%s' executed successfully", event.job_id)

    def start(self):
        """Start the scheduler (non-blocking)."""
        if self.scheduler.running:
            logger.warning("Keeper already running")
            return

        self.scheduler.start()
        logger.info("Keeper started with %d jobs", len(self.scheduler.get_jobs()))

    def stop(self):
        """Stop the scheduler, waiting for running jobs to finish."""
        if not self.scheduler.running:
            logger.warning("Keeper not running")
            return

        self.scheduler.shutdown(wait=True)
        logger.info("Keeper stopped")

    def is_running(self) -> bool:
        return self.scheduler.running

    def get_jobs(self) -> List:
        return self.scheduler.get_jobs()

    def remove_job(self, job_id: str):
        self.scheduler.remove_job(job_id)
        self.tasks.pop(job_id, None)
        logger.info("Removed job '%s'", job_id)
