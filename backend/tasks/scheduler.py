"""
Background Expiry Sweep for Cohort Terms

Expiry is normally detected when term records are read. This optional job
reads every record on an interval so expired cohorts advance even when
nobody is looking. It goes through the same atomic advance path as reads.

SWEEP SCHEDULE:
- Every TERM_SWEEP_MINUTES minutes (0 disables the job)

Usage:
    python -m tasks.scheduler                  # Run sweeper (foreground)
    python -m tasks.scheduler --once           # Run one sweep and exit
    python -m tasks.scheduler --minutes 30     # Custom interval
"""

import asyncio
import argparse
from collections import Counter
from datetime import datetime
from typing import Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from core import config
from services.terms import TermService, get_term_service


def run_sweep(service: Optional[TermService] = None,
              now: Optional[datetime] = None) -> Dict[str, int]:
    """
    Evaluate every term record for expiry once.

    Returns:
        Count of records per progression state
    """
    service = service or get_term_service()
    _, outcomes = service.list_terms(now=now or datetime.utcnow())
    counts = Counter(outcome.state.value for outcome in outcomes)
    return dict(counts)


class TermSweeper:
    """Runs the expiry sweep on an interval"""

    def __init__(self, minutes: Optional[int] = None, service: Optional[TermService] = None):
        self.minutes = minutes if minutes is not None else config.TERM_SWEEP_MINUTES
        self.service = service
        self.scheduler = AsyncIOScheduler()

    @property
    def enabled(self) -> bool:
        return self.minutes > 0

    async def start(self):
        """Start the scheduler with the sweep job"""
        if not self.enabled:
            print("[SWEEP] Disabled (expiry is checked on read only)")
            return

        self.scheduler.add_job(
            self.sweep,
            IntervalTrigger(minutes=self.minutes),
            id='sweep_expired_terms',
            name=f'Sweep Expired Terms (every {self.minutes} min)',
            replace_existing=True,
            max_instances=1
        )

        self.scheduler.start()
        print(f"[SWEEP] Started: every {self.minutes} min")

    def shutdown(self):
        """Shutdown the scheduler"""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=True)
            print("[SWEEP] Stopped")

    async def sweep(self):
        """Run one sweep without blocking the event loop"""
        try:
            counts = await asyncio.to_thread(run_sweep, self.service)
            print(f"[{datetime.now()}] [SWEEP] {counts or 'no records'}")
        except Exception as e:
            print(f"[ERROR] Term sweep failed: {e}")


async def run_scheduler(minutes: Optional[int] = None):
    """Run the sweeper indefinitely"""
    sweeper = TermSweeper(minutes)
    if not sweeper.enabled:
        print("[SWEEP] Set TERM_SWEEP_MINUTES or --minutes to a positive value")
        return

    await sweeper.start()

    try:
        while True:
            await asyncio.sleep(1)
    except (KeyboardInterrupt, SystemExit):
        sweeper.shutdown()


def main():
    parser = argparse.ArgumentParser(description="Cohort Term Expiry Sweeper")
    parser.add_argument("--once", action="store_true", help="Run a single sweep and exit")
    parser.add_argument("--minutes", type=int, default=None, help="Sweep interval in minutes")

    args = parser.parse_args()

    if args.once:
        print(f"Result: {run_sweep()}")
    else:
        asyncio.run(run_scheduler(args.minutes))


if __name__ == "__main__":
    main()
