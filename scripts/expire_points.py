"""
expire_points.py — zero the balance of every points account past its
expiration date, recording an 'expiration' entry for each. Also prints the
reconciliation report and, with --retry, re-credits orders missing points.

Usage:
    python scripts/expire_points.py
    python scripts/expire_points.py --retry
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from storefront.config import settings
from storefront.database import build_engine, build_session_factory
from storefront.services.gateway import PersistenceGateway
from storefront.services.points import PointsLedger
from storefront.services.reconciliation import SettlementReconciler

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
)
logger = logging.getLogger(__name__)


async def main(retry: bool) -> None:
    engine = build_engine(settings.database_url)
    gateway = PersistenceGateway(build_session_factory(engine))
    ledger = PointsLedger(gateway)
    reconciler = SettlementReconciler(gateway, ledger)
    try:
        async with gateway.transaction() as db:
            expired = await ledger.expire_all(db)
        logger.info("Expired %d accounts", expired)

        if retry:
            results = await reconciler.retry_all()
            failed = [oid for oid, pts in results.items() if pts < 0]
            logger.info("Retried %d orders (%d failed)", len(results), len(failed))

        report = await reconciler.report()
        logger.info("Reconciliation report: %s", report.model_dump_json())
    finally:
        await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--retry", action="store_true", help="re-credit orders missing points")
    args = parser.parse_args()
    asyncio.run(main(args.retry))
