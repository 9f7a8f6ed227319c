from __future__ import annotations

import argparse
import asyncio
import csv
from datetime import datetime, timezone
from pathlib import Path

from app.db.session import SessionLocal
from app.economy.partners.constants import RECONCILIATION_BATCH_SIZE
from app.economy.partners.service import PartnerService
from app.economy.partners.types import PartnerReconciliation

REPORT_COLUMNS = (
    "partner_id",
    "drifted",
    "total_before",
    "total_after",
    "paid_before",
    "paid_after",
    "pending_before",
    "pending_after",
    "referral_count_before",
    "referral_count_after",
)


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Re-derive partner earning totals from the ledger rows",
    )
    parser.add_argument("--partner-id", type=int)
    parser.add_argument("--batch-size", type=int, default=RECONCILIATION_BATCH_SIZE)
    parser.add_argument("--output-csv", type=Path)
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="report drift without writing the corrected totals",
    )
    return parser.parse_args()


def _report_row(result: PartnerReconciliation) -> list[object]:
    return [
        result.partner_id,
        int(result.drifted),
        result.before.total_earnings,
        result.after.total_earnings,
        result.before.paid_earnings,
        result.after.paid_earnings,
        result.before.pending_earnings,
        result.after.pending_earnings,
        result.before.referral_count,
        result.after.referral_count,
    ]


async def _reconcile(args: argparse.Namespace) -> list[PartnerReconciliation]:
    now_utc = datetime.now(timezone.utc)
    results: list[PartnerReconciliation] = []

    async with SessionLocal() as session:
        if args.partner_id is not None:
            results.append(
                await PartnerService.reconcile_partner(
                    session,
                    partner_id=args.partner_id,
                    now_utc=now_utc,
                )
            )
        else:
            after_partner_id = 0
            while True:
                batch = await PartnerService.reconcile_partners_batch(
                    session,
                    after_partner_id=after_partner_id,
                    now_utc=now_utc,
                    batch_size=max(1, args.batch_size),
                )
                if not batch.results:
                    break
                results.extend(batch.results)
                after_partner_id = batch.last_partner_id

        if args.dry_run:
            await session.rollback()
        else:
            await session.commit()

    return results


def _write_output(path: Path, results: list[PartnerReconciliation]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8", newline="") as file:
        writer = csv.writer(file)
        writer.writerow(REPORT_COLUMNS)
        for result in results:
            writer.writerow(_report_row(result))


async def _run() -> int:
    args = _parse_args()
    results = await _reconcile(args)
    drifted = sum(1 for result in results if result.drifted)

    if args.output_csv is not None:
        _write_output(args.output_csv, results)
    print(  # noqa: T201
        f"partners={len(results)} drifted={drifted} "
        f"mode={'dry_run' if args.dry_run else 'applied'}"
    )
    return 1 if drifted and args.dry_run else 0


def main() -> int:
    return asyncio.run(_run())


if __name__ == "__main__":
    raise SystemExit(main())
