"""Collection reconciler: merges one collection's local and remote state.

A run proceeds in a fixed order:

1. Read every local record.
2. Fetch the user's remote rows (with retry); undecodable rows are skipped.
3. Upload records that exist only locally.
4. Store records that exist only remotely.
5. For ids on both sides, keep the later ``modified_at`` (last-write-wins):
   a newer remote overwrites local, a newer local is uploaded, equal
   timestamps are left alone.  Collections configured without conflict
   resolution skip this step.

Only a failed fetch or an unexpected error makes ``synchronize()`` return
False.  Failed uploads are logged and retried on the next run.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable

from photisnadi.services.local_store import LocalCollection
from photisnadi.services.supabase import RemoteBackend
from photisnadi.sync.collections import CollectionSpec
from photisnadi.sync.retry import RetryPolicy, Sleep, execute_with_retry

logger = logging.getLogger("photisnadi.sync.reconciler")

UserIdProvider = Callable[[], str | None]


@dataclass
class MergeReport:
    """Counters for one reconciler run.

    Attributes:
        uploaded:        Records successfully upserted remotely.
        upload_failures: Records whose upload exhausted its retries.
        downloaded:      Remote-only records written locally.
        overwritten:     Local records replaced by a newer remote version.
        unchanged:       Ids present on both sides with equal timestamps
                         (or not compared, when conflict resolution is off).
        skipped_rows:    Remote rows dropped because they failed to decode.
    """

    uploaded: int = 0
    upload_failures: int = 0
    downloaded: int = 0
    overwritten: int = 0
    unchanged: int = 0
    skipped_rows: int = 0


class CollectionReconciler:
    """Synchronize one collection between the local store and the remote backend."""

    def __init__(
        self,
        spec: CollectionSpec,
        local: LocalCollection,
        remote: RemoteBackend,
        user_id_provider: UserIdProvider,
        *,
        policy: RetryPolicy | None = None,
        resolve_conflicts: bool = True,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if resolve_conflicts and "modified_at" not in spec.codec.model.model_fields:
            raise ValueError(
                f"Cannot resolve conflicts for {spec.table}: "
                f"{spec.codec.model.__name__} has no modified_at"
            )
        self.spec = spec
        self._local = local
        self._remote = remote
        self._user_id_provider = user_id_provider
        self._policy = policy or RetryPolicy()
        self._resolve_conflicts = resolve_conflicts
        self._sleep = sleep
        self.last_report: MergeReport | None = None

    @property
    def resolves_conflicts(self) -> bool:
        return self._resolve_conflicts

    async def synchronize(self) -> bool:
        """Run one full merge for this collection.

        Returns:
            True once every step has been attempted; False if no user is
            signed in, the remote fetch exhausted its retries, or the merge
            hit an unexpected error.
        """
        table = self.spec.table
        user_id = self._user_id_provider()
        if not user_id:
            logger.warning("Cannot sync %s: no authenticated user", table)
            return False

        report = MergeReport()
        try:
            local_records = await self._local.values()

            fetched = await execute_with_retry(
                lambda: self._fetch_remote(user_id, report),
                f"Fetch remote {table}",
                self._policy,
                sleep=self._sleep,
            )
            if not fetched.ok:
                error = fetched.error
                logger.error(
                    "Failed to sync %s: %s (cause: %r)", table, error.message, error.cause
                )
                return False

            await self._merge(local_records, fetched.value or [], user_id, report)
        except Exception:
            logger.exception("Unexpected error syncing %s", table)
            return False

        self.last_report = report
        logger.info(
            "Synced %s: uploaded=%d failed=%d downloaded=%d overwritten=%d "
            "unchanged=%d skipped=%d",
            table,
            report.uploaded,
            report.upload_failures,
            report.downloaded,
            report.overwritten,
            report.unchanged,
            report.skipped_rows,
        )
        return True

    async def _fetch_remote(self, user_id: str, report: MergeReport) -> list[Any]:
        rows = await self._remote.fetch_rows(self.spec.table, user_id)
        records = []
        skipped = 0
        for row in rows:
            try:
                records.append(self.spec.codec.decode(row))
            except Exception as exc:
                skipped += 1
                logger.warning(
                    "Failed to parse %s from remote data (id=%r): %s",
                    self.spec.kind,
                    row.get("id") if isinstance(row, dict) else None,
                    exc,
                )
        # Only the attempt that succeeds reports its skips.
        report.skipped_rows = skipped
        return records

    async def _merge(
        self, local_records: list[Any], remote_records: list[Any], user_id: str, report: MergeReport
    ) -> None:
        local_map = {r.id: r for r in local_records}
        remote_map = {r.id: r for r in remote_records}

        # Upload local-only records
        for record in local_records:
            if record.id not in remote_map:
                await self._upload(record, user_id, report)

        # Download remote-only records
        for record in remote_records:
            if record.id not in local_map:
                await self._local.put(record.id, record)
                report.downloaded += 1

        # Resolve conflicts (last-write-wins on modified_at)
        for record in local_records:
            remote_record = remote_map.get(record.id)
            if remote_record is None:
                continue
            if not self._resolve_conflicts:
                report.unchanged += 1
            elif remote_record.modified_at > record.modified_at:
                await self._local.put(record.id, remote_record)
                report.overwritten += 1
            elif record.modified_at > remote_record.modified_at:
                await self._upload(record, user_id, report)
            else:
                report.unchanged += 1

    async def _upload(self, record: Any, user_id: str, report: MergeReport) -> bool:
        row = self.spec.codec.encode(record, user_id)
        result = await execute_with_retry(
            lambda: self._remote.upsert_row(self.spec.table, self.spec.codec.columns, row),
            f"Upload {self.spec.kind} {record.id}",
            self._policy,
            sleep=self._sleep,
        )
        if not result.ok:
            logger.warning("Failed to upload %s: %s", self.spec.kind, record.id)
            report.upload_failures += 1
            return False
        report.uploaded += 1
        return True
