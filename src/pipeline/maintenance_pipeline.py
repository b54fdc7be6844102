"""Periodic maintenance: burn-message expiry and goal reconciliation, with explicit health signaling."""

from __future__ import annotations

import json
import logging
import os
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

import config
from circle_messages import cleanup_burn_messages
from goal_sync import sync_user_goals

log = logging.getLogger("maintenance")


class MaintenancePipeline:
    """Service-role housekeeping run on a schedule."""

    def __init__(self, client: Any, now: Optional[datetime] = None):
        self.client = client
        self.now = now

    def run(self, skip_cleanup: bool = False, skip_sync: bool = False) -> bool:
        """Execute both steps and persist a machine-readable status file."""
        status: Dict[str, Any] = {
            "run_date": date.today().isoformat(),
            "run_started_at": datetime.now(timezone.utc).isoformat(),
            "cleanup_ok": bool(skip_cleanup),
            "sync_ok": bool(skip_sync),
            "burn_deleted": 0,
            "users_synced": 0,
            "users_failed": [],
            "goals_updated": 0,
            "degraded_reasons": [],
        }

        log.info("=" * 60)
        log.info("  MAINTENANCE RUN STARTED")
        log.info("  Date: %s", date.today())
        log.info("=" * 60)

        try:
            service = self.client.as_service_role()

            if not skip_cleanup:
                log.info("Step 1/2: Deleting expired burn messages...")
                try:
                    status["burn_deleted"] = cleanup_burn_messages(service, self.now)
                    status["cleanup_ok"] = True
                except Exception as e:
                    log.error("Burn-message cleanup failed: %s", e)
                    status["degraded_reasons"].append("cleanup_exception")
            else:
                log.info("Step 1/2: SKIPPED (--sync-only)")

            if not skip_sync:
                log.info("Step 2/2: Reconciling active goals...")
                self._sync_all_users(service, status)
            else:
                log.info("Step 2/2: SKIPPED (--cleanup-only)")

        except Exception as e:
            status["degraded_reasons"].append("pipeline_exception")
            log.error("Maintenance failed: %s", e, exc_info=True)
        finally:
            status["run_finished_at"] = datetime.now(timezone.utc).isoformat()
            status["overall_status"] = self._overall_status(status)
            self._write_status_file(status)
            self._print_summary(status)

        return status["overall_status"] != "failed"

    def _sync_all_users(self, service: Any, status: Dict[str, Any]) -> None:
        goals = service.entities.Goal.list("-created_date", 500)
        owners: List[Any] = []
        for g in goals:
            uid = g.get("user_id")
            if g.get("status") == "active" and uid and uid not in owners:
                owners.append(uid)
        log.info("%d user(s) own active goals", len(owners))

        for uid in owners:
            try:
                rows = service.entities.User.filter({"id": uid}, "-created_date", 1)
                user = rows[0] if rows else {"id": uid}
                updates = sync_user_goals(service, user, self.now, goals=goals)
                status["users_synced"] += 1
                status["goals_updated"] += len(updates)
            except Exception as e:
                log.warning("Goal sync failed for user %s: %s", uid, e)
                status["users_failed"].append(uid)

        if status["users_failed"]:
            status["degraded_reasons"].append("user_sync_failures")
        status["sync_ok"] = True

    @staticmethod
    def _overall_status(status: Dict[str, Any]) -> str:
        if not status.get("cleanup_ok", False) or not status.get("sync_ok", False):
            return "failed"
        if status.get("users_failed"):
            return "degraded"
        return "success"

    @staticmethod
    def _write_status_file(status: Dict[str, Any]) -> None:
        path = os.path.join(
            config.MAINTENANCE_STATUS_DIR,
            f"maintenance_status_{date.today().isoformat()}.json",
        )
        try:
            with open(path, "w", encoding="utf-8") as fh:
                json.dump(status, fh, indent=2, ensure_ascii=False, default=str)
            log.info("Maintenance status written to %s", path)
        except Exception as e:
            log.warning("Failed to write maintenance status file: %s", e)

    @staticmethod
    def _print_summary(status: Dict[str, Any]) -> None:
        log.info("MAINTENANCE SUMMARY:")
        log.info("  Burn messages deleted: %d", status.get("burn_deleted", 0))
        log.info("  Users synced:          %d", status.get("users_synced", 0))
        log.info("  Goals updated:         %d", status.get("goals_updated", 0))
        failed = status.get("users_failed") or []
        if failed:
            log.info("  Users failed:          %s", ", ".join(str(u) for u in failed))
        log.info("  Overall status: %s", status.get("overall_status"))
