"""Sync orchestration for adk-sync.

The orchestrator drives one sync invocation: it resolves the configured
provider and credentials, pushes local feature state to the remote, checks
for conflicting remote edits, and replays operations left in the offline
queue by earlier failures.

Retry policy:

* an exception raised by ``sync_feature`` during a single-feature sync is
  treated as transient and the operation is queued for replay;
* a structured ``status="error"`` reply, and any failure during a bulk sync,
  is terminal for the invocation and only marks the feature ``error``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from .config import (
    IntegrationConfig,
    get_integration_config,
    get_main_repo_path,
    get_provider_config,
    read_provider_token,
    token_key,
)
from .conflicts import create_conflict_report, detect_conflicts, resolve_conflicts
from .models import (
    MAX_RETRIES,
    FeatureSyncOutcome,
    ProcessQueueResult,
    ProviderCredentials,
    QueuedOperation,
    SyncableProgress,
    SyncResult,
    SyncRunReport,
    SyncSummary,
    SyncWithConflictResult,
    normalize_phase,
    utc_now,
)
from .providers import create_provider
from .providers.base import ProjectProvider
from .state_store import FeatureStateStore
from .sync_logging import (
    log_conflicts_detected,
    log_error_with_context,
    log_feature_sync_failed,
    log_feature_synced,
    log_operation_evicted,
    log_operation_queued,
    log_performance,
    observability_hooks,
)
from .sync_queue import SyncQueue

logger = logging.getLogger("adk_sync.orchestrator")


@dataclass(slots=True)
class ConnectionAttempt:
    """Outcome of resolving and connecting the configured provider."""

    status: str  # 'connected', 'not_configured', 'disabled', 'unknown_provider', 'missing_token', 'connection_failed'
    message: str
    provider: Optional[ProjectProvider] = None
    integration: IntegrationConfig = field(default_factory=IntegrationConfig)

    @property
    def connected(self) -> bool:
        return self.status == "connected" and self.provider is not None


class SyncOrchestrator:
    """Coordinate feature sync between the local state store and a remote provider."""

    def __init__(
        self,
        root: Optional[Path | str] = None,
        *,
        store: Optional[FeatureStateStore] = None,
        queue: Optional[SyncQueue] = None,
        provider_factory: Optional[Callable[[str, Path], Optional[ProjectProvider]]] = None,
    ):
        self.root = Path(root).resolve() if root else get_main_repo_path()
        self.store = store or FeatureStateStore(self.root)
        self.queue = queue or SyncQueue.for_project(self.root)
        self._create_provider = provider_factory or create_provider

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    async def connect(self) -> ConnectionAttempt:
        """Resolve provider and credentials from config, then connect.

        Nothing is written on any of the failure paths.
        """
        integration = get_integration_config(self.root)
        provider_name = integration.provider

        if not provider_name:
            return ConnectionAttempt(
                "not_configured",
                "No integration configured. To configure: adk config integration <provider>",
                integration=integration,
            )

        if not integration.enabled:
            return ConnectionAttempt(
                "disabled",
                f"Integration is disabled. To enable: adk config integration {provider_name}",
                integration=integration,
            )

        provider = self._create_provider(provider_name, self.root)
        if provider is None:
            return ConnectionAttempt(
                "unknown_provider", f"Unknown provider: {provider_name}", integration=integration
            )

        token = read_provider_token(self.root, provider_name)
        if not token:
            return ConnectionAttempt(
                "missing_token",
                f"No token found for {provider_name}. Set {token_key(provider_name)} in {self.root / '.env'}",
                integration=integration,
            )

        provider_config = get_provider_config(self.root, provider_name) or {}
        credentials = ProviderCredentials(
            token=token,
            workspace_id=provider_config.get("workspaceId"),
            space_id=provider_config.get("spaceId"),
            list_id=provider_config.get("listId"),
        )

        try:
            result = await provider.connect(credentials)
        except Exception as e:
            log_error_with_context(e, {"operation": "connect", "provider": provider_name})
            return ConnectionAttempt(
                "connection_failed", f"Failed to connect: {e}", integration=integration
            )

        if not result.success:
            return ConnectionAttempt(
                "connection_failed", f"Failed to connect: {result.message}", integration=integration
            )

        logger.info(f"Connected to {provider_name}: {result.message}")
        return ConnectionAttempt("connected", result.message, provider=provider, integration=integration)

    async def _ensure_provider(self, provider: Optional[ProjectProvider]) -> ConnectionAttempt:
        if provider is not None:
            return ConnectionAttempt(
                "connected", "Using supplied provider", provider=provider,
                integration=get_integration_config(self.root),
            )
        return await self.connect()

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    @log_performance("sync_run")
    async def run(
        self,
        feature: Optional[str] = None,
        *,
        force: bool = False,
        check_conflicts: bool = False,
    ) -> SyncRunReport:
        """Sync one feature, or every tracked feature when ``feature`` is None."""
        attempt = await self.connect()
        if not attempt.connected:
            logger.info(attempt.message)
            return SyncRunReport(status=attempt.status, message=attempt.message)

        if feature:
            if check_conflicts:
                conflict_result = await self.sync_with_conflict_check(feature, provider=attempt.provider)
                outcome = self._conflict_outcome(feature, conflict_result)
            else:
                outcome = await self.sync_single_feature(feature, provider=attempt.provider)
            return SyncRunReport(status="completed", message=outcome.status_line(), outcomes=[outcome])

        summary = await self.sync_all_features(force=force, provider=attempt.provider)
        return SyncRunReport(
            status="completed",
            message=f"{summary.synced} synced, {summary.failed} failed, {summary.skipped} skipped",
            outcomes=list(summary.outcomes),
            summary=summary,
        )

    # ------------------------------------------------------------------
    # Single feature
    # ------------------------------------------------------------------

    @log_performance("sync_single_feature")
    async def sync_single_feature(
        self,
        name: str,
        *,
        provider: Optional[ProjectProvider] = None,
    ) -> FeatureSyncOutcome:
        """Push one feature. Exceptions from the provider queue the operation for replay."""
        attempt = await self._ensure_provider(provider)
        if not attempt.connected:
            return FeatureSyncOutcome(name, "not_connected", attempt.message)

        state = self.store.load(name)
        if state is None:
            return self._emit(self._not_found(name))

        local = state.to_local_feature()
        try:
            result = await attempt.provider.sync_feature(local, state.remote_id)
        except Exception as e:
            return self._emit(self._queue_after_exception(state, e))

        try:
            return self._emit(self._apply_result(state, result))
        except OSError as e:
            log_error_with_context(e, {"operation": "sync_single_feature", "feature": name})
            return self._emit(FeatureSyncOutcome(name, "failed", f"could not save sync state: {e}"))

    def _queue_after_exception(self, state: SyncableProgress, error: Exception) -> FeatureSyncOutcome:
        name = state.feature
        message = str(error) or type(error).__name__
        local = state.to_local_feature()
        operation = QueuedOperation(
            type="update" if state.remote_id else "create",
            feature=name,
            data={
                "phase": local.phase,
                "progress": local.progress,
                "remoteId": state.remote_id,
            },
            created_at=utc_now(),
            retries=0,
            last_error=message,
        )
        state.mark_error()
        try:
            self.store.save(state)
        except OSError as e:
            logger.error(f"Could not record error state for '{name}': {e}")

        try:
            stored = self.queue.enqueue(operation)
        except OSError as e:
            log_error_with_context(e, {"operation": "queue_failed_sync", "feature": name})
            return FeatureSyncOutcome(name, "failed", f"{message}; could not queue for retry: {e}")

        log_operation_queued(name, stored.id, stored.type, error=message)
        return FeatureSyncOutcome(name, "queued", f"queued for retry - {message}", remote_id=state.remote_id)

    # ------------------------------------------------------------------
    # All features
    # ------------------------------------------------------------------

    @log_performance("sync_all_features")
    async def sync_all_features(
        self,
        force: bool = False,
        *,
        provider: Optional[ProjectProvider] = None,
    ) -> SyncSummary:
        """Push every tracked feature, skipping already-synced ones unless ``force``.

        Failures are counted and never queued.
        """
        summary = SyncSummary()
        attempt = await self._ensure_provider(provider)
        if not attempt.connected:
            logger.info(attempt.message)
            return summary

        features = self.store.list_features()
        if not features:
            logger.info("No features found.")
            return summary

        for name in features:
            state = self.store.load(name)
            if state is None:
                summary.record(self._emit(FeatureSyncOutcome(name, "skipped", "no readable sync state")))
                continue

            if not force and state.sync_status == "synced":
                summary.record(self._emit(FeatureSyncOutcome(name, "skipped", "already synced")))
                continue

            summary.record(self._emit(await self._sync_without_queue(state, attempt.provider)))

        logger.info(
            f"Sync summary: {summary.synced} synced, {summary.failed} failed, {summary.skipped} skipped"
        )
        return summary

    async def _sync_without_queue(self, state: SyncableProgress, provider: ProjectProvider) -> FeatureSyncOutcome:
        name = state.feature
        try:
            result = await provider.sync_feature(state.to_local_feature(), state.remote_id)
            return self._apply_result(state, result)
        except Exception as e:
            message = str(e) or type(e).__name__
            log_error_with_context(e, {"operation": "sync_all_features", "feature": name})
            try:
                state.mark_error()
                self.store.save(state)
            except OSError as save_error:
                logger.error(f"Could not record error state for '{name}': {save_error}")
            log_feature_sync_failed(name, message)
            return FeatureSyncOutcome(name, "failed", message, remote_id=state.remote_id)

    # ------------------------------------------------------------------
    # Conflict-aware sync
    # ------------------------------------------------------------------

    @log_performance("sync_with_conflict_check")
    async def sync_with_conflict_check(
        self,
        name: str,
        *,
        provider: Optional[ProjectProvider] = None,
    ) -> SyncWithConflictResult:
        """Sync one feature after reconciling it with the remote record.

        With the ``manual`` strategy a conflict report is written to the
        feature directory and nothing else changes.
        """
        result = SyncWithConflictResult()

        state = self.store.load(name)
        if state is None:
            result.message = self._not_found(name).message
            return result

        attempt = await self._ensure_provider(provider)
        if not attempt.connected:
            result.message = attempt.message
            return result

        remote_provider = attempt.provider
        strategy = attempt.integration.conflict_strategy

        try:
            local = state.to_local_feature()

            if not state.remote_id:
                return await self._plain_sync(state, remote_provider, result)

            remote = await remote_provider.get_feature(state.remote_id)
            if remote is None:
                logger.info(f"Remote record {state.remote_id} for '{name}' is gone, syncing without conflict check")
                return await self._plain_sync(state, remote_provider, result)

            conflicts = detect_conflicts(local, remote)
            result.conflicts = conflicts
            if not conflicts:
                return await self._plain_sync(state, remote_provider, result)

            log_conflicts_detected(name, len(conflicts), strategy)
            resolution = resolve_conflicts(conflicts, strategy)
            result.resolution = resolution

            if resolution.requires_manual_resolution:
                report = create_conflict_report(conflicts, resolution)
                report_path = self.store.write_conflict_report(name, report)
                result.requires_manual_resolution = True
                result.report_path = str(report_path)
                result.message = f"manual resolution required, see {report_path}"
                observability_hooks.log_sync_event(
                    "manual_resolution_required",
                    feature=name,
                    conflict_count=len(conflicts),
                    report_path=str(report_path),
                )
                return result

            if strategy == "remote-wins":
                self._accept_remote_phase(state, resolution.winner_for("phase"))

            return await self._plain_sync(state, remote_provider, result)

        except Exception as e:
            log_error_with_context(e, {"operation": "sync_with_conflict_check", "feature": name})
            result.success = False
            result.message = str(e) or type(e).__name__
            return result

    def _accept_remote_phase(self, state: SyncableProgress, resolved) -> None:
        if resolved is None or resolved.winner != "remote":
            return
        try:
            phase = normalize_phase(resolved.value)
        except ValueError:
            logger.warning(
                f"Remote phase {resolved.value!r} for '{state.feature}' is not a known phase; keeping {state.current_phase}"
            )
            return
        state.current_phase = phase
        self.store.save(state)

    async def _plain_sync(
        self,
        state: SyncableProgress,
        provider: ProjectProvider,
        result: SyncWithConflictResult,
    ) -> SyncWithConflictResult:
        sync_result = await provider.sync_feature(state.to_local_feature(), state.remote_id)
        outcome = self._apply_result(state, sync_result)
        result.sync_result = sync_result
        result.success = sync_result.ok
        result.message = outcome.message
        return result

    def _conflict_outcome(self, name: str, result: SyncWithConflictResult) -> FeatureSyncOutcome:
        if result.requires_manual_resolution:
            status = "manual_pending"
        elif result.success:
            status = "synced"
        else:
            status = "failed"
        remote_id = result.sync_result.remote_id if result.sync_result else None
        remote_url = result.sync_result.remote_url if result.sync_result else None
        return self._emit(FeatureSyncOutcome(name, status, result.message, remote_id=remote_id, remote_url=remote_url))

    # ------------------------------------------------------------------
    # Offline queue
    # ------------------------------------------------------------------

    @log_performance("process_queue")
    async def process_queue(self, *, provider: Optional[ProjectProvider] = None) -> ProcessQueueResult:
        """Replay queued operations in FIFO order.

        Successful operations are removed; failures count a retry and are
        evicted once ``MAX_RETRIES`` is reached.
        """
        result = ProcessQueueResult()
        attempt = await self._ensure_provider(provider)
        if not attempt.connected:
            logger.info(f"Queue not processed: {attempt.message}")
            result.remaining = self.queue.get_pending_count()
            return result

        for operation in self.queue.get_all():
            result.processed += 1
            try:
                succeeded = await self._replay(operation, attempt.provider)
            except OSError as e:
                log_error_with_context(e, {"operation": "process_queue", "operation_id": operation.id})
                succeeded = False
            if succeeded is None:
                continue
            if succeeded:
                result.succeeded += 1
            else:
                result.failed += 1

        result.remaining = self.queue.get_pending_count()
        logger.info(
            f"Queue processed: {result.processed} processed, {result.succeeded} succeeded, "
            f"{result.failed} failed, {result.remaining} remaining"
        )
        return result

    async def _replay(self, operation: QueuedOperation, provider: ProjectProvider) -> Optional[bool]:
        """Replay one operation. Returns None for dropped orphans."""
        if operation.type == "delete":
            return await self._replay_delete(operation, provider)

        state = self.store.load(operation.feature)
        if state is None:
            self.queue.remove(operation.id)
            logger.info(f"Dropped queued {operation.type} for missing feature '{operation.feature}'")
            return None

        remote_id = operation.remote_id or state.remote_id
        try:
            sync_result = await provider.sync_feature(state.to_local_feature(), remote_id)
        except Exception as e:
            self._record_replay_failure(operation, str(e) or type(e).__name__)
            return False

        if not sync_result.ok:
            self._record_replay_failure(operation, sync_result.message)
            return False

        state.mark_synced(sync_result.remote_id, sync_result.last_synced)
        self.store.save(state)
        self.queue.remove(operation.id)
        log_feature_synced(operation.feature, state.remote_id, replayed_operation=operation.id)
        return True

    async def _replay_delete(self, operation: QueuedOperation, provider: ProjectProvider) -> Optional[bool]:
        if not operation.remote_id:
            self.queue.remove(operation.id)
            return None
        try:
            await provider.delete_feature(operation.remote_id)
        except Exception as e:
            self._record_replay_failure(operation, str(e) or type(e).__name__)
            return False
        self.queue.remove(operation.id)
        return True

    def _record_replay_failure(self, operation: QueuedOperation, error: str) -> None:
        retries = operation.retries + 1
        if retries >= MAX_RETRIES:
            self.queue.remove(operation.id)
            logger.warning(
                f"Evicted queued {operation.type} for '{operation.feature}' after {retries} failed attempts: {error}"
            )
            log_operation_evicted(operation.feature, operation.id, retries)
        else:
            self.queue.update_retries(operation.id, retries, error)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _not_found(self, name: str) -> FeatureSyncOutcome:
        if not self.store.feature_exists(name):
            return FeatureSyncOutcome(name, "not_found", f'Feature "{name}" not found.')
        return FeatureSyncOutcome(name, "not_found", f'No progress file found for "{name}".')

    def _apply_result(self, state: SyncableProgress, result: SyncResult) -> FeatureSyncOutcome:
        """Record a provider reply on the feature's sync state."""
        name = state.feature
        if result.ok:
            state.mark_synced(result.remote_id, result.last_synced)
            self.store.save(state)
            log_feature_synced(name, state.remote_id)
            target = result.remote_url or result.remote_id or "remote"
            return FeatureSyncOutcome(
                name, "synced", f"synced to {target}",
                remote_id=state.remote_id, remote_url=result.remote_url,
            )

        state.mark_error()
        self.store.save(state)
        log_feature_sync_failed(name, result.message)
        return FeatureSyncOutcome(name, "failed", result.message or "sync failed", remote_id=state.remote_id)

    def _emit(self, outcome: FeatureSyncOutcome) -> FeatureSyncOutcome:
        level = logging.INFO if outcome.status in ("synced", "skipped") else logging.WARNING
        logger.log(level, outcome.status_line())
        return outcome

