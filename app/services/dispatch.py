from __future__ import annotations

import datetime as dt
import logging

from app.schemas.scheduler import DispatchDetail
from app.services.calls import CallMedication, CallProvider, CallProviderError, CallRequest, get_call_provider
from app.services.identity import UserDirectory
from app.services.retry_accounting import commit_attempt
from app.services.store import MedicationStore
from app.services.sweep import MedicationItem

logger = logging.getLogger("medcalls.dispatch")

CIRCUIT_BREAKER_REASON = "Circuit breaker: state commit failed, call aborted to avoid duplicate billing"


class BatchDispatcher:
    """Turns one user's batch into a phone call, committing the attempt first.

    The call provider is only reached after every medication in the batch
    has been stamped; a failed stamp aborts the call for this run.
    """

    def __init__(self, store: MedicationStore, directory: UserDirectory, provider: CallProvider | None = None) -> None:
        self.store = store
        self.directory = directory
        self._provider = provider

    @property
    def provider(self) -> CallProvider:
        # built from settings on first dispatch
        if self._provider is None:
            self._provider = get_call_provider()
        return self._provider

    async def dispatch(self, user_id: int, batch: list[MedicationItem], now: dt.datetime | None = None) -> DispatchDetail:
        count = len(batch)
        try:
            identity = await self.directory.resolve(user_id)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Identity lookup failed for user %s: %s", user_id, exc)
            identity = None
        if identity is None:
            logger.warning("Skipping user %s - no profile/phone found", user_id)
            return DispatchDetail(
                user_id=user_id,
                medication_count=count,
                status="skipped",
                error="No phone number available",
            )

        try:
            provider = self.provider
        except RuntimeError as exc:
            logger.error("Call provider unavailable for user %s: %s", user_id, exc)
            return DispatchDetail(
                user_id=user_id,
                medication_count=count,
                status="error",
                error=f"Call provider is not configured: {exc}",
            )

        logger.info("Batch call for user %s: %s", user_id, ", ".join(m.name for m in batch))
        commit = await commit_attempt(self.store, [m.id for m in batch], now)
        if not commit:
            logger.error(
                "CIRCUIT BREAKER: aborting call for user %s (%s); affected: %s",
                user_id,
                commit.reason,
                ", ".join(m.name for m in batch),
            )
            return DispatchDetail(user_id=user_id, medication_count=count, status="error", error=CIRCUIT_BREAKER_REASON)

        request = CallRequest(
            phone=identity.phone,
            name=identity.name,
            medications=[CallMedication(m.id, m.name) for m in batch],
        )
        try:
            reference = await provider.place_call(request)
        except CallProviderError as exc:
            logger.error("Call failed for user %s: %s", user_id, exc)
            return DispatchDetail(user_id=user_id, medication_count=count, status="error", error=str(exc))

        logger.info("Call triggered for user %s (%s)", user_id, reference)
        return DispatchDetail(
            user_id=user_id,
            medication_count=count,
            status="triggered",
            call_reference=reference,
        )
