"""Per-job capture pipeline.

capture -> persist artifacts -> read them back -> evaluate rules -> score -> update the case.
"""

from __future__ import annotations

import asyncio

from beacongate.capture.artifacts import ArtifactStorage, mime_type_for
from beacongate.capture.browser import Capturer
from beacongate.db.store import Store, StoredArtifact
from beacongate.logging import get_logger, job_context, log_exception
from beacongate.models.capture import CaptureFailure, CaptureOutcome, CapturePartial
from beacongate.models.case import ArtifactType, CaptureRunStatus, CaseStatus
from beacongate.models.rules import RuleInput
from beacongate.queue.jobs import CaptureJob
from beacongate.rules.engine import RuleEngine
from beacongate.rules.scoring import RiskScore, compute_risk_score

logger = get_logger(__name__)

PARTIAL_SUFFIX = " (artifacts captured)"


class CaptureOrchestrator:
    """Run one capture job end to end and record every outcome in the store.

    ``process`` never raises for capture, rule or storage problems inside the job: they end up
    on the CaptureRun as ``FAILED`` with a message. Errors from the store itself while recording
    that failure do propagate, so the worker can redeliver the job.
    """

    def __init__(self, store: Store, storage: ArtifactStorage, capturer: Capturer, engine: RuleEngine) -> None:
        self._store = store
        self._storage = storage
        self._capturer = capturer
        self._engine = engine

    async def process(self, job: CaptureJob) -> CaptureRunStatus:
        with job_context(job_id=job.evidence_id, case_id=job.case_id):
            existing = await asyncio.to_thread(self._store.find_capture_run, job.evidence_id, job.attempt)
            if existing is not None and existing.finished_at is not None:
                logger.info(
                    "Attempt %d already finished (%s), skipping redelivery", job.attempt, existing.status.value
                )
                return existing.status

            run = await asyncio.to_thread(self._store.start_capture_run, job.evidence_id, attempt=job.attempt)
            logger.info("Capture attempt %d started (run=%s) for %s", job.attempt, run.id, job.landing_url)
            try:
                run_dir = self._storage.run_dir(job.evidence_id, run.id)
                outcome = await self._capturer.capture(job.landing_url, run_dir)
                return await asyncio.to_thread(self._record, job, run.id, outcome)
            except Exception as e:
                log_exception(logger, "Capture job failed", run_id=run.id)
                await asyncio.to_thread(
                    self._store.finish_capture_run, run.id, succeeded=False, error=f"{type(e).__name__}: {e}"
                )
                return CaptureRunStatus.FAILED

    def _record(self, job: CaptureJob, run_id: str, outcome: CaptureOutcome) -> CaptureRunStatus:
        if isinstance(outcome, CaptureFailure):
            if outcome.security:
                logger.warning("Capture refused by URL guard: %s", outcome.error)
            else:
                logger.warning("Capture failed: %s", outcome.error)
            self._store.finish_capture_run(run_id, succeeded=False, error=outcome.error)
            return CaptureRunStatus.FAILED

        bundle = outcome.bundle
        stored = [
            StoredArtifact(
                hash=a,
                path=self._storage.relative_path(bundle.run_dir / a.basename),
                mime_type=mime_type_for(a.basename),
            )
            for a in bundle.artifacts
        ]
        rows = self._store.save_artifacts(
            evidence_id=job.evidence_id,
            capture_run_id=run_id,
            artifacts=stored,
            bundle_hash=bundle.bundle_hash,
            captured_at=bundle.captured_at,
        )
        logger.info("Saved %d artifact(s), bundle=%s", len(rows), bundle.bundle_hash[:12])

        by_type = {row.type: row for row in rows}
        html_row = by_type.get(ArtifactType.HTML_SNAPSHOT)
        redirects_row = by_type.get(ArtifactType.REDIRECT_CHAIN)
        html = self._storage.read_text(html_row.path) if html_row is not None else None
        redirects = self._storage.read_redirects(redirects_row.path) if redirects_row is not None else None

        outcomes = self._engine.evaluate(
            RuleInput(
                ad_text=job.ad_text,
                category=job.category,
                landing_url=job.landing_url,
                html_content=html,
                redirect_chain=redirects,
            )
        )
        self._store.add_rule_runs(job.case_id, run_id, outcomes)
        risk: RiskScore = compute_risk_score(outcomes)
        self._store.update_queue_item(job.case_id, score=risk.score, tier=risk.tier)
        logger.info("Risk score %d (%s)", risk.score, risk.tier.value)

        if isinstance(outcome, CapturePartial):
            logger.warning("Partial capture: %s", outcome.error)
            self._store.finish_capture_run(run_id, succeeded=False, error=outcome.error + PARTIAL_SUFFIX)
            return CaptureRunStatus.FAILED

        self._store.finish_capture_run(run_id, succeeded=True)
        self._store.set_case_status(job.case_id, CaseStatus.READY_FOR_REVIEW)
        logger.info("Capture succeeded, case ready for review")
        return CaptureRunStatus.SUCCEEDED
