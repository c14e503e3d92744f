"""Fingerprint lifecycle: creation, computation, activation and failure.

State machine per fingerprint::

    pending --> computing --> active
                    |  ^        |
                    v  |        v
                  failed     computing (recompute, new version)

* A fingerprint is created ``pending`` once an owner has enough analyzed
  samples (auto-creation) or through onboarding with explicit samples.
* ``computing`` is entered only through a storage-level compare-and-set, so a
  second request for the same fingerprint is rejected while one is in flight.
* Success persists trait set ``version + 1`` and flips the status to
  ``active``; any failure flips it to ``failed`` with the version untouched, so
  the last good trait set stays authoritative for reads.
* A ``computing`` row left behind by a cycle whose failure could not be
  recorded is taken over once it is older than ``stale_computation_seconds``.
* New samples on an existing fingerprint are stored and scored but never
  trigger a recompute by themselves.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Set

from pydantic import BaseModel

from ..errors import (
    AccessDeniedError,
    ComputationInProgressError,
    ExtractionError,
    FingerprintNotFoundError,
    InputValidationError,
    PersistenceError,
    VoiceprintError,
)
from ..log import get_logger
from ..models.events import (
    ConstraintsChanged,
    SampleAnalyzed,
    SampleCreated,
    SampleUpdated,
    VoiceProfileUpdated,
)
from ..models.fingerprint import (
    COMPUTABLE_STATUSES,
    LOCK_CATEGORIES,
    Coverage,
    EffectiveConstraints,
    FingerprintStatus,
    Lock,
    ProfileView,
    RewriteCheck,
    VoiceFingerprint,
)
from ..models.sample import Sample, SampleCreate, WritingSample
from ..models.traits import StylometricMetrics, TextStats, TraitSet
from . import constraints
from .events import EventBus
from .semantic import SemanticSignatureExtractor
from .storage import VoiceprintRepository
from .stylometry import (
    INSUFFICIENT_DATA,
    analyze_text,
    combine_samples,
    extract_stylometric_features,
    get_basic_stats,
)
from .synthesis import ThresholdPolicy, synthesize_traits

logger = get_logger(__name__)

VIEW_STATES = {
    FingerprintStatus.PENDING: "accumulating",
    FingerprintStatus.COMPUTING: "computing",
    FingerprintStatus.ACTIVE: "active",
    FingerprintStatus.FAILED: "failed",
}


class IngestResult(BaseModel):
    """What happened to a newly submitted sample."""
    writing_sample: WritingSample
    fingerprint: Optional[VoiceFingerprint] = None
    attached_sample: Optional[Sample] = None
    computation_scheduled: bool = False


class FingerprintLifecycleManager:
    """Drives fingerprints through their lifecycle and publishes the changes."""

    def __init__(
        self,
        repository: VoiceprintRepository,
        bus: EventBus,
        semantic_extractor: SemanticSignatureExtractor,
        threshold_policy: Optional[ThresholdPolicy] = None,
        min_samples: int = 3,
        min_corpus_tokens: int = 20,
        max_sample_words: int = 5000,
        max_onboarding_samples: int = 5,
        auto_create_sample_limit: int = 10,
        stale_computation_seconds: float = 300.0,
    ):
        self.repository = repository
        self.bus = bus
        self.semantic_extractor = semantic_extractor
        self.threshold_policy = threshold_policy or ThresholdPolicy()
        self.min_samples = min_samples
        self.min_corpus_tokens = min_corpus_tokens
        self.max_sample_words = max_sample_words
        self.max_onboarding_samples = max_onboarding_samples
        self.auto_create_sample_limit = auto_create_sample_limit
        self.stale_computation_seconds = stale_computation_seconds
        self._scheduled: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _validate_text(self, content: str, label: str = "Sample") -> TextStats:
        if not content or not content.strip():
            raise InputValidationError(f"{label} text is empty")
        stats = get_basic_stats(content)
        if stats.word_count == 0:
            raise InputValidationError(f"{label} contains no words")
        if stats.word_count > self.max_sample_words:
            raise InputValidationError(
                f"{label} exceeds {self.max_sample_words} word limit",
                details={"word_count": stats.word_count},
            )
        return stats

    def _load(self, fingerprint_id: str, owner_id: Optional[str] = None) -> VoiceFingerprint:
        fingerprint = self.repository.get_fingerprint(fingerprint_id)
        if fingerprint is None:
            raise FingerprintNotFoundError("Voice fingerprint not found", fingerprint_id=fingerprint_id)
        if owner_id is not None and fingerprint.user_id != owner_id:
            raise AccessDeniedError("Not authorized to access this voice fingerprint", fingerprint_id=fingerprint_id)
        return fingerprint

    def _authoritative_traits(self, fingerprint: VoiceFingerprint) -> Optional[TraitSet]:
        if fingerprint.version < 1:
            return None
        return self.repository.get_traitset(fingerprint.id, fingerprint.version)

    def _stale_cutoff(self) -> datetime:
        return datetime.now(timezone.utc) - timedelta(seconds=self.stale_computation_seconds)

    def _is_stale(self, fingerprint: VoiceFingerprint) -> bool:
        """A ``computing`` row nobody has touched within the stale window."""
        if fingerprint.status != FingerprintStatus.COMPUTING:
            return False
        updated_at = fingerprint.updated_at
        if updated_at.tzinfo is None:
            updated_at = updated_at.replace(tzinfo=timezone.utc)
        return updated_at < self._stale_cutoff()

    @staticmethod
    def _coverage(samples: List) -> Coverage:
        return Coverage.from_counts(len(samples), sum(s.word_count for s in samples))

    @staticmethod
    def _integrity_by_sample(samples: List[Sample], traits: TraitSet) -> Dict[str, float]:
        return {
            s.id: constraints.score_against_thresholds(
                analyze_text(s.content), traits.target_thresholds
            )[0]
            for s in samples
        }

    def _lock_states(self, fingerprint_id: str) -> Dict[str, bool]:
        stored = self.repository.get_locks(fingerprint_id)
        return {category: stored.get(category, False) for category in LOCK_CATEGORIES}

    def _publish_profile(
        self, fingerprint: VoiceFingerprint, traits: TraitSet, samples: List[Sample], reason: str
    ) -> Dict[str, float]:
        integrity = self._integrity_by_sample(samples, traits)
        average = sum(integrity.values()) / len(integrity) if integrity else 0.0
        self.bus.emit(
            "voiceProfile.updated",
            VoiceProfileUpdated(
                voiceprint_id=fingerprint.id,
                version=traits.version,
                coverage=self._coverage(samples),
                average_integrity=round(average, 2),
                semantic_cohesion=traits.semantic_signature.semantic_cohesion,
                reason=reason,
            ),
        )
        return integrity

    # ------------------------------------------------------------------
    # Sample intake
    # ------------------------------------------------------------------

    async def ingest_sample(
        self,
        owner_id: str,
        content: str,
        title: str = "Untitled",
        source: str = "writing_analysis",
    ) -> IngestResult:
        """Store an analyzed sample and route it into the owner's fingerprint.

        With an existing fingerprint the sample joins its evidence base for the
        next recompute. Without one, reaching ``min_samples`` analyzed samples
        creates a pending fingerprint and schedules its first computation.
        """
        stats = self._validate_text(content)
        writing = self.repository.insert_writing_sample(
            owner_id, title.strip() or "Untitled", content.strip(), stats.word_count, source
        )
        self.bus.emit(
            "sample.created",
            SampleCreated(sample_id=writing.id, word_count=writing.word_count, source=source),
        )

        fingerprint = self.repository.get_current_fingerprint(owner_id)
        if fingerprint is not None:
            sample = self.repository.insert_sample(
                fingerprint.id,
                owner_id,
                writing.title,
                writing.content,
                writing.word_count,
                "continuous_learning",
                writing_sample_id=writing.id,
            )
            logger.info(
                "sample_attached",
                fingerprint_id=fingerprint.id,
                sample_id=sample.id,
                status=fingerprint.status.value,
            )
            self._announce_attached(fingerprint, sample)
            return IngestResult(writing_sample=writing, fingerprint=fingerprint, attached_sample=sample)

        recent = self.repository.list_writing_samples(owner_id, limit=self.auto_create_sample_limit)
        if len(recent) < self.min_samples:
            logger.info(
                "sample_accumulated",
                owner_id=owner_id,
                sample_count=len(recent),
                needed=self.min_samples,
            )
            return IngestResult(writing_sample=writing)

        fingerprint = self.repository.create_fingerprint(owner_id)
        for ws in reversed(recent):
            self.repository.insert_sample(
                fingerprint.id,
                owner_id,
                ws.title,
                ws.content,
                ws.word_count,
                ws.source,
                writing_sample_id=ws.id,
            )
        logger.info(
            "fingerprint_auto_created",
            fingerprint_id=fingerprint.id,
            owner_id=owner_id,
            sample_count=len(recent),
        )
        self.schedule_compute(fingerprint.id, reason="profile_creation")
        return IngestResult(writing_sample=writing, fingerprint=fingerprint, computation_scheduled=True)

    def _announce_attached(self, fingerprint: VoiceFingerprint, sample: Sample) -> None:
        traits = self._authoritative_traits(fingerprint)
        if traits is None:
            return
        score, violations = constraints.score_against_thresholds(
            analyze_text(sample.content), traits.target_thresholds
        )
        self.bus.emit(
            "sample.analyzed",
            SampleAnalyzed(
                sample_id=sample.id,
                voiceprint_id=fingerprint.id,
                version=traits.version,
                integrity=score,
                violations=violations,
            ),
        )
        self._publish_profile(
            fingerprint, traits, self.repository.list_samples(fingerprint.id), "add_sample"
        )

    async def create_fingerprint(
        self, owner_id: str, samples: List[SampleCreate], name: str = "My Writing Voice"
    ) -> VoiceFingerprint:
        """Onboarding: a pending fingerprint seeded with explicit samples."""
        if not self.min_samples <= len(samples) <= self.max_onboarding_samples:
            raise InputValidationError(
                f"Please provide {self.min_samples}-{self.max_onboarding_samples} "
                "writing samples for an accurate voice profile",
                details={"sample_count": len(samples)},
            )
        stats = [
            self._validate_text(s.content, label=f'Sample "{s.title}"') for s in samples
        ]

        fingerprint = self.repository.create_fingerprint(owner_id, name)
        for sample, sample_stats in zip(samples, stats):
            stored = self.repository.insert_sample(
                fingerprint.id,
                owner_id,
                sample.title.strip() or "Untitled",
                sample.content.strip(),
                sample_stats.word_count,
                sample.source,
            )
            self.bus.emit(
                "sample.created",
                SampleCreated(sample_id=stored.id, word_count=stored.word_count, source=stored.source),
            )
        logger.info("fingerprint_created", fingerprint_id=fingerprint.id, sample_count=len(samples))
        return fingerprint

    # ------------------------------------------------------------------
    # Computation
    # ------------------------------------------------------------------

    def schedule_compute(self, fingerprint_id: str, reason: Optional[str] = None) -> asyncio.Task:
        """Run ``compute`` in the background on the current loop."""
        task = asyncio.create_task(self._run_scheduled(fingerprint_id, reason))
        self._scheduled.add(task)
        task.add_done_callback(self._scheduled.discard)
        return task

    async def _run_scheduled(self, fingerprint_id: str, reason: Optional[str]) -> None:
        try:
            await self.compute(fingerprint_id, reason=reason)
        except VoiceprintError as e:
            logger.warning(
                "scheduled_computation_failed",
                fingerprint_id=fingerprint_id,
                error_code=e.error_code,
                error=e.message,
            )

    async def wait_for_scheduled(self) -> None:
        """Wait for background computations started by this manager."""
        if self._scheduled:
            await asyncio.gather(*list(self._scheduled), return_exceptions=True)

    async def compute(
        self,
        fingerprint_id: str,
        owner_id: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> TraitSet:
        """Run one computation cycle and return the new authoritative trait set.

        Raises:
            InputValidationError: fewer than ``min_samples`` samples or too
                little text; the status is left unchanged.
            ComputationInProgressError: another cycle holds ``computing``.
            ExtractionError / PersistenceError: the cycle failed and the
                fingerprint is now ``failed``.
        """
        fingerprint = self._load(fingerprint_id, owner_id)
        stale = self._is_stale(fingerprint)
        if fingerprint.status == FingerprintStatus.COMPUTING and not stale:
            raise ComputationInProgressError(
                "A computation is already running for this fingerprint",
                fingerprint_id=fingerprint.id,
                last_version=fingerprint.version,
            )
        if fingerprint.status == FingerprintStatus.SUPERSEDED:
            raise InputValidationError(
                "This fingerprint has been superseded",
                fingerprint_id=fingerprint.id,
                last_version=fingerprint.version,
            )

        samples = self.repository.list_samples(fingerprint.id)
        if len(samples) < self.min_samples:
            raise InputValidationError(
                f"Need at least {self.min_samples} samples to compute a voice fingerprint. "
                f"You have {len(samples)}.",
                fingerprint_id=fingerprint.id,
                last_version=fingerprint.version,
            )
        metrics = extract_stylometric_features(
            combine_samples(s.content for s in samples), self.min_corpus_tokens
        )
        if metrics is INSUFFICIENT_DATA:
            raise InputValidationError(
                f"Samples contain fewer than {self.min_corpus_tokens} words in total",
                fingerprint_id=fingerprint.id,
                last_version=fingerprint.version,
            )

        if stale:
            # A cycle whose outcome was never recorded; take it over
            claimed = self.repository.reclaim_stale_computation(
                fingerprint.id, self._stale_cutoff()
            )
            if claimed is not None:
                logger.warning(
                    "stale_computation_reclaimed",
                    fingerprint_id=claimed.id,
                    last_version=claimed.version,
                )
        else:
            claimed = self.repository.compare_and_set_status(
                fingerprint.id, COMPUTABLE_STATUSES, FingerprintStatus.COMPUTING, last_error=None
            )
        if claimed is None:
            raise ComputationInProgressError(
                "A computation is already running for this fingerprint",
                fingerprint_id=fingerprint.id,
                last_version=fingerprint.version,
            )
        logger.info(
            "fingerprint_computing",
            fingerprint_id=claimed.id,
            sample_count=len(samples),
            next_version=claimed.version + 1,
        )

        try:
            traits = await self._run_pipeline(claimed, samples, metrics)
            stored = self.repository.insert_traitset(traits)
            activated = self.repository.compare_and_set_status(
                claimed.id,
                [FingerprintStatus.COMPUTING],
                FingerprintStatus.ACTIVE,
                version=stored.version,
            )
            if activated is None:
                raise PersistenceError(
                    "Fingerprint left the computing state before activation",
                    fingerprint_id=claimed.id,
                    last_version=claimed.version,
                )
            self.repository.supersede_other_active(activated.user_id, activated.id)
        except Exception as e:
            self._mark_failed(claimed, e)
            if isinstance(e, VoiceprintError):
                e.fingerprint_id = e.fingerprint_id or claimed.id
                e.last_version = claimed.version
                raise
            raise ExtractionError(
                f"Voice fingerprint computation failed: {e}",
                fingerprint_id=claimed.id,
                last_version=claimed.version,
            ) from e

        logger.info(
            "fingerprint_activated",
            fingerprint_id=activated.id,
            version=stored.version,
            traits=len(stored.signature_traits),
            pitfalls=len(stored.pitfalls),
            skipped_samples=len(stored.skipped_sample_ids),
        )
        if reason is None:
            reason = "profile_creation" if stored.version == 1 else "recompute"
        self._publish_computed(activated, stored, samples, reason)
        return stored

    async def _run_pipeline(
        self, fingerprint: VoiceFingerprint, samples: List[Sample], metrics: StylometricMetrics
    ) -> TraitSet:
        semantic = await self.semantic_extractor.extract([(s.id, s.content) for s in samples])
        synthesis = synthesize_traits(metrics, semantic.signature, self.threshold_policy)

        return TraitSet(
            voiceprint_id=fingerprint.id,
            version=fingerprint.version + 1,
            stylometric_metrics=metrics,
            semantic_signature=semantic.signature,
            signature_traits=synthesis.signature_traits,
            pitfalls=synthesis.pitfalls,
            target_thresholds=synthesis.target_thresholds,
            summary=synthesis.summary,
            skipped_sample_ids=semantic.skipped_sample_ids,
            sample_count=len(samples),
        )

    def _mark_failed(self, fingerprint: VoiceFingerprint, error: Exception) -> None:
        logger.error(
            "fingerprint_computation_failed",
            fingerprint_id=fingerprint.id,
            last_version=fingerprint.version,
            error=str(error),
            exc_info=error,
        )
        try:
            self.repository.compare_and_set_status(
                fingerprint.id,
                [FingerprintStatus.COMPUTING],
                FingerprintStatus.FAILED,
                last_error=str(error)[:500],
            )
        except PersistenceError:
            logger.exception("fingerprint_failure_not_recorded", fingerprint_id=fingerprint.id)

    def _publish_computed(
        self, fingerprint: VoiceFingerprint, traits: TraitSet, samples: List[Sample], reason: str
    ) -> None:
        integrity = self._publish_profile(fingerprint, traits, samples, reason)
        self.bus.emit(
            "voiceProfile.constraints.changed",
            ConstraintsChanged(
                voiceprint_id=fingerprint.id,
                version=traits.version,
                locks=self._lock_states(fingerprint.id),
                reason="threshold_change",
            ),
        )
        for sample_id, score in integrity.items():
            self.bus.emit(
                "sample.updated",
                SampleUpdated(
                    sample_id=sample_id,
                    voiceprint_id=fingerprint.id,
                    integrity=score,
                    reason="batch_update",
                ),
            )

    # ------------------------------------------------------------------
    # Reads and constraint management
    # ------------------------------------------------------------------

    def get_coverage(self, owner_id: str) -> Coverage:
        fingerprint = self.repository.get_current_fingerprint(owner_id)
        if fingerprint is None:
            return self._coverage(self.repository.list_writing_samples(owner_id))
        return self._coverage(self.repository.list_samples(fingerprint.id))

    def get_profile_view(self, owner_id: str) -> ProfileView:
        fingerprint = self.repository.get_current_fingerprint(owner_id)
        if fingerprint is None:
            writing = self.repository.list_writing_samples(owner_id)
            return ProfileView(
                state="accumulating",
                coverage=self._coverage(writing),
                samples_needed=max(0, self.min_samples - len(writing)),
            )

        samples = self.repository.list_samples(fingerprint.id)
        return ProfileView(
            state=VIEW_STATES[fingerprint.status],
            fingerprint=fingerprint,
            version=fingerprint.version,
            coverage=self._coverage(samples),
            samples_needed=max(0, self.min_samples - len(samples)),
            last_error=fingerprint.last_error,
            traits=self._authoritative_traits(fingerprint),
        )

    def get_effective_constraints(
        self, fingerprint_id: str, owner_id: Optional[str] = None
    ) -> EffectiveConstraints:
        """Thresholds and locks of the authoritative version, for the rewrite service."""
        fingerprint = self._load(fingerprint_id, owner_id)
        traits = self._authoritative_traits(fingerprint)
        if traits is None:
            raise InputValidationError(
                "Voice fingerprint has no computed version yet",
                fingerprint_id=fingerprint.id,
                last_version=fingerprint.version,
            )
        return EffectiveConstraints(
            voiceprint_id=fingerprint.id,
            version=traits.version,
            target_thresholds=traits.target_thresholds,
            locks=constraints.resolve_locks(self._lock_states(fingerprint.id), traits),
            summary=traits.summary,
        )

    def set_lock(
        self, fingerprint_id: str, category: str, enabled: bool, owner_id: Optional[str] = None
    ) -> List[Lock]:
        if category not in LOCK_CATEGORIES:
            raise InputValidationError(
                f"Unknown lock category: {category}",
                fingerprint_id=fingerprint_id,
                details={"allowed": LOCK_CATEGORIES},
            )
        fingerprint = self._load(fingerprint_id, owner_id)
        self.repository.set_lock(fingerprint.id, category, enabled)
        states = self._lock_states(fingerprint.id)
        logger.info("lock_changed", fingerprint_id=fingerprint.id, category=category, enabled=enabled)

        # The profile UI waits on this one, so it skips the debounce window
        self.bus.emit(
            "voiceProfile.constraints.changed",
            ConstraintsChanged(
                voiceprint_id=fingerprint.id,
                version=fingerprint.version,
                locks=states,
                reason="lock_change",
            ),
            immediate=True,
        )

        traits = self._authoritative_traits(fingerprint)
        if traits is None:
            return [Lock(category=c, enabled=states[c]) for c in LOCK_CATEGORIES]
        return constraints.resolve_locks(states, traits)

    def check_rewrite(
        self, fingerprint_id: str, text: str, owner_id: Optional[str] = None
    ) -> RewriteCheck:
        """Judge a candidate rewrite against the current effective constraints."""
        self._validate_text(text, label="Rewrite")
        effective = self.get_effective_constraints(fingerprint_id, owner_id)
        return constraints.check_rewrite(analyze_text(text), effective)

    def delete_owner_data(self, owner_id: str) -> int:
        removed = self.repository.delete_owner_data(owner_id)
        logger.info("owner_data_deleted", owner_id=owner_id, fingerprints=removed)
        return removed
