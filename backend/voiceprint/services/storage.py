"""Supabase-backed storage for fingerprints, samples, trait sets and locks.

Tables:

* ``writing_samples`` - analyzed samples per user, before any fingerprint;
* ``voiceprints`` - one row per fingerprint (status, version);
* ``voiceprint_samples`` - a fingerprint's evidence base;
* ``voiceprint_traits`` - one row per computed version, unique on
  ``(voiceprint_id, version)``;
* ``voiceprint_locks`` - one row per ``(voiceprint_id, category)``.

Status transitions go through ``compare_and_set_status``: a single
conditional ``UPDATE ... WHERE id = ? AND status IN (...)`` so concurrent
callers cannot both move a fingerprint into ``computing``.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from supabase import Client

from ..errors import PersistenceError
from ..models.fingerprint import FingerprintStatus, VoiceFingerprint
from ..models.sample import Sample, WritingSample
from ..models.traits import TraitSet
from .supabase import get_supabase_client

LIVE_STATUSES = [
    FingerprintStatus.PENDING.value,
    FingerprintStatus.COMPUTING.value,
    FingerprintStatus.ACTIVE.value,
    FingerprintStatus.FAILED.value,
]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class VoiceprintRepository:
    """Create/read/update operations keyed by fingerprint, sample and version."""

    def __init__(self, client: Optional[Client] = None):
        self._client = client

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase_client()
        return self._client

    def _execute(self, query: Any, action: str, fingerprint_id: Optional[str] = None) -> List[dict]:
        try:
            response = query.execute()
        except Exception as e:
            raise PersistenceError(
                f"Failed to {action}: {str(e)}", fingerprint_id=fingerprint_id
            ) from e
        return response.data or []

    # -- writing samples ---------------------------------------------------

    def insert_writing_sample(
        self, user_id: str, title: str, content: str, word_count: int, source: str
    ) -> WritingSample:
        rows = self._execute(
            self.client.table("writing_samples").insert({
                "user_id": user_id,
                "title": title,
                "content": content,
                "word_count": word_count,
                "source": source,
            }),
            "store writing sample",
        )
        return WritingSample(**rows[0])

    def list_writing_samples(self, user_id: str, limit: Optional[int] = None) -> List[WritingSample]:
        """Most recent first."""
        query = (
            self.client.table("writing_samples")
            .select("*")
            .eq("user_id", user_id)
            .order("created_at", desc=True)
        )
        if limit is not None:
            query = query.limit(limit)
        return [WritingSample(**row) for row in self._execute(query, "list writing samples")]

    # -- fingerprints ------------------------------------------------------

    def create_fingerprint(self, user_id: str, name: str = "My Writing Voice") -> VoiceFingerprint:
        rows = self._execute(
            self.client.table("voiceprints").insert({
                "user_id": user_id,
                "name": name,
                "status": FingerprintStatus.PENDING.value,
                "version": 0,
            }),
            "create fingerprint",
        )
        return VoiceFingerprint(**rows[0])

    def get_fingerprint(self, fingerprint_id: str) -> Optional[VoiceFingerprint]:
        rows = self._execute(
            self.client.table("voiceprints").select("*").eq("id", fingerprint_id),
            "load fingerprint",
            fingerprint_id,
        )
        return VoiceFingerprint(**rows[0]) if rows else None

    def get_current_fingerprint(self, user_id: str) -> Optional[VoiceFingerprint]:
        """The owner's newest fingerprint that has not been superseded."""
        rows = self._execute(
            self.client.table("voiceprints")
            .select("*")
            .eq("user_id", user_id)
            .in_("status", LIVE_STATUSES)
            .order("created_at", desc=True)
            .limit(1),
            "load current fingerprint",
        )
        return VoiceFingerprint(**rows[0]) if rows else None

    def compare_and_set_status(
        self,
        fingerprint_id: str,
        expected: Sequence[FingerprintStatus],
        new_status: FingerprintStatus,
        **fields: Any,
    ) -> Optional[VoiceFingerprint]:
        """Atomically move to ``new_status`` if the current status is in ``expected``.

        Returns the updated fingerprint, or None when no row matched.
        """
        update: Dict[str, Any] = {"status": new_status.value, "updated_at": _now()}
        update.update(fields)
        rows = self._execute(
            self.client.table("voiceprints")
            .update(update)
            .eq("id", fingerprint_id)
            .in_("status", [s.value for s in expected]),
            f"set fingerprint status to {new_status.value}",
            fingerprint_id,
        )
        return VoiceFingerprint(**rows[0]) if rows else None

    def reclaim_stale_computation(
        self, fingerprint_id: str, stale_before: datetime
    ) -> Optional[VoiceFingerprint]:
        """Take over a ``computing`` row last touched before ``stale_before``.

        Conditional on both status and ``updated_at``, so only one caller wins.
        """
        rows = self._execute(
            self.client.table("voiceprints")
            .update({"updated_at": _now(), "last_error": None})
            .eq("id", fingerprint_id)
            .eq("status", FingerprintStatus.COMPUTING.value)
            .lt("updated_at", stale_before.isoformat()),
            "reclaim stale computation",
            fingerprint_id,
        )
        return VoiceFingerprint(**rows[0]) if rows else None

    def supersede_other_active(self, user_id: str, keep_id: str) -> None:
        self._execute(
            self.client.table("voiceprints")
            .update({"status": FingerprintStatus.SUPERSEDED.value, "updated_at": _now()})
            .eq("user_id", user_id)
            .eq("status", FingerprintStatus.ACTIVE.value)
            .neq("id", keep_id),
            "supersede previous fingerprints",
            keep_id,
        )

    # -- evidence samples --------------------------------------------------

    def insert_sample(
        self,
        fingerprint_id: str,
        user_id: str,
        title: str,
        content: str,
        word_count: int,
        source: str,
        writing_sample_id: Optional[str] = None,
    ) -> Sample:
        rows = self._execute(
            self.client.table("voiceprint_samples").insert({
                "voiceprint_id": fingerprint_id,
                "user_id": user_id,
                "title": title,
                "content": content,
                "word_count": word_count,
                "source": source,
                "writing_sample_id": writing_sample_id,
            }),
            "store sample",
            fingerprint_id,
        )
        return Sample(**rows[0])

    def list_samples(self, fingerprint_id: str) -> List[Sample]:
        """Oldest first."""
        rows = self._execute(
            self.client.table("voiceprint_samples")
            .select("*")
            .eq("voiceprint_id", fingerprint_id)
            .order("created_at"),
            "list samples",
            fingerprint_id,
        )
        return [Sample(**row) for row in rows]

    # -- trait sets --------------------------------------------------------

    def insert_traitset(self, traits: TraitSet) -> TraitSet:
        """Store ``traits`` as its version.

        A row for a version the fingerprint never activated is left over from
        a failed activation and is overwritten; activated versions are never
        written again because the next cycle always targets ``version + 1``.
        """
        payload = traits.model_dump(mode="json", exclude={"id", "created_at"})
        rows = self._execute(
            self.client.table("voiceprint_traits").upsert(
                payload, on_conflict="voiceprint_id,version"
            ),
            f"store trait set version {traits.version}",
            traits.voiceprint_id,
        )
        return TraitSet(**rows[0])

    def get_traitset(self, fingerprint_id: str, version: int) -> Optional[TraitSet]:
        rows = self._execute(
            self.client.table("voiceprint_traits")
            .select("*")
            .eq("voiceprint_id", fingerprint_id)
            .eq("version", version),
            f"load trait set version {version}",
            fingerprint_id,
        )
        return TraitSet(**rows[0]) if rows else None

    # -- locks -------------------------------------------------------------

    def get_locks(self, fingerprint_id: str) -> Dict[str, bool]:
        rows = self._execute(
            self.client.table("voiceprint_locks").select("*").eq("voiceprint_id", fingerprint_id),
            "load locks",
            fingerprint_id,
        )
        return {row["category"]: bool(row["enabled"]) for row in rows}

    def set_lock(self, fingerprint_id: str, category: str, enabled: bool) -> None:
        self._execute(
            self.client.table("voiceprint_locks").upsert(
                {
                    "voiceprint_id": fingerprint_id,
                    "category": category,
                    "enabled": enabled,
                    "updated_at": _now(),
                },
                on_conflict="voiceprint_id,category",
            ),
            f"set {category} lock",
            fingerprint_id,
        )

    # -- account deletion --------------------------------------------------

    def delete_owner_data(self, user_id: str) -> int:
        """Cascade-delete everything owned by ``user_id``. Returns fingerprints removed."""
        rows = self._execute(
            self.client.table("voiceprints").select("id").eq("user_id", user_id),
            "list fingerprints for deletion",
        )
        ids = [row["id"] for row in rows]
        if ids:
            for table in ("voiceprint_traits", "voiceprint_locks", "voiceprint_samples"):
                self._execute(
                    self.client.table(table).delete().in_("voiceprint_id", ids),
                    f"delete {table}",
                )
            self._execute(
                self.client.table("voiceprints").delete().eq("user_id", user_id),
                "delete fingerprints",
            )
        self._execute(
            self.client.table("writing_samples").delete().eq("user_id", user_id),
            "delete writing samples",
        )
        return len(ids)
