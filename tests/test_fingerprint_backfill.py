"""
Tests for the skill fingerprint backfill pipeline.
"""

import pytest

from skillhub.database import SkillVersion, SkillVersionFingerprint
from skillhub.files import hash_skill_files
from skillhub.pipelines.backfill import BackfillIncompleteError
from skillhub.pipelines.backfill.fingerprints import (
    apply_skill_fingerprint_backfill_patch,
    backfill_skill_fingerprints,
    get_skill_fingerprint_backfill_page,
)

FILES = [
    {"path": "SKILL.md", "sha256": "a", "storageId": "kg1"},
    {"path": "x.ts", "sha256": "b", "storageId": "kg2"},
]
EXPECTED = hash_skill_files([{"path": "SKILL.md", "sha256": "a"}, {"path": "x.ts", "sha256": "b"}])


def _entries(store, version_id):
    with store.read() as session:
        return [
            e.fingerprint
            for e in session.query(SkillVersionFingerprint).filter_by(version_id=version_id).all()
        ]


def _stored(store, version_id):
    with store.read() as session:
        return session.get(SkillVersion, version_id).fingerprint


class TestPageFetcher:
    """Test which versions are selected for repair."""

    def test_consistent_version_skipped(self, store, registry):
        registry.add_version("skv_ok", FILES, fingerprint=EXPECTED)
        registry.add_entry("skv_ok", EXPECTED)

        with store.read() as session:
            page = get_skill_fingerprint_backfill_page(session)

        assert page.items == []
        assert page.is_done

    def test_selects_each_inconsistency(self, store, registry):
        registry.add_version("skv_1_nofield", FILES)
        registry.add_entry("skv_1_nofield", EXPECTED)
        registry.add_version("skv_2_noentry", FILES, fingerprint=EXPECTED)
        registry.add_version("skv_3_disagree", FILES, fingerprint=EXPECTED)
        registry.add_entry("skv_3_disagree", EXPECTED)
        registry.add_entry("skv_3_disagree", "other")
        registry.add_version("skv_4_stale", FILES, fingerprint="old")
        registry.add_entry("skv_4_stale", EXPECTED)

        with store.read() as session:
            page = get_skill_fingerprint_backfill_page(session)

        assert [item.version_id for item in page.items] == [
            "skv_1_nofield",
            "skv_2_noentry",
            "skv_3_disagree",
            "skv_4_stale",
        ]

        first = page.items[0]
        assert first.skill_id == "skl_owner"
        assert first.version_fingerprint is None
        assert first.files == [{"path": "SKILL.md", "sha256": "a"}, {"path": "x.ts", "sha256": "b"}]
        assert [e.fingerprint for e in first.existing_entries] == [EXPECTED]

        assert {e.fingerprint for e in page.items[2].existing_entries} == {EXPECTED, "other"}

    def test_entry_lookup_capped(self, store, registry):
        registry.add_version("skv_many", FILES)
        for _ in range(25):
            registry.add_entry("skv_many", EXPECTED)

        with store.read() as session:
            page = get_skill_fingerprint_backfill_page(session)

        assert len(page.items[0].existing_entries) == 20


class TestPatchApplier:
    """Test the delete-then-insert repair."""

    def test_missing_version_soft_failure(self, store):
        with store.transaction() as session:
            result = apply_skill_fingerprint_backfill_patch(
                session, "skv_gone", EXPECTED, patch_version=True, replace_entries=True
            )
        assert result == {"ok": False, "reason": "missingVersion"}

    def test_replace_entries(self, store, registry):
        registry.add_version("skv_a", FILES, fingerprint=EXPECTED)
        old = [registry.add_entry("skv_a", "x"), registry.add_entry("skv_a", "y")]

        with store.transaction() as session:
            result = apply_skill_fingerprint_backfill_patch(
                session, "skv_a", EXPECTED, patch_version=False, replace_entries=True,
                existing_entry_ids=old,
            )

        assert result == {"ok": True}
        assert _entries(store, "skv_a") == [EXPECTED]
        with store.read() as session:
            entry = session.query(SkillVersionFingerprint).filter_by(version_id="skv_a").one()
            assert entry.skill_id == "skl_owner"
            assert entry.created_at is not None

    def test_patch_version_only(self, store, registry):
        registry.add_version("skv_a", FILES)
        registry.add_entry("skv_a", EXPECTED)

        with store.transaction() as session:
            apply_skill_fingerprint_backfill_patch(
                session, "skv_a", EXPECTED, patch_version=True, replace_entries=False,
            )

        assert _stored(store, "skv_a") == EXPECTED
        assert _entries(store, "skv_a") == [EXPECTED]


class TestBackfillSkillFingerprints:
    """Test the batch orchestrator."""

    def test_fresh_version_scenario(self, store, registry):
        registry.add_version("skv_v", FILES)

        result = backfill_skill_fingerprints(store)

        assert result["ok"] is True
        stats = result["stats"]
        assert stats["fingerprints_inserted"] == 1
        assert stats["versions_patched"] == 1
        assert stats["fingerprint_mismatches"] == 0
        assert _entries(store, "skv_v") == [EXPECTED]
        assert _stored(store, "skv_v") == EXPECTED

    @pytest.mark.parametrize(
        "stored, entries",
        [
            (None, []),
            ("stale", [EXPECTED]),
            (EXPECTED, [EXPECTED, "other"]),
            ("stale", ["stale", "older", "oldest"]),
            (None, ["wrong"]),
        ],
    )
    def test_repair_converges(self, store, registry, stored, entries):
        registry.add_version("skv_v", FILES, fingerprint=stored)
        for fingerprint in entries:
            registry.add_entry("skv_v", fingerprint)

        backfill_skill_fingerprints(store)

        assert _entries(store, "skv_v") == [EXPECTED]
        assert _stored(store, "skv_v") == EXPECTED

    def test_counts_mismatches(self, store, registry):
        registry.add_version("skv_a", FILES, fingerprint=EXPECTED)
        registry.add_entry("skv_a", EXPECTED)
        registry.add_entry("skv_a", "other")
        registry.add_version("skv_b", FILES)
        registry.add_entry("skv_b", EXPECTED)

        stats = backfill_skill_fingerprints(store)["stats"]

        assert stats["versions_scanned"] == 2
        assert stats["fingerprint_mismatches"] == 1
        assert stats["fingerprints_inserted"] == 1
        assert stats["versions_patched"] == 1

    def test_second_run_is_noop(self, store, registry):
        registry.add_version("skv_a", FILES)
        registry.add_version("skv_b", FILES, fingerprint="stale")
        registry.add_entry("skv_b", "stale")
        registry.add_entry("skv_b", "other")

        backfill_skill_fingerprints(store)
        stats = backfill_skill_fingerprints(store)["stats"]

        assert stats == {
            "versions_scanned": 0,
            "versions_patched": 0,
            "fingerprints_inserted": 0,
            "fingerprint_mismatches": 0,
            "versions_missing": 0,
        }

    def test_dry_run_writes_nothing_and_predicts_real_run(self, store, registry):
        registry.add_version("skv_a", FILES)
        registry.add_version("skv_b", FILES, fingerprint="stale")
        registry.add_entry("skv_b", "stale")
        registry.add_entry("skv_b", "other")

        dry = backfill_skill_fingerprints(store, dry_run=True)["stats"]

        assert _entries(store, "skv_a") == []
        assert sorted(_entries(store, "skv_b")) == ["other", "stale"]
        assert _stored(store, "skv_b") == "stale"

        real = backfill_skill_fingerprints(store)["stats"]
        assert dry == real

    def test_version_deleted_mid_run_is_counted(self, store, registry):
        registry.add_version("skv_a", FILES)

        def hash_and_delete(files):
            with store.transaction() as session:
                session.delete(session.get(SkillVersion, "skv_a"))
            return hash_skill_files(files)

        stats = backfill_skill_fingerprints(store, hash_files=hash_and_delete)["stats"]

        assert stats["versions_missing"] == 1
        assert _entries(store, "skv_a") == []

    def test_injected_hash_function(self, store, registry):
        registry.add_version("skv_a", FILES)

        backfill_skill_fingerprints(store, hash_files=lambda files: f"n={len(files)}")

        assert _stored(store, "skv_a") == "n=2"
        assert _entries(store, "skv_a") == ["n=2"]

    def test_incomplete_scan_fails(self, store, registry):
        for i in range(3):
            registry.add_version(f"skv_{i}", FILES)

        with pytest.raises(BackfillIncompleteError):
            backfill_skill_fingerprints(store, batch_size=1, max_batches=2)

        assert _stored(store, "skv_0") == EXPECTED
        assert _stored(store, "skv_2") is None

    def test_completes_when_records_fit_budget(self, store, registry):
        for i in range(4):
            registry.add_version(f"skv_{i}", FILES)

        stats = backfill_skill_fingerprints(store, batch_size=2, max_batches=2)["stats"]

        assert stats["versions_scanned"] == 4
