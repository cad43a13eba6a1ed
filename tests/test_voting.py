"""Tests for vote tallying and quorum resolution.

Covers tally counting, the min-votes and threshold rules, the
simultaneous-clearance tie rule, rejection-note selection, progress
percentages, and order independence.
"""

from __future__ import annotations

import itertools
from datetime import UTC, datetime, timedelta

import pytest

from kycquorum.consensus.voting import (
    latest_rejection_note,
    progress_percent,
    resolve_quorum,
    tally_votes,
)
from kycquorum.schemas.config import ConsensusConfig
from kycquorum.schemas.consensus import (
    SubmissionStatus,
    Vote,
    VoteDecision,
    VoteTally,
)

_T0 = datetime(2026, 10, 19, 9, 0, 0, tzinfo=UTC)


# ── Factories ──────────────────────────────────────────────────────


def _make_vote(
    verifier_id: str,
    decision: str = "approve",
    note: str | None = None,
    minutes: int = 0,
) -> Vote:
    return Vote(
        submission_id="sub-1",
        verifier_id=verifier_id,
        decision=VoteDecision(decision),
        note=note,
        cast_at=_T0 + timedelta(minutes=minutes),
    )


def _tally(approvals: int, rejections: int) -> VoteTally:
    return VoteTally(
        approvals=approvals, rejections=rejections, total=approvals + rejections,
    )


# ── tally_votes ───────────────────────────────────────────────────


class TestTallyVotes:
    def test_empty(self):
        tally = tally_votes([])
        assert tally == VoteTally(approvals=0, rejections=0, total=0)
        assert tally.approval_ratio == 0.0
        assert tally.rejection_ratio == 0.0

    def test_mixed(self):
        tally = tally_votes([
            _make_vote("a"), _make_vote("b", "reject"), _make_vote("c"),
        ])
        assert (tally.approvals, tally.rejections, tally.total) == (2, 1, 3)

    def test_ratios(self):
        tally = _tally(2, 1)
        assert tally.approval_ratio == pytest.approx(2 / 3)
        assert tally.rejection_ratio == pytest.approx(1 / 3)


# ── resolve_quorum ────────────────────────────────────────────────


class TestResolveQuorum:
    def test_below_min_votes_never_decides(self):
        config = ConsensusConfig(min_votes=2, threshold=0.66)
        assert resolve_quorum(_tally(1, 0), config) == (None, False)

    def test_unanimous_approval_verifies(self):
        config = ConsensusConfig()
        assert resolve_quorum(_tally(2, 0), config) == (SubmissionStatus.VERIFIED, False)

    def test_unanimous_rejection_rejects(self):
        config = ConsensusConfig()
        assert resolve_quorum(_tally(0, 2), config) == (SubmissionStatus.REJECTED, False)

    def test_split_vote_stays_pending(self):
        config = ConsensusConfig()
        assert resolve_quorum(_tally(1, 1), config) == (None, False)

    def test_two_of_three_clears_default_threshold(self):
        config = ConsensusConfig()
        assert resolve_quorum(_tally(2, 1), config) == (SubmissionStatus.VERIFIED, False)

    def test_ratio_exactly_at_threshold_counts(self):
        config = ConsensusConfig(min_votes=4, threshold=0.75)
        assert resolve_quorum(_tally(3, 1), config) == (SubmissionStatus.VERIFIED, False)

    def test_ratio_just_below_threshold(self):
        config = ConsensusConfig(min_votes=2, threshold=0.7)
        assert resolve_quorum(_tally(2, 1), config) == (None, False)

    def test_low_threshold_tie_is_indeterminate(self):
        config = ConsensusConfig(min_votes=2, threshold=0.5)
        assert resolve_quorum(_tally(2, 2), config) == (None, True)

    def test_low_threshold_strict_majority_wins(self):
        config = ConsensusConfig(min_votes=2, threshold=0.4)
        assert resolve_quorum(_tally(3, 2), config) == (SubmissionStatus.VERIFIED, False)
        assert resolve_quorum(_tally(2, 3), config) == (SubmissionStatus.REJECTED, False)

    def test_min_votes_one(self):
        config = ConsensusConfig(min_votes=1, threshold=0.66)
        assert resolve_quorum(_tally(0, 1), config) == (SubmissionStatus.REJECTED, False)


# ── latest_rejection_note ─────────────────────────────────────────


class TestLatestRejectionNote:
    def test_no_reject_votes(self):
        assert latest_rejection_note([_make_vote("a", note="fine")]) is None

    def test_picks_latest_noted_reject(self):
        votes = [
            _make_vote("a", "reject", note="blurry document", minutes=0),
            _make_vote("b", "reject", note="expired", minutes=5),
        ]
        assert latest_rejection_note(votes) == "expired"

    def test_skips_reject_without_note(self):
        votes = [
            _make_vote("a", "reject", note="blurry document", minutes=0),
            _make_vote("b", "reject", minutes=5),
        ]
        assert latest_rejection_note(votes) == "blurry document"

    def test_ignores_approve_notes(self):
        votes = [
            _make_vote("a", "reject", note="blurry document", minutes=0),
            _make_vote("b", "approve", note="looks fine", minutes=5),
        ]
        assert latest_rejection_note(votes) == "blurry document"

    def test_blank_note_is_ignored(self):
        votes = [_make_vote("a", "reject", note="   ")]
        assert latest_rejection_note(votes) is None

    def test_same_timestamp_is_deterministic(self):
        votes = [
            _make_vote("a", "reject", note="first"),
            _make_vote("b", "reject", note="second"),
        ]
        assert latest_rejection_note(votes) == latest_rejection_note(reversed(votes))


# ── progress_percent ──────────────────────────────────────────────


class TestProgressPercent:
    def test_partial(self):
        assert progress_percent(1, 2) == 50.0

    def test_capped(self):
        assert progress_percent(5, 2) == 100.0

    def test_zero_required(self):
        assert progress_percent(0, 0) == 100.0


# ── Order independence ────────────────────────────────────────────


def test_outcome_independent_of_vote_order():
    votes = [
        _make_vote("a", "reject", note="blurry", minutes=1),
        _make_vote("b", "approve", minutes=2),
        _make_vote("c", "reject", note="mismatch", minutes=3),
        _make_vote("d", "reject", minutes=4),
    ]
    config = ConsensusConfig(min_votes=2, threshold=0.66)

    results = set()
    for perm in itertools.permutations(votes):
        tally = tally_votes(perm)
        decision, indeterminate = resolve_quorum(tally, config)
        results.add((
            tally.approvals, tally.rejections, decision, indeterminate,
            latest_rejection_note(perm),
        ))

    assert results == {(1, 3, SubmissionStatus.REJECTED, False, "mismatch")}
