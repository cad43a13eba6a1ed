"""Tests for the kycq CLI.

Covers --help output, the submit/vote/tally/status flow against a
temporary SQLite database, duplicate and terminal vote handling,
export, the verifier registry commands, and config commands.
"""

from __future__ import annotations

import json

from typer.testing import CliRunner

from kycquorum import __version__
from kycquorum.cli import app

# NO_COLOR=1 prevents Rich from injecting ANSI codes inside option names,
# which breaks substring matching in CI (headless, no TTY).
# COLUMNS=200 prevents wrapping that could split a flag across lines.
runner = CliRunner(env={"NO_COLOR": "1", "COLUMNS": "200"})


# ── Helpers ────────────────────────────────────────────────────────


def _invoke(tmp_path, *args: str):
    return runner.invoke(app, ["--db", str(tmp_path / "kyc.db"), *args])


def _submit(tmp_path, submission_id: str = "sub-1"):
    result = _invoke(tmp_path, "submit", "user-1", "passport", "--id", submission_id)
    assert result.exit_code == 0, result.output
    return result


def _write_config(tmp_path, body: str):
    path = tmp_path / "kyc.toml"
    path.write_text(body)
    return path


# ══════════════════════════════════════════════════════════════════
# Help and version
# ══════════════════════════════════════════════════════════════════


class TestHelp:
    def test_main_help(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        for command in ("submit", "vote", "evaluate", "tally", "status", "pending",
                        "export", "verifiers", "config", "serve"):
            assert command in result.output

    def test_no_args_shows_help(self):
        result = runner.invoke(app, [])
        assert "Usage" in result.output

    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_vote_help(self):
        result = runner.invoke(app, ["vote", "--help"])
        assert result.exit_code == 0
        assert "--note" in result.output

    def test_verifiers_help(self):
        result = runner.invoke(app, ["verifiers", "--help"])
        assert result.exit_code == 0
        for command in ("add", "list", "approve", "suspend"):
            assert command in result.output


# ══════════════════════════════════════════════════════════════════
# Voting flow
# ══════════════════════════════════════════════════════════════════


class TestVotingFlow:
    def test_init_creates_database(self, tmp_path):
        result = _invoke(tmp_path, "init")
        assert result.exit_code == 0
        assert "Store ready" in result.output
        assert (tmp_path / "kyc.db").exists()

    def test_submit(self, tmp_path):
        result = _submit(tmp_path)
        assert "Submission created: sub-1" in result.output

    def test_two_approvals_verify(self, tmp_path):
        _submit(tmp_path)

        first = _invoke(tmp_path, "vote", "sub-1", "bank-a", "approve")
        assert first.exit_code == 0, first.output
        assert "Recorded approve" in first.output
        assert "not reached yet" in first.output

        second = _invoke(tmp_path, "vote", "sub-1", "bank-b", "approve")
        assert second.exit_code == 0, second.output
        assert "VERIFIED" in second.output
        assert "applied" in second.output

        tally = _invoke(tmp_path, "tally", "sub-1")
        assert tally.exit_code == 0
        assert "VERIFIED" in tally.output

    def test_rejection_reason_shown_in_status(self, tmp_path):
        _submit(tmp_path)
        _invoke(tmp_path, "vote", "sub-1", "bank-a", "reject", "-m", "blurry document")
        _invoke(tmp_path, "vote", "sub-1", "bank-b", "reject")

        result = _invoke(tmp_path, "status", "sub-1")
        assert result.exit_code == 0
        assert "REJECTED" in result.output
        assert "blurry document" in result.output
        assert "bank-a" in result.output

    def test_duplicate_vote_shows_tally(self, tmp_path):
        _submit(tmp_path)
        _invoke(tmp_path, "vote", "sub-1", "bank-a", "approve")

        result = _invoke(tmp_path, "vote", "sub-1", "bank-a", "reject")
        assert result.exit_code == 1
        assert "Already voted" in result.output
        assert "Current tally: 1 approve / 0 reject / 1 total" in result.output

    def test_vote_after_final(self, tmp_path):
        _submit(tmp_path)
        _invoke(tmp_path, "vote", "sub-1", "bank-a", "approve")
        _invoke(tmp_path, "vote", "sub-1", "bank-b", "approve")

        result = _invoke(tmp_path, "vote", "sub-1", "bank-c", "reject")
        assert result.exit_code == 1
        assert "SubmissionNotPending" in result.output

    def test_unknown_submission(self, tmp_path):
        result = _invoke(tmp_path, "tally", "missing")
        assert result.exit_code == 1
        assert "UnknownSubmission" in result.output

    def test_invalid_decision(self, tmp_path):
        _submit(tmp_path)
        result = _invoke(tmp_path, "vote", "sub-1", "bank-a", "maybe")
        assert result.exit_code != 0

    def test_evaluate_after_final_is_noop(self, tmp_path):
        _submit(tmp_path)
        _invoke(tmp_path, "vote", "sub-1", "bank-a", "approve")
        _invoke(tmp_path, "vote", "sub-1", "bank-b", "approve")

        result = _invoke(tmp_path, "evaluate", "sub-1")
        assert result.exit_code == 0
        assert "already final" in result.output

    def test_duplicate_submission_id(self, tmp_path):
        _submit(tmp_path)
        result = _invoke(tmp_path, "submit", "user-2", "passport", "--id", "sub-1")
        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_pending_lists_open_submissions(self, tmp_path):
        empty = _invoke(tmp_path, "pending")
        assert "No pending submissions" in empty.output

        _submit(tmp_path, "sub-1")
        _submit(tmp_path, "sub-2")
        _invoke(tmp_path, "vote", "sub-1", "bank-a", "approve")
        _invoke(tmp_path, "vote", "sub-1", "bank-b", "approve")

        result = _invoke(tmp_path, "pending")
        assert result.exit_code == 0
        assert "sub-2" in result.output
        assert "sub-1" not in result.output


# ══════════════════════════════════════════════════════════════════
# Export
# ══════════════════════════════════════════════════════════════════


class TestExport:
    def test_export_markdown(self, tmp_path):
        _submit(tmp_path)
        _invoke(tmp_path, "vote", "sub-1", "bank-a", "approve")

        result = _invoke(tmp_path, "export", "sub-1")
        assert result.exit_code == 0
        assert "# Consensus Report: sub-1" in result.output
        assert "## Votes" in result.output

    def test_export_json(self, tmp_path):
        _submit(tmp_path)
        _invoke(tmp_path, "vote", "sub-1", "bank-a", "approve")

        result = _invoke(tmp_path, "export", "sub-1", "--format", "json")
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["submission_id"] == "sub-1"
        assert data["status"] == "in_progress"
        assert data["votes_received"] == 1

    def test_export_invalid_format(self, tmp_path):
        result = _invoke(tmp_path, "export", "sub-1", "-f", "csv")
        assert result.exit_code == 1
        assert "Invalid format" in result.output


# ══════════════════════════════════════════════════════════════════
# Verifier registry
# ══════════════════════════════════════════════════════════════════


class TestVerifiers:
    def test_add_and_list(self, tmp_path):
        added = _invoke(tmp_path, "verifiers", "add", "bank-a", "First Bank")
        assert added.exit_code == 0
        assert "Registered verifier: bank-a (approved)" in added.output

        listed = _invoke(tmp_path, "verifiers", "list")
        assert "bank-a" in listed.output
        assert "First Bank" in listed.output

    def test_empty_list(self, tmp_path):
        result = _invoke(tmp_path, "verifiers", "list")
        assert "No verifiers registered" in result.output

    def test_suspend_unknown(self, tmp_path):
        result = _invoke(tmp_path, "verifiers", "suspend", "bank-z")
        assert result.exit_code == 1
        assert "Verifier not found" in result.output

    def test_registry_enforced_when_configured(self, tmp_path):
        config = _write_config(
            tmp_path,
            "[store]\nrequire_registered_verifiers = true\n",
        )

        def _run(*args):
            return runner.invoke(
                app, ["--config", str(config), "--db", str(tmp_path / "kyc.db"), *args],
            )

        _run("verifiers", "add", "bank-a", "First Bank")
        _run("verifiers", "add", "bank-b", "--status", "pending")
        _run("submit", "user-1", "passport", "--id", "sub-1")

        blocked = _run("vote", "sub-1", "bank-b", "approve")
        assert blocked.exit_code == 1
        assert "VerifierNotEligible" in blocked.output

        assert _run("verifiers", "approve", "bank-b").exit_code == 0
        allowed = _run("vote", "sub-1", "bank-b", "approve")
        assert allowed.exit_code == 0, allowed.output

        _run("verifiers", "suspend", "bank-a")
        suspended = _run("vote", "sub-1", "bank-a", "approve")
        assert suspended.exit_code == 1


# ══════════════════════════════════════════════════════════════════
# Config
# ══════════════════════════════════════════════════════════════════


class TestConfigCommands:
    def test_config_show_defaults(self):
        result = runner.invoke(app, ["config", "show"])
        assert result.exit_code == 0
        assert "min_votes" in result.output
        assert "0.66" in result.output

    def test_config_show_custom(self, tmp_path):
        config = _write_config(tmp_path, "[consensus]\nmin_votes = 3\nthreshold = 0.75\n")
        result = runner.invoke(app, ["--config", str(config), "config", "show"])
        assert result.exit_code == 0
        assert "0.75" in result.output

    def test_config_path(self):
        result = runner.invoke(app, ["config", "path"])
        assert result.exit_code == 0
        assert "defaults.toml" in result.output
        assert "found" in result.output

    def test_invalid_config_exits(self, tmp_path):
        config = _write_config(tmp_path, "[consensus]\nthreshold = 2.0\n")
        result = runner.invoke(app, ["--config", str(config), "tally", "sub-1"])
        assert result.exit_code == 1
        assert "Error loading config" in result.output

    def test_missing_config_exits(self, tmp_path):
        result = runner.invoke(
            app, ["--config", str(tmp_path / "nope.toml"), "config", "show"],
        )
        assert result.exit_code == 1
