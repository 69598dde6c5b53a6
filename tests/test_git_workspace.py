"""Tests for GitWorkspace and the repo/branch helpers."""

import pytest

from autoclaude.core.commands import CommandError
from autoclaude.core.git_workspace import (
    GitWorkspace,
    branch_name_for,
    repo_name_from_url,
    validate_branch_name,
    validate_repo_url,
)


@pytest.fixture
def workspace(runner, tmp_path):
    return GitWorkspace(runner, tmp_path / "work", timeout=30, git="git")


class TestValidateRepoUrl:
    """Tests for validate_repo_url()."""

    @pytest.mark.parametrize(
        "url",
        [
            "https://github.com/acme/widgets",
            "https://github.com/acme/widgets.git",
            "https://gitlab.com/acme/widgets",
            "git@github.com:acme/widgets.git",
            "git@gitlab.com:acme-corp/my.repo",
        ],
    )
    def test_accepted(self, url):
        assert validate_repo_url(url)

    @pytest.mark.parametrize(
        "url",
        [
            "",
            "file:///etc/passwd",
            "https://example.com/acme/widgets",
            "https://github.com/acme/widgets; rm -rf /",
            "https://github.com/acme",
            "--upload-pack=evil",
        ],
    )
    def test_rejected(self, url):
        assert not validate_repo_url(url)


class TestBranchHelpers:
    """Tests for branch naming and validation."""

    def test_branch_name_for_task(self):
        assert branch_name_for("abc-123") == "autoclaude/task-abc-123"

    def test_valid_branch(self):
        validate_branch_name("autoclaude/task-abc_123")

    @pytest.mark.parametrize("name", ["", "feature branch", "x;rm", "a..b"])
    def test_invalid_branch(self, name):
        with pytest.raises(ValueError):
            validate_branch_name(name)

    @pytest.mark.parametrize(
        "url,name",
        [
            ("https://github.com/acme/widgets.git", "widgets"),
            ("https://github.com/acme/widgets", "widgets"),
            ("git@github.com:acme/gadgets.git", "gadgets"),
            ("https://github.com/acme/widgets/", "widgets"),
        ],
    )
    def test_repo_name_from_url(self, url, name):
        assert repo_name_from_url(url) == name


class TestCloneOrPull:
    """Tests for clone_or_pull()."""

    def test_fresh_clone(self, workspace, runner, tmp_path):
        work_dir = workspace.clone_or_pull("https://github.com/acme/widgets", "t1")

        assert work_dir == tmp_path / "work" / "t1" / "widgets"
        assert work_dir.parent.is_dir()
        assert runner.argvs() == [
            ["git", "clone", "https://github.com/acme/widgets", str(work_dir)]
        ]

    def test_git_commands_use_isolated_env(self, workspace, runner):
        workspace.clone_or_pull("https://github.com/acme/widgets", "t1")

        env = runner.calls[0].env
        assert env["GIT_TERMINAL_PROMPT"] == "0"
        assert env["HUSKY"] == "0"
        assert runner.calls[0].timeout == 30

    def test_existing_checkout_is_pulled(self, workspace, runner, tmp_path):
        work_dir = tmp_path / "work" / "t1" / "widgets"
        (work_dir / ".git").mkdir(parents=True)
        runner.script(["git", "symbolic-ref"], stdout="origin/trunk\n")

        assert workspace.clone_or_pull("https://github.com/acme/widgets", "t1") == work_dir

        assert runner.called(["git", "checkout", "trunk"])
        assert runner.called(["git", "pull"])
        assert not runner.called(["git", "clone"])

    def test_broken_workspace_is_recloned(self, workspace, runner, tmp_path):
        work_dir = tmp_path / "work" / "t1" / "widgets"
        work_dir.mkdir(parents=True)
        (work_dir / "stray.txt").write_text("left over")

        workspace.clone_or_pull("https://github.com/acme/widgets", "t1")

        assert not (work_dir / "stray.txt").exists()
        assert runner.called(["git", "clone"])

    def test_invalid_url_runs_nothing(self, workspace, runner):
        with pytest.raises(ValueError, match="Invalid repository URL"):
            workspace.clone_or_pull("ssh://internal/repo", "t1")
        assert runner.calls == []

    def test_clone_failure_raises(self, workspace, runner):
        runner.script(["git", "clone"], returncode=128, stderr="fatal: repository not found")

        with pytest.raises(CommandError, match="repository not found"):
            workspace.clone_or_pull("https://github.com/acme/widgets", "t1")

    def test_unsafe_task_id_rejected(self, workspace):
        with pytest.raises(ValueError):
            workspace.clone_or_pull("https://github.com/acme/widgets", "../escape")


class TestDefaultBranch:
    """Tests for get_default_branch()."""

    def test_from_origin_head(self, workspace, runner, tmp_path):
        runner.script(["git", "symbolic-ref"], stdout="origin/main\n")
        assert workspace.get_default_branch(tmp_path) == "main"

    def test_checks_known_branches(self, workspace, runner, tmp_path):
        runner.script(["git", "symbolic-ref"], returncode=128)
        runner.script(["git", "rev-parse"], returncode=128)
        runner.script(["git", "rev-parse", "--verify", "origin/master"], returncode=0)

        assert workspace.get_default_branch(tmp_path) == "master"

    def test_falls_back_to_main(self, workspace, runner, tmp_path):
        runner.script(["git", "symbolic-ref"], returncode=128)
        runner.script(["git", "rev-parse"], returncode=128)

        assert workspace.get_default_branch(tmp_path) == "main"


class TestBranches:
    """Tests for create_branch() and checkout_branch()."""

    def test_create_branch(self, workspace, runner, tmp_path):
        workspace.create_branch(tmp_path, "autoclaude/task-1")
        assert runner.argvs() == [["git", "checkout", "-b", "autoclaude/task-1"]]

    def test_create_branch_replaces_leftover(self, workspace, runner, tmp_path):
        attempts = []
        runner.script(["git", "symbolic-ref"], stdout="origin/main\n")
        runner.script(
            ["git", "checkout", "-b"],
            returncode=128,
            stderr="already exists",
            side_effect=attempts.append,
        )

        # Every `checkout -b` is scripted to fail, so the retry raises too
        with pytest.raises(CommandError):
            workspace.create_branch(tmp_path, "autoclaude/task-1")

        assert runner.called(["git", "checkout", "main"])
        assert runner.called(["git", "branch", "-D", "autoclaude/task-1"])
        assert len(attempts) == 2

    def test_create_branch_rejects_bad_name(self, workspace, runner, tmp_path):
        with pytest.raises(ValueError):
            workspace.create_branch(tmp_path, "bad name")
        assert runner.calls == []

    def test_checkout_existing_branch(self, workspace, runner, tmp_path):
        workspace.checkout_branch(tmp_path, "autoclaude/task-1")

        assert runner.argvs() == [
            ["git", "fetch", "origin", "autoclaude/task-1"],
            ["git", "checkout", "autoclaude/task-1"],
            ["git", "pull", "--rebase", "origin", "autoclaude/task-1"],
        ]

    def test_pull_failure_is_tolerated(self, workspace, runner, tmp_path):
        runner.script(["git", "pull"], returncode=1, stderr="conflict")
        workspace.checkout_branch(tmp_path, "autoclaude/task-1")

    def test_missing_remote_branch_raises(self, workspace, runner, tmp_path):
        runner.script(["git", "checkout"], returncode=1, stderr="pathspec did not match")

        with pytest.raises(CommandError):
            workspace.checkout_branch(tmp_path, "autoclaude/task-1")


class TestCommitAndPush:
    """Tests for commit_and_push()."""

    def test_no_staged_changes(self, workspace, runner, tmp_path):
        result = workspace.commit_and_push(tmp_path, "msg", "autoclaude/task-1")

        assert result.committed is False
        assert not runner.called(["git", "commit"])
        assert not runner.called(["git", "push"])

    def test_commits_and_pushes(self, workspace, runner, tmp_path):
        runner.script(["git", "diff", "--staged", "--quiet"], returncode=1)

        result = workspace.commit_and_push(tmp_path, "Add endpoint", "autoclaude/task-1")

        assert result.committed is True
        assert runner.argvs()[-2:] == [
            ["git", "commit", "-m", "Add endpoint"],
            ["git", "push", "-u", "origin", "autoclaude/task-1"],
        ]

    def test_push_failure_raises(self, workspace, runner, tmp_path):
        runner.script(["git", "diff", "--staged", "--quiet"], returncode=1)
        runner.script(["git", "push"], returncode=1, stderr="permission denied")

        with pytest.raises(CommandError, match="permission denied"):
            workspace.commit_and_push(tmp_path, "msg", "autoclaude/task-1")

    def test_forced_push_replaces_branch_from_earlier_attempt(self, workspace, runner, tmp_path):
        """A retry rebuilds the branch, so its push must overwrite the remote one."""
        runner.script(["git", "diff", "--staged", "--quiet"], returncode=1)

        workspace.commit_and_push(tmp_path, "msg", "autoclaude/task-1", force=True)

        assert runner.argvs()[-1] == [
            "git", "push", "--force-with-lease", "-u", "origin", "autoclaude/task-1",
        ]

    def test_unforced_push_is_fast_forward_only(self, workspace, runner, tmp_path):
        runner.script(["git", "diff", "--staged", "--quiet"], returncode=1)

        workspace.commit_and_push(tmp_path, "msg", "autoclaude/task-1")

        assert not any("--force-with-lease" in argv for argv in runner.argvs())


class TestCleanup:
    """Tests for cleanup()."""

    def test_removes_task_directory(self, workspace, tmp_path):
        task_dir = tmp_path / "work" / "t1" / "widgets"
        task_dir.mkdir(parents=True)

        workspace.cleanup("t1")

        assert not (tmp_path / "work" / "t1").exists()

    def test_missing_directory_is_fine(self, workspace):
        workspace.cleanup("never-created")
