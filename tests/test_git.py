"""Git pickers and the stock git actions.

Pure parsing tests run everywhere; the repository tests need a ``git``
binary and build a throwaway repository per test.
"""

from __future__ import annotations

import re
import shutil
import subprocess
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from lazypick import actions
from lazypick.config import GIT_ICONS, FinderOptions, normalize_options, provider_defaults
from lazypick.entry import NBSP, ansi_color, strip_ansi
from lazypick.errors import NoRepository
from lazypick.finder import FinderResult
from lazypick.providers import git
from lazypick.registry import CallbackRegistry
from lazypick.shell import ShellBridge

from fakes import FakeFinder, bridge_callback_id, flag_value

_EXECUTE_RE = re.compile(r"execute-silent\((.*?)\)\+reload\((.*)\)$")


class StatusTransformTests(unittest.TestCase):
    def setUp(self) -> None:
        self.transform = git.status_transform(FinderOptions(icons=GIT_ICONS))

    def test_modified_in_worktree(self) -> None:
        self.assertEqual(self.transform(" M a.txt"), f" {NBSP}M{NBSP}{NBSP}a.txt")

    def test_untracked_has_blank_staged_column(self) -> None:
        self.assertEqual(self.transform("?? new file.txt"), f" {NBSP}?{NBSP}{NBSP}new file.txt")

    def test_rename_keeps_both_paths(self) -> None:
        self.assertEqual(self.transform("R  old.txt -> new.txt"), f"R{NBSP} {NBSP}{NBSP}old.txt -> new.txt")

    def test_quoted_paths_are_unquoted(self) -> None:
        self.assertEqual(self.transform('A  "with space.txt"'), f"A{NBSP} {NBSP}{NBSP}with space.txt")

    def test_colored_icons(self) -> None:
        transform = git.status_transform(FinderOptions(icons=GIT_ICONS, color_icons=True))
        line = transform("MM a.txt")
        self.assertTrue(line.startswith(ansi_color("green", "M")))
        self.assertIn(ansi_color("yellow", "M"), line)
        self.assertEqual(strip_ansi(line), f"M{NBSP}M{NBSP}{NBSP}a.txt")

    def test_short_lines_pass_through(self) -> None:
        self.assertEqual(self.transform("## "), "## ")


class ActionParsingTests(unittest.TestCase):
    def test_status_entry_path(self) -> None:
        self.assertEqual(actions.status_entry_path(f" {NBSP}M{NBSP}{NBSP}a.txt"), "a.txt")
        self.assertEqual(actions.status_entry_path(f"R{NBSP} {NBSP}{NBSP}old.txt -> new.txt"), "new.txt")
        self.assertEqual(actions.status_entry_path("?? raw.txt"), "raw.txt")

    def test_status_paths_skips_empty_entries(self) -> None:
        self.assertEqual(actions.status_paths([f"A{NBSP} {NBSP}{NBSP}b.txt", ""]), ["b.txt"])

    def test_commit_hashes(self) -> None:
        line = f"{ansi_color('yellow', 'abc1234')} (2 days ago) Fix parser <dev>"
        self.assertEqual(actions.commit_hashes([line, ""]), ["abc1234"])

    def test_branch_name_variants(self) -> None:
        self.assertEqual(actions.branch_name("* main"), "main")
        self.assertEqual(actions.branch_name("  feature/x"), "feature/x")
        self.assertEqual(actions.branch_name("  remotes/origin/dev"), "remotes/origin/dev")
        self.assertEqual(actions.branch_name("  remotes/origin/HEAD -> origin/main"), "remotes/origin/HEAD")
        self.assertEqual(actions.branch_name("* (HEAD detached at origin/dev)"), "origin/dev")
        self.assertEqual(actions.branch_name(ansi_color("green", "* main")), "main")

    def test_selected_lines_strips_color(self) -> None:
        self.assertEqual(actions.selected_lines([ansi_color("red", "x")]), ["x"])

    def test_as_action(self) -> None:
        action = actions.Action(actions.selected_lines, "pick")
        self.assertIs(actions.as_action(action), action)
        self.assertEqual(actions.as_action(actions.selected_lines), actions.Action(actions.selected_lines))
        with self.assertRaises(TypeError):
            actions.as_action("not callable")  # type: ignore[arg-type]


class GitCwdArgsTests(unittest.TestCase):
    def test_outside_repository_returns_none(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            with mock.patch("lazypick.providers.git.git_root", side_effect=NoRepository(tmp)):
                with self.assertLogs("lazypick.providers.git", level="WARNING"):
                    self.assertIsNone(git.set_git_cwd_args(FinderOptions(cwd=tmp, cmd="git status")))

    def test_git_dir_is_injected_into_command(self) -> None:
        with mock.patch("lazypick.providers.git.git_root", return_value=Path("/srv/repo")):
            options = git.set_git_cwd_args(FinderOptions(cmd="git log", git_dir="/srv/bare.git"))
        assert options is not None
        self.assertEqual(options.cwd, "/srv/repo")
        self.assertEqual(options.cmd, "git --git-dir /srv/bare.git log")


def _git(root: Path, *args: str) -> str:
    return subprocess.run(
        ["git", *args],
        cwd=root,
        check=True,
        stdout=subprocess.PIPE,
        text=True,
    ).stdout


@unittest.skipIf(shutil.which("git") is None, "git is required for repository tests")
class GitRepositoryTests(unittest.TestCase):
    def setUp(self) -> None:
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.root = Path(tmp.name).resolve()
        _git(self.root, "init", "-q")
        _git(self.root, "config", "user.email", "tests@example.com")
        _git(self.root, "config", "user.name", "Tests")
        (self.root / "a.txt").write_text("original\n", encoding="utf-8")
        _git(self.root, "add", "-A")
        _git(self.root, "commit", "-q", "-m", "initial")
        (self.root / "a.txt").write_text("changed\n", encoding="utf-8")
        (self.root / "b.txt").write_text("new\n", encoding="utf-8")

        config_patcher = mock.patch("lazypick.config.CONFIG_PATH", self.root / ".no-config.json")
        config_patcher.start()
        self.addCleanup(config_patcher.stop)
        self.registry = CallbackRegistry()
        self.bridge = ShellBridge(self.registry)
        self.addCleanup(self.bridge.stop)

    @staticmethod
    def _line_for(lines: list[str], path: str) -> str:
        return next(line for line in lines if strip_ansi(line).endswith(path))

    def test_status_lists_previews_stages_and_returns_paths(self) -> None:
        observed: dict[str, object] = {}

        def on_run(finder: FakeFinder, args: list[str]) -> None:
            lines = finder.calls[-1].lines
            line_a = self._line_for(lines, "a.txt")
            line_b = self._line_for(lines, "b.txt")

            preview = flag_value(args, "--preview")
            assert preview is not None
            observed["preview"] = strip_ansi(self.registry.invoke(bridge_callback_id(preview), ["", line_a]) or "")

            stage = next(arg for arg in args if arg.startswith("--bind=right:"))
            match = _EXECUTE_RE.search(stage)
            assert match is not None
            self.registry.invoke(bridge_callback_id(match.group(1)), ["", line_b])
            observed["reloaded"] = strip_ansi(
                self.registry.invoke(bridge_callback_id(match.group(2)), [""]) or ""
            )
            observed["header"] = strip_ansi(flag_value(args, "--header") or "")

        finder = FakeFinder(
            choose=lambda lines: FinderResult("", "", (self._line_for(lines, "b.txt"),)),
            on_run=on_run,
        )
        session = git.status({"cwd": str(self.root)}, finder=finder, bridge=self.bridge)

        assert session is not None
        self.assertEqual(session.action_result, ["b.txt"])
        self.assertEqual(len(finder.calls[0].lines), 2)
        self.assertIn("+changed", observed["preview"])
        self.assertIn(f"A{NBSP} {NBSP}{NBSP}b.txt", observed["reloaded"])
        self.assertIn("<right> to stage", observed["header"])
        self.assertEqual(_git(self.root, "diff", "--cached", "--name-only").split(), ["b.txt"])
        self.assertEqual(len(self.registry), 0)

    def test_status_preview_diffs_paths_with_spaces(self) -> None:
        spaced = self.root / "my file.txt"
        spaced.write_text("one\n", encoding="utf-8")
        _git(self.root, "add", "--", "my file.txt")
        _git(self.root, "commit", "-q", "-m", "spaced")
        spaced.write_text("one\ntwo\n", encoding="utf-8")

        options = normalize_options({"cwd": str(self.root)}, provider_defaults("git.status"))
        assert options is not None
        preview = git.status_preview(options, options.preview)
        output = strip_ansi(preview([f" {NBSP}M{NBSP}{NBSP}my file.txt"]) or "")

        self.assertIn("+two", output)
        self.assertIn("my file.txt", output)

    def test_unstage_and_reset_actions(self) -> None:
        options = FinderOptions(cwd=str(self.root))
        line_b = f"A{NBSP} {NBSP}{NBSP}b.txt"
        line_a = f" {NBSP}M{NBSP}{NBSP}a.txt"

        actions.git_stage([line_b], options)
        actions.git_unstage([line_b], options)
        self.assertEqual(_git(self.root, "diff", "--cached", "--name-only"), "")

        actions.git_reset([line_a], options)
        self.assertEqual((self.root / "a.txt").read_text(encoding="utf-8"), "original\n")

    def test_failed_git_action_is_logged(self) -> None:
        with self.assertLogs("lazypick.actions", level="WARNING"):
            actions.git_stage([f" {NBSP}?{NBSP}{NBSP}missing.txt"], FinderOptions(cwd=str(self.root)))

    def test_commits_returns_hash_of_selected_commit(self) -> None:
        finder = FakeFinder(choose=lambda lines: FinderResult("", "", (lines[0],)))
        session = git.commits({"cwd": str(self.root)}, finder=finder, bridge=self.bridge)

        assert session is not None
        head = _git(self.root, "rev-parse", "HEAD").strip()
        self.assertEqual(len(session.action_result), 1)
        self.assertTrue(head.startswith(session.action_result[0]))
        preview = flag_value(finder.calls[0].args, "--preview")
        assert preview is not None
        self.assertIn(f"git -C {self.root}", preview)

    def test_branches_switches_to_selected_branch(self) -> None:
        _git(self.root, "stash", "-u", "-q")
        _git(self.root, "branch", "feature")
        finder = FakeFinder(choose=lambda lines: FinderResult("", "", (self._line_for(lines, "feature"),)))
        session = git.branches({"cwd": str(self.root)}, finder=finder, bridge=self.bridge)

        assert session is not None
        self.assertEqual(session.action_result, "feature")
        self.assertEqual(_git(self.root, "rev-parse", "--abbrev-ref", "HEAD").strip(), "feature")
        self.assertIn("--no-multi", finder.calls[0].args)

    def test_outside_repository_spawns_nothing(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            finder = FakeFinder()
            with mock.patch("lazypick.providers.git.git_root", side_effect=NoRepository(tmp)):
                with self.assertLogs("lazypick.providers.git", level="WARNING"):
                    self.assertIsNone(git.status({"cwd": tmp}, finder=finder, bridge=self.bridge))
            self.assertEqual(finder.calls, [])


if __name__ == "__main__":
    unittest.main()
