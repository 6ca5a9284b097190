"""Which lines of which files differ from the base ref, according to git."""

from __future__ import annotations

import re
import subprocess
from pathlib import Path

from mergewarn.errors import DiffError
from mergewarn.logging import get_logger

_log = get_logger("git.diff")

_HUNK_RE = re.compile(r"^@@ -(\d+)(?:,\d+)? \+(\d+)(?:,\d+)? @@")
_DEV_NULL = "/dev/null"


def _run_git(*args: str, cwd: Path) -> str:
    """Run a git command synchronously and return stdout, raising DiffError on failure."""
    try:
        proc = subprocess.run(
            ["git", *args],
            cwd=str(cwd),
            capture_output=True,
            check=False,
        )
    except (FileNotFoundError, NotADirectoryError) as exc:
        raise DiffError(f"cannot run git in {cwd}: {exc}") from exc
    if proc.returncode != 0:
        stderr = proc.stderr.decode(errors="replace").strip()
        raise DiffError(f"git {' '.join(args)} failed (rc={proc.returncode}): {stderr}")
    return proc.stdout.decode(errors="replace")


def _strip_prefix(path: str) -> str:
    """Turn ``a/foo.py`` / ``b/foo.py`` into ``foo.py``; keep /dev/null as-is."""
    path = path.split("\t", 1)[0]
    if path.startswith('"') and path.endswith('"'):
        path = path[1:-1]
    if path == _DEV_NULL:
        return path
    if path[:2] in ("a/", "b/"):
        return path[2:]
    return path


def parse_unified_diff(text: str) -> dict[str, set[int]]:
    """Parse ``git diff -U0`` output into ``{path: {line, ...}}``.

    Added lines contribute their post-image line number, removed lines
    their pre-image line number.  Files are keyed by their pre-image
    path, or the post-image path when the file is new.
    """
    edits: dict[str, set[int]] = {}
    old_path = new_path = ""
    old_no = new_no = 0
    in_hunk = False

    for line in text.splitlines():
        if line.startswith("diff --git "):
            in_hunk = False
            old_path = new_path = ""
            continue
        if not in_hunk and line.startswith("--- "):
            old_path = _strip_prefix(line[4:])
            continue
        if not in_hunk and line.startswith("+++ "):
            new_path = _strip_prefix(line[4:])
            continue
        m = _HUNK_RE.match(line)
        if m:
            old_no = int(m.group(1))
            new_no = int(m.group(2))
            in_hunk = True
            continue
        if not in_hunk or not line:
            continue

        path = old_path if old_path and old_path != _DEV_NULL else new_path
        if not path or path == _DEV_NULL:
            continue
        marker = line[0]
        if marker == "+":
            edits.setdefault(path, set()).add(new_no)
            new_no += 1
        elif marker == "-":
            edits.setdefault(path, set()).add(old_no)
            old_no += 1
        elif marker == " ":
            old_no += 1
            new_no += 1
        elif marker == "\\":
            # "\ No newline at end of file"
            continue
        else:
            in_hunk = False

    return edits


def current_branch(repo_dir: Path) -> str:
    """Return the checked-out branch name (``HEAD`` when detached)."""
    return _run_git("rev-parse", "--abbrev-ref", "HEAD", cwd=repo_dir).strip()


def get_changed_lines(
    repo_dir: Path,
    base_ref: str,
    target: str | None = None,
) -> dict[str, set[int]]:
    """Return ``{path: changed line numbers}`` between *base_ref* and *target*.

    With no *target* the base is compared against the working tree
    (staged and unstaged changes alike).
    """
    # Explicit prefixes so diff.noprefix / diff.mnemonicPrefix cannot change the path keys
    args = [
        "diff",
        "--no-color",
        "--no-ext-diff",
        "--src-prefix=a/",
        "--dst-prefix=b/",
        "-U0",
        base_ref,
    ]
    if target:
        args.append(target)
    args.append("--")
    return parse_unified_diff(_run_git(*args, cwd=repo_dir))


class GitDiffSource:
    """Computes the local edit-set input for one repository.

    ``diff_mode="workdir"`` always compares the base against the working
    tree.  ``diff_mode="branch"`` does so only while HEAD is the base
    branch; on any other branch it compares the base against that
    branch's committed tree.
    """

    def __init__(self, repo_dir: Path, base_branch: str = "master", diff_mode: str = "workdir"):
        self.repo_dir = Path(repo_dir)
        self.base_branch = base_branch
        self.diff_mode = diff_mode

    def branch(self) -> str:
        return current_branch(self.repo_dir)

    def changed_lines(self, branch: str | None = None) -> dict[str, set[int]]:
        branch = branch or self.branch()
        target = None
        if self.diff_mode == "branch" and branch not in (self.base_branch, "HEAD"):
            target = branch
        _log.debug(
            "diffing %s against %s in %s",
            target or "working tree",
            self.base_branch,
            self.repo_dir,
        )
        return get_changed_lines(self.repo_dir, self.base_branch, target)


def git_user_name(repo_dir: Path) -> str:
    """Return ``git config user.name`` for *repo_dir*, or '' when unset."""
    try:
        return _run_git("config", "user.name", cwd=repo_dir).strip()
    except DiffError:
        return ""
