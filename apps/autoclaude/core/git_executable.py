"""
CLI Executable Finder and Git Isolation
=======================================

Locates the git, gh and claude executables and builds the isolated
environment used for git commands run inside task workspaces.
"""

import os
import shutil

# Git environment variables that would redirect workspace commands to another
# repository when the daemon itself runs under a git hook.
GIT_ENV_VARS_TO_CLEAR = [
    "GIT_DIR",
    "GIT_WORK_TREE",
    "GIT_INDEX_FILE",
    "GIT_OBJECT_DIRECTORY",
    "GIT_ALTERNATE_OBJECT_DIRECTORIES",
    "GIT_AUTHOR_NAME",
    "GIT_AUTHOR_EMAIL",
    "GIT_AUTHOR_DATE",
    "GIT_COMMITTER_NAME",
    "GIT_COMMITTER_EMAIL",
    "GIT_COMMITTER_DATE",
]

# Env var that overrides PATH lookup, per tool
EXECUTABLE_OVERRIDES = {
    "git": "GIT_PATH",
    "gh": "GITHUB_CLI_PATH",
    "claude": "CLAUDE_CLI_PATH",
}


def get_isolated_git_env(base_env: dict | None = None) -> dict:
    """
    Create an environment for git operations in a task workspace.

    Args:
        base_env: Base environment dict to copy from. If None, uses os.environ.

    Returns:
        Copy of the environment without inherited git variables, with
        repository hooks managed by husky disabled and interactive prompts off.
    """
    env = dict(base_env) if base_env is not None else os.environ.copy()

    for key in GIT_ENV_VARS_TO_CLEAR:
        env.pop(key, None)

    env["HUSKY"] = "0"
    # A credential prompt would block the poll loop until the command timeout
    env["GIT_TERMINAL_PROMPT"] = "0"

    return env


def find_executable(name: str, environ: dict | None = None) -> str:
    """
    Resolve a CLI executable.

    Priority order:
    1. Override env var (GIT_PATH, GITHUB_CLI_PATH, CLAUDE_CLI_PATH)
    2. shutil.which
    3. The bare name, leaving resolution to the OS
    """
    env = os.environ if environ is None else environ
    override_var = EXECUTABLE_OVERRIDES.get(name)
    if override_var:
        override = env.get(override_var)
        if override and os.path.isfile(override):
            return override

    return shutil.which(name) or name
