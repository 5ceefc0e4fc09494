import logging
import os
import shutil
import subprocess
from enum import Enum

import libtmux
from libtmux import exc as tmux_exc
from libtmux.common import tmux_cmd

from project_switcher.models import PathRecord

logger = logging.getLogger(__name__)

# Cached server reference; libtmux.Server() is cheap but there is no need to rebuild it.
_server: libtmux.Server | None = None

# tmux silently rewrites these characters in session names.
_UNSAFE_NAME_CHARS = str.maketrans({".": "_", ":": "_"})


def _get_server() -> libtmux.Server:
    global _server
    if _server is None:
        _server = libtmux.Server()
    return _server


class MultiplexerError(Exception):
    """A tmux invocation failed; carries tmux's own diagnostic output."""

    def __init__(self, command: str, output: str) -> None:
        self.command = command
        self.output = output
        super().__init__(f"tmux {command} failed: {output}" if output else f"tmux {command} failed")


class MultiplexerState(Enum):
    DETACHED = "detached"
    DETACHED_HAS_SESSION = "detached_has_session"
    ATTACHED_NO_SESSION = "attached_no_session"
    ATTACHED_HAS_SESSION = "attached_has_session"


class Action(Enum):
    CREATE = "create"
    SWITCH = "switch"
    ATTACH = "attach"


TRANSITIONS: dict[MultiplexerState, tuple[Action, ...]] = {
    MultiplexerState.DETACHED: (Action.CREATE, Action.ATTACH),
    MultiplexerState.DETACHED_HAS_SESSION: (Action.ATTACH,),
    MultiplexerState.ATTACHED_NO_SESSION: (Action.CREATE, Action.SWITCH),
    MultiplexerState.ATTACHED_HAS_SESSION: (Action.SWITCH,),
}


def check_prerequisites() -> list[str]:
    """Return install hints for missing tools; empty when everything is available."""
    missing = []
    if not shutil.which("tmux"):
        missing.append("tmux — install via: brew install tmux (macOS) or apt install tmux (Linux)")
    return missing


def tmux_session_name(session_name: str) -> str:
    """The name tmux will actually report for `session_name`."""
    return session_name.translate(_UNSAFE_NAME_CHARS)


def _stderr(proc: tmux_cmd) -> str:
    return "\n".join(line for line in proc.stderr if line)


def client_active() -> bool:
    """True when running inside a tmux client."""
    return bool(os.environ.get("TMUX"))


def server_running() -> bool:
    return _get_server().is_alive()


def list_sessions() -> dict[str, str]:
    """Map each session name to its start directory."""
    proc = _get_server().cmd("list-sessions", "-F", "#{session_name}\t#{session_path}")
    if proc.returncode:
        raise MultiplexerError("list-sessions", _stderr(proc))
    sessions = {}
    for line in proc.stdout:
        if not line:
            continue
        name, _, path = line.partition("\t")
        sessions[name] = path
    return sessions


def list_session_names() -> list[str]:
    return list(list_sessions())


def session_exists(name: str) -> bool:
    # has-session would prefix-match; only an exact name counts
    return name in list_session_names()


def create_session(name: str, start_directory: str) -> None:
    try:
        _get_server().new_session(session_name=name, start_directory=start_directory, attach=False)
    except tmux_exc.LibTmuxException as e:
        raise MultiplexerError("new-session", str(e)) from e


def switch_client(name: str) -> None:
    proc = _get_server().cmd("switch-client", "-t", f"={name}")
    if proc.returncode or _stderr(proc):
        raise MultiplexerError("switch-client", _stderr(proc))


def attach_session(name: str) -> None:
    """Attach this terminal to `name`; blocks until the client detaches."""
    result = subprocess.run(
        ["tmux", "attach-session", "-t", f"={name}"],
        stderr=subprocess.PIPE,
        text=True,
    )
    if result.returncode != 0:
        raise MultiplexerError("attach-session", result.stderr.strip())


def probe_state(name: str) -> MultiplexerState:
    if client_active():
        if session_exists(name):
            return MultiplexerState.ATTACHED_HAS_SESSION
        return MultiplexerState.ATTACHED_NO_SESSION
    if server_running() and session_exists(name):
        return MultiplexerState.DETACHED_HAS_SESSION
    return MultiplexerState.DETACHED


def plan_actions(state: MultiplexerState) -> tuple[Action, ...]:
    return TRANSITIONS[state]


def check_session_root(name: str, full_path: str, command: str = "switch-client") -> None:
    """Fail if session `name` already exists but was started in another directory.

    Distinct session names can collapse to one tmux name (`my.site` and
    `my_site`), so an existing session is only reused when its start
    directory is the selected project.
    """
    path = list_sessions().get(name)
    if path and os.path.realpath(path) != os.path.realpath(full_path):
        raise MultiplexerError(
            command,
            f"session {name} belongs to {path}, not {full_path}",
        )


def reconcile(record: PathRecord) -> tuple[Action, ...]:
    """Leave the user attached to the session for `record`, creating it only if absent.

    Returns the actions performed. Any failing tmux call raises
    MultiplexerError immediately; nothing is retried.
    """
    name = tmux_session_name(record.session_name)
    state = probe_state(name)
    actions = plan_actions(state)
    logger.debug(
        "Reconciling tmux session %s from state %s",
        name, state.value,
        extra={"session": name, "state": state.value},
    )
    if Action.CREATE not in actions:
        command = "attach-session" if Action.ATTACH in actions else "switch-client"
        check_session_root(name, record.full_path, command)
    for action in actions:
        logger.debug(
            "Running tmux %s for session %s",
            action.value, name,
            extra={"session": name, "action": action.value},
        )
        if action is Action.CREATE:
            create_session(name, record.full_path)
        elif action is Action.SWITCH:
            switch_client(name)
        elif action is Action.ATTACH:
            attach_session(name)
    return actions
