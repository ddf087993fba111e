"""Docker sandbox the shell session runs in.

The container mounts the host workspace at the configured workdir and idles
on ``tail -f /dev/null``; the shell actor attaches to it with ``docker exec``.
"""

import logging
import subprocess
from pathlib import Path
from typing import List, Optional, Tuple

from ..errors import SandboxError
from ..utils.config import AgentConfig

logger = logging.getLogger(__name__)


def shell_command(config: AgentConfig) -> Tuple[List[str], Optional[str]]:
    """Return the interpreter argv and host working directory for the shell actor."""
    sandbox = config.sandbox
    if not sandbox.enabled:
        return ["bash"], str(Path(config.workspace_path).resolve())
    # Host cwd "/" keeps docker from resolving paths inside a stale mount namespace.
    return ["docker", "exec", "-i", "-w", sandbox.workdir, sandbox.container_name, "bash", "-l"], "/"


def _docker(args: List[str], check: bool = False, timeout: Optional[float] = 120) -> subprocess.CompletedProcess:
    try:
        result = subprocess.run(["docker"] + args, capture_output=True, text=True, timeout=timeout)
    except FileNotFoundError as e:
        raise SandboxError("Docker CLI not found. Is Docker installed?") from e
    except subprocess.TimeoutExpired as e:
        raise SandboxError(f"docker {args[0]} timed out") from e
    if check and result.returncode != 0:
        raise SandboxError(f"docker {' '.join(args[:2])} failed: {result.stderr.strip()}")
    return result


def is_running(container_name: str) -> bool:
    result = _docker(["ps", "--filter", f"name={container_name}", "--format", "{{.Names}}"])
    return container_name in result.stdout.split()


def ensure_sandbox(config: AgentConfig) -> Path:
    """Start the sandbox container if needed and provision it.

    Returns:
        The absolute workspace path mounted into the container.
    """
    workspace = Path(config.workspace_path).expanduser()
    if not workspace.exists():
        workspace.mkdir(parents=True)
        logger.info("Created local workspace directory at %s", workspace)
    workspace = workspace.resolve()

    sandbox = config.sandbox
    if not sandbox.enabled:
        return workspace

    if not is_running(sandbox.container_name):
        # A stopped container with the same name would block `docker run`.
        _docker(["rm", "-f", sandbox.container_name])
        logger.info("Starting sandbox %s mapped to %s", sandbox.container_name, workspace)
        _docker(
            [
                "run", "-d",
                "--name", sandbox.container_name,
                "-v", f"{workspace}:{sandbox.workdir}",
                "-w", sandbox.workdir,
                sandbox.image,
                "tail", "-f", "/dev/null",
            ],
            check=True,
        )

    if sandbox.probe_command and sandbox.bootstrap_command:
        probe = _docker(["exec", sandbox.container_name, "bash", "-lc", sandbox.probe_command])
        if probe.returncode != 0:
            logger.info("Provisioning sandbox %s", sandbox.container_name)
            setup = _docker(
                ["exec", sandbox.container_name, "bash", "-lc", sandbox.bootstrap_command],
                timeout=None,
            )
            if setup.returncode != 0:
                logger.warning("Sandbox bootstrap failed: %s", setup.stderr.strip()[-500:])

    return workspace


def restart_sandbox(config: AgentConfig) -> Path:
    """Replace the container so it mounts the current workspace."""
    if config.sandbox.enabled:
        _docker(["rm", "-f", config.sandbox.container_name])
    return ensure_sandbox(config)
