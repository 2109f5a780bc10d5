"""
Point in time probes of the Postfix installation: queue depths, master process status
and version. These hold no state and are evaluated on every collection.
"""
import logging
import os
import subprocess
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from postfix_exporter.exposition import Sample

__all__ = [
    "QUEUES",
    "queue_sizes",
    "master_process",
    "postfix_version",
    "gauge_samples",
]

logger = logging.getLogger(__name__)

QUEUES = ("incoming", "maildrop", "active", "deferred", "hold", "corrupt")
MASTER_PROCESS_NAME = "master"
COMMAND_TIMEOUT = 5


def queue_sizes(queue_root: Path) -> Optional[Dict[str, int]]:
    """
    Count the queued message files of each queue below ``queue_root``.

    Returns ``None`` when the queue root does not exist. A missing queue counts as empty.
    """
    queue_root = Path(queue_root)
    if not queue_root.is_dir():
        logger.warning(f"Postfix queue directory not found: {queue_root}")
        return None
    return {queue: _count_files(queue_root / queue) for queue in QUEUES}


def _count_files(directory: Path) -> int:
    count = 0
    for _, _, file_names in os.walk(directory):
        count += len(file_names)
    return count


def _run(*command: str) -> Optional[str]:
    try:
        output = subprocess.check_output(
            command,
            stderr=subprocess.DEVNULL,
            timeout=COMMAND_TIMEOUT,
        )
    except FileNotFoundError:
        logger.debug(f"Command not found: {command[0]}")
        return None
    except (subprocess.CalledProcessError, subprocess.TimeoutExpired) as e:
        logger.debug(f"Command failed: {' '.join(command)}: {e}")
        return None
    return output.decode("utf-8", errors="replace").strip()


def master_process() -> Tuple[bool, int]:
    """
    Status of the Postfix master process.

    Returns
    -------
    Whether the process runs, and its uptime in seconds (0 when not running)

    """
    output = _run("pgrep", "-x", MASTER_PROCESS_NAME)
    if not output:
        return False, 0
    pid = output.splitlines()[0].strip()
    uptime = _run("ps", "-p", pid, "-o", "etimes=")
    if uptime is None or not uptime.isdigit():
        return True, 0
    return True, int(uptime)


def postfix_version() -> Optional[str]:
    """Value of ``mail_version`` reported by ``postconf``, or None if unavailable."""
    output = _run("postconf", "-d", "mail_version")
    if not output:
        return None
    _, _, version = output.partition("=")
    return version.strip() or "unknown"


def gauge_samples(queue_root: Path) -> List[Sample]:
    running, uptime = master_process()
    samples = [
        Sample("master_process_running", int(running)),
        Sample("master_process_uptime_seconds", uptime),
    ]

    version = postfix_version()
    if version is not None:
        samples.append(Sample("version_info", 1, {"version": version}))

    sizes = queue_sizes(queue_root)
    if sizes is not None:
        samples.extend(
            Sample("queue_size", size, {"queue": queue}) for queue, size in sizes.items()
        )
    return samples
