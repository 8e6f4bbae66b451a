"""Turn process attributes into selectable candidates."""

import logging
from collections.abc import Callable, Iterable

from procpick.info import process_attributes
from procpick.models import Candidate, ProcessAttributes

logger = logging.getLogger(__name__)

LABEL_TEMPLATE = (
    "{command} ({pid})\n"
    "  {args}\n"
    "  state {state}  nice {nice}  user {user}  mem {memory}  time {elapsed}"
)


def format_candidate(pid: int, attrs: ProcessAttributes) -> Candidate:
    """Render a multi-line label for ``pid``."""
    label = LABEL_TEMPLATE.format(
        pid=pid,
        command=attrs.command or "",
        args=attrs.args or "",
        state=attrs.state or "",
        nice=attrs.nice or "",
        user=attrs.user or "",
        memory=attrs.memory or "",
        elapsed=attrs.elapsed or "",
    )
    return Candidate(label=label, pid=pid)


def build_candidates(
    pids: Iterable[int],
    attributes: Callable[[int], ProcessAttributes | None] = process_attributes,
) -> list[Candidate]:
    """
    Build candidates for ``pids``, ordered by PID.

    Processes whose attributes cannot be read (they exited after the lookup)
    are left out.
    """
    candidates: list[Candidate] = []
    for pid in sorted(pids):
        attrs = attributes(pid)
        if attrs is None:
            logger.debug("Skipping vanished process %d", pid)
            continue
        candidates.append(format_candidate(pid, attrs))
    return candidates
