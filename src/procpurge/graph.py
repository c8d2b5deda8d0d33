"""Descendant discovery over a process table backend."""

from collections.abc import Collection

import structlog

from procpurge.backends import ProcessTableBackend

log = structlog.get_logger()


def resolve_descendants(
    backend: ProcessTableBackend,
    pid: int,
    exclude: Collection[int] = (),
) -> tuple[int, ...]:
    """
    Return every descendant of ``pid`` in depth-first discovery order.

    Each child is emitted before its own children, and a child's whole
    subtree is emitted before its next sibling. Reversing the result
    therefore lists every pid after all of its descendants, which is the
    order the terminator kills in.

    ``pid`` itself is never included and no pid appears twice. A branch
    whose lookup raises (the process vanished mid-walk) is skipped and its
    siblings are still expanded. Pids in ``exclude`` are neither emitted nor
    expanded, so their whole subtree is left out.
    """
    seen: set[int] = {pid, *exclude}
    ordered: list[int] = []
    # Stack of pending sibling iterators replaces recursion
    stack = [iter(_children(backend, pid))]

    while stack:
        child = next(stack[-1], None)
        if child is None:
            stack.pop()
            continue
        if child in seen:
            continue
        seen.add(child)
        ordered.append(child)
        stack.append(iter(_children(backend, child)))

    return tuple(ordered)


def _children(backend: ProcessTableBackend, pid: int) -> list[int]:
    try:
        return list(backend.list_child_pids(pid))
    except Exception as exc:
        log.debug("branch_skipped", pid=pid, error=str(exc))
        return []
