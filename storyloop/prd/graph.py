"""
Dependency graph over stories.

PRD-level dependencies are expanded into story edges: every story of a
PRD depends on every story of each PRD it declares as a dependency. The
graph must be acyclic; `check_acyclic` fails fast before any scheduling.
"""

import logging

from storyloop.lib.errors import CyclicDependency, UnknownDependency
from storyloop.prd.models import PRD, index_prds, index_stories

logger = logging.getLogger(__name__)


def check_references(prds: list[PRD]) -> None:
    """Raise UnknownDependency for any dangling story or PRD reference."""
    stories = index_stories(prds)
    prd_map = index_prds(prds)

    for prd in prds:
        for dep in prd.dependencies:
            if dep not in prd_map:
                raise UnknownDependency(prd.id, dep)
        for story in prd.stories:
            for dep in story.dependencies:
                if dep not in stories:
                    raise UnknownDependency(story.id, dep)


def build_edges(prds: list[PRD]) -> dict[str, list[str]]:
    """Build story id -> ordered list of story ids it depends on."""
    prd_map = index_prds(prds)
    edges: dict[str, list[str]] = {}

    for prd in prds:
        inherited = []
        for dep_prd in prd.dependencies:
            inherited.extend(s.id for s in prd_map[dep_prd].stories)
        for story in prd.stories:
            deps = list(story.dependencies)
            deps.extend(d for d in inherited if d not in deps)
            edges[story.id] = deps

    return edges


def _check_prd_cycles(prds: list[PRD]) -> None:
    # A PRD cycle made of empty PRDs has no story edges, so check PRDs too
    graph = {prd.id: list(prd.dependencies) for prd in prds}
    cycle = _find_cycle(graph)
    if cycle:
        raise CyclicDependency(cycle)


def _find_cycle(graph: dict[str, list[str]]) -> list[str] | None:
    """Return one cycle as a closed path, or None. Iterative DFS."""
    WHITE, GREY, BLACK = 0, 1, 2
    color = {node: WHITE for node in graph}

    for root in graph:
        if color[root] != WHITE:
            continue
        path = [root]
        stack = [iter(graph[root])]
        color[root] = GREY
        while stack:
            node = path[-1]
            child = next(stack[-1], None)
            if child is None:
                color[node] = BLACK
                path.pop()
                stack.pop()
                continue
            if color.get(child, BLACK) == GREY:
                start = path.index(child)
                return path[start:] + [child]
            if color.get(child) == WHITE:
                color[child] = GREY
                path.append(child)
                stack.append(iter(graph[child]))

    return None


def check_acyclic(prds: list[PRD]) -> None:
    """Raise CyclicDependency if stories or PRDs depend on themselves."""
    _check_prd_cycles(prds)
    cycle = _find_cycle(build_edges(prds))
    if cycle:
        raise CyclicDependency(cycle)


def validate_graph(prds: list[PRD]) -> None:
    """Run all structural checks. Call once after loading."""
    check_references(prds)
    check_acyclic(prds)
    logger.debug(f"[GRAPH] {len(index_stories(prds))} stories, graph is acyclic")


def transitive_dependents(prds: list[PRD], story_id: str) -> set[str]:
    """All story ids that directly or transitively depend on story_id."""
    reverse: dict[str, list[str]] = {}
    for sid, deps in build_edges(prds).items():
        for dep in deps:
            reverse.setdefault(dep, []).append(sid)

    seen: set[str] = set()
    frontier = [story_id]
    while frontier:
        current = frontier.pop()
        for child in reverse.get(current, []):
            if child not in seen:
                seen.add(child)
                frontier.append(child)
    return seen
