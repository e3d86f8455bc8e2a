"""
Graph Definition for the StateGraph engine.

GraphBuilder accumulates nodes and transitions and fails fast on structural
errors. build() validates the declaration and freezes it into a
WorkflowGraph, which the executor only ever reads.
"""

from typing import Any, Callable, Dict, Hashable, List, Mapping, Optional, Set, Tuple, Union
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
import logging
import uuid

from stategraph.engine.node import Node, NodeHandler
from stategraph.exceptions import (
    CycleDetectedError,
    DuplicateNodeError,
    MissingEntryPointError,
    UnknownNodeError,
)


logger = logging.getLogger(__name__)


# Special target meaning "stop here"
END = "__END__"


class EdgeType(str, Enum):
    """Types of transitions between nodes."""
    DIRECT = "direct"            # Always follow this edge
    CONDITIONAL = "conditional"  # Choose based on condition


@dataclass(frozen=True)
class Edge:
    """An unconditional transition from source to target."""
    source: str
    target: str

    kind = EdgeType.DIRECT

    @property
    def targets(self) -> Tuple[str, ...]:
        return (self.target,)

    def to_dict(self) -> Dict[str, str]:
        return {
            "source": self.source,
            "target": self.target,
            "type": self.kind.value,
        }


@dataclass(frozen=True)
class ConditionalEdge:
    """
    A transition chosen at runtime.

    The condition receives the state produced by the source node and returns
    a route key. The routes mapping turns that key into a target node name.
    A key with no route ends the run.
    """
    source: str
    condition: Callable[[Any], Hashable]
    routes: Mapping[Hashable, str]

    kind = EdgeType.CONDITIONAL

    @property
    def targets(self) -> Tuple[str, ...]:
        return tuple(self.routes.values())

    def evaluate(self, state: Any) -> Tuple[Hashable, Optional[str]]:
        """Return the route key and its target (None if the key is unmapped)."""
        route_key = self.condition(state)
        return route_key, self.routes.get(route_key)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "condition": getattr(self.condition, "__name__", str(self.condition)),
            "routes": dict(self.routes),
            "type": self.kind.value,
        }


Transition = Union[Edge, ConditionalEdge]


@dataclass(frozen=True)
class WorkflowGraph:
    """
    A validated, read-only workflow graph.

    Produced by GraphBuilder.build(). Executing it never mutates it, so one
    instance can serve any number of concurrent runs.

    Attributes:
        graph_id: Unique identifier for this graph
        name: Human-readable name
        nodes: node_name -> Node
        edges: node_name -> outgoing transitions in declaration order
        entry_point: Name of the first node to execute
    """

    nodes: Mapping[str, Node]
    edges: Mapping[str, Tuple[Transition, ...]]
    entry_point: str
    graph_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    name: str = "Unnamed Workflow"
    description: str = ""

    def get_node(self, name: str) -> Optional[Node]:
        return self.nodes.get(name)

    def transitions(self, name: str) -> Tuple[Transition, ...]:
        return self.edges.get(name, ())

    def resolve_next(self, current_node: str, state: Any) -> Tuple[Optional[str], Optional[Hashable]]:
        """
        Get the next node to execute based on transitions and state.

        Only the first declared transition of a node is followed.

        Returns:
            (next node name or None to stop, route key for conditional edges)
        """
        transitions = self.transitions(current_node)
        if not transitions:
            return None, None

        transition = transitions[0]
        if isinstance(transition, ConditionalEdge):
            route_key, target = transition.evaluate(state)
            if target is None:
                logger.debug(
                    f"Route '{route_key}' from '{current_node}' has no target, stopping"
                )
        else:
            route_key, target = None, transition.target

        if target == END:
            target = None
        return target, route_key

    def reachable_nodes(self, start: Optional[str] = None) -> Set[str]:
        """Get all nodes reachable from start (defaults to the entry point)."""
        reachable: Set[str] = set()
        to_visit = [start or self.entry_point]

        while to_visit:
            name = to_visit.pop()
            if name in reachable or name == END or name not in self.nodes:
                continue
            reachable.add(name)
            for transition in self.transitions(name):
                to_visit.extend(transition.targets)

        return reachable

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the graph to a dictionary."""
        return {
            "graph_id": self.graph_id,
            "name": self.name,
            "description": self.description,
            "nodes": {name: node.to_dict() for name, node in self.nodes.items()},
            "edges": {
                name: [t.to_dict() for t in transitions]
                for name, transitions in self.edges.items()
            },
            "entry_point": self.entry_point,
        }

    def to_mermaid(self) -> str:
        """Generate a Mermaid diagram of the graph."""
        lines = ["graph TD"]

        for name in self.nodes:
            label = name.replace("_", " ").title()
            if name == self.entry_point:
                lines.append(f'    {name}(["{label}"])')
            else:
                lines.append(f'    {name}["{label}"]')

        if any(END in t.targets for ts in self.edges.values() for t in ts):
            lines.append(f'    {END}(("END"))')

        for source, transitions in self.edges.items():
            for transition in transitions:
                if isinstance(transition, ConditionalEdge):
                    for route_key, target in transition.routes.items():
                        lines.append(f"    {source} -->|{route_key}| {target}")
                else:
                    lines.append(f"    {source} --> {transition.target}")

        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"WorkflowGraph(name='{self.name}', nodes={list(self.nodes.keys())}, "
            f"entry='{self.entry_point}')"
        )


class GraphBuilder:
    """
    Fluent builder for workflow graphs.

    Every mutator validates its arguments immediately and returns the
    builder, so declarations read top to bottom:

        graph = (
            GraphBuilder(name="Review")
            .add_node("start", start)
            .add_node("end", finish)
            .add_edge("start", "end")
            .set_entry_point("start")
            .build()
        )
    """

    def __init__(self, name: str = "Unnamed Workflow", description: str = ""):
        self.name = name
        self.description = description
        self._nodes: Dict[str, Node] = {}
        self._edges: Dict[str, List[Transition]] = {}
        self._entry_point: Optional[str] = None

    @property
    def entry_point(self) -> Optional[str]:
        return self._entry_point

    @property
    def node_names(self) -> List[str]:
        return list(self._nodes.keys())

    def add_node(
        self,
        name: str,
        handler: NodeHandler,
        description: str = "",
        metadata: Optional[Mapping[str, Any]] = None
    ) -> "GraphBuilder":
        """
        Register a node.

        Raises:
            DuplicateNodeError: if a node with this name already exists
            ValueError: if the name is empty or reserved, or handler isn't callable
        """
        if name == END:
            raise ValueError(f"'{END}' is reserved and cannot be used as a node name")
        if name in self._nodes:
            raise DuplicateNodeError(name)

        self._nodes[name] = Node(
            name=name,
            handler=handler,
            description=description or getattr(handler, "__doc__", None) or "",
            metadata=metadata or {},
        )
        self._edges[name] = []
        return self

    def add_edge(self, source: str, target: str) -> "GraphBuilder":
        """
        Register an unconditional transition from source to target (or END).

        Raises:
            UnknownNodeError: if either endpoint was never added
        """
        self._require_node(source, "Source node")
        if target != END:
            self._require_node(target, "Target node")

        self._append(Edge(source=source, target=target))
        return self

    def add_conditional_edge(
        self,
        source: str,
        condition: Callable[[Any], Hashable],
        routes: Mapping[Hashable, str]
    ) -> "GraphBuilder":
        """
        Register a branch from source.

        The condition is opaque here; only the targets it can map to are
        checked.

        Raises:
            UnknownNodeError: if source or any route target is unknown
        """
        self._require_node(source, "Source node")
        if not callable(condition):
            raise ValueError(f"Condition for node '{source}' must be callable")

        for route_key, target in routes.items():
            if target != END:
                self._require_node(target, f"Target node for route '{route_key}'")

        self._append(ConditionalEdge(
            source=source,
            condition=condition,
            routes=MappingProxyType(dict(routes)),
        ))
        return self

    def set_entry_point(self, name: str) -> "GraphBuilder":
        """Mark the starting node. Raises UnknownNodeError if unknown."""
        self._require_node(name, "Entry point node")
        self._entry_point = name
        return self

    def validate(self) -> List[str]:
        """
        Check the declaration without raising.

        Returns:
            List of problems (empty if the graph would build cleanly)
        """
        errors = []

        if not self._entry_point:
            errors.append("Graph must have an entry point")

        cycle = self._find_cycle()
        if cycle:
            errors.append(f"Graph contains a cycle: {' -> '.join(cycle)}")

        unreachable = self._unreachable_nodes()
        if unreachable:
            errors.append(f"Unreachable nodes: {sorted(unreachable)}")

        return errors

    def build(self, graph_id: Optional[str] = None) -> WorkflowGraph:
        """
        Validate and freeze the graph.

        Raises:
            MissingEntryPointError: if no entry point was set
            CycleDetectedError: if any declared transition path loops
        """
        if not self._entry_point:
            raise MissingEntryPointError()

        cycle = self._find_cycle()
        if cycle:
            raise CycleDetectedError(cycle)

        unreachable = self._unreachable_nodes()
        if unreachable:
            logger.warning(
                f"Graph '{self.name}' has nodes unreachable from "
                f"'{self._entry_point}': {sorted(unreachable)}"
            )

        graph = WorkflowGraph(
            nodes=MappingProxyType(dict(self._nodes)),
            edges=MappingProxyType({
                name: tuple(transitions) for name, transitions in self._edges.items()
            }),
            entry_point=self._entry_point,
            graph_id=graph_id or str(uuid.uuid4()),
            name=self.name,
            description=self.description,
        )
        logger.debug(f"Built {graph!r}")
        return graph

    def _require_node(self, name: str, role: str) -> None:
        if name not in self._nodes:
            raise UnknownNodeError(name, role)

    def _append(self, transition: Transition) -> None:
        transitions = self._edges[transition.source]
        if transitions:
            logger.warning(
                f"Node '{transition.source}' already has an outgoing transition; "
                f"only the first one is followed at run time"
            )
        transitions.append(transition)

    def _successors(self, name: str) -> List[str]:
        return [
            target
            for transition in self._edges.get(name, [])
            for target in transition.targets
            if target != END
        ]

    def _find_cycle(self) -> Optional[List[str]]:
        """
        Iterative depth-first search over every declared transition.

        Starts from the entry point, then from any node not yet visited.

        Returns:
            The cycle as a path that starts and ends on the same node, or None
        """
        visited: Set[str] = set()
        in_progress: Set[str] = set()

        roots = list(self._nodes)
        if self._entry_point:
            roots.remove(self._entry_point)
            roots.insert(0, self._entry_point)

        for root in roots:
            if root in visited:
                continue

            path = [root]
            stack = [(root, iter(self._successors(root)))]
            visited.add(root)
            in_progress.add(root)

            while stack:
                name, children = stack[-1]
                for child in children:
                    if child in in_progress:
                        return path[path.index(child):] + [child]
                    if child not in visited:
                        visited.add(child)
                        in_progress.add(child)
                        path.append(child)
                        stack.append((child, iter(self._successors(child))))
                        break
                else:
                    stack.pop()
                    in_progress.discard(name)
                    path.pop()

        return None

    def _unreachable_nodes(self) -> Set[str]:
        if not self._entry_point:
            return set()

        reachable: Set[str] = set()
        to_visit = [self._entry_point]
        while to_visit:
            name = to_visit.pop()
            if name in reachable:
                continue
            reachable.add(name)
            to_visit.extend(self._successors(name))

        return set(self._nodes) - reachable
