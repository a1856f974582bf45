"""DAG validation and cycle detection."""

from typing import Dict, List, Set, Sequence
from shared.constants import MAX_NODES_PER_WORKFLOW
from shared.exceptions import GraphInvalidError
from shared.types import WorkflowNode, WorkflowEdge


def validate_graph(nodes: Sequence[WorkflowNode], edges: Sequence[WorkflowEdge]) -> None:
    """Raises GraphInvalidError naming the first rule the graph violates"""
    if not nodes:
        raise GraphInvalidError("empty", "Workflow must contain at least one node")

    if len(nodes) > MAX_NODES_PER_WORKFLOW:
        raise GraphInvalidError(
            "too_large",
            f"Workflow exceeds maximum node limit: {len(nodes)} > {MAX_NODES_PER_WORKFLOW}"
        )

    node_ids: Set[str] = set()
    for node in nodes:
        if node.id in node_ids:
            raise GraphInvalidError("duplicate_node", f"Duplicate node ID: {node.id}", node_id=node.id)
        node_ids.add(node.id)

    seen_pairs = set()
    for edge in edges:
        for endpoint in (edge.source, edge.target):
            if endpoint not in node_ids:
                raise GraphInvalidError(
                    "dangling_edge",
                    f"Edge '{edge.id}' references non-existent node '{endpoint}'",
                    edge_id=edge.id
                )
        pair = (edge.source, edge.target)
        if pair in seen_pairs:
            raise GraphInvalidError(
                "duplicate_edge",
                f"More than one edge from '{edge.source}' to '{edge.target}'",
                edge_id=edge.id
            )
        seen_pairs.add(pair)

    # A lone node that is both root and input needs no edges
    if len(nodes) == 1 and not edges and nodes[0].is_root and nodes[0].is_input:
        return

    connected = {e.source for e in edges} | {e.target for e in edges}

    if not any(n.is_root and n.id in connected for n in nodes):
        raise GraphInvalidError("no_sink", "Workflow must have a root node connected to the graph")

    inputs = [n for n in nodes if n.is_input]
    if not inputs:
        raise GraphInvalidError("no_inputs", "Workflow must have at least one input node")

    for node in inputs:
        if node.id not in connected:
            raise GraphInvalidError(
                "disconnected_input",
                f"Input node '{node.name}' is not connected to any other node",
                node_id=node.id
            )

    adjacency: Dict[str, List[str]] = {nid: [] for nid in node_ids}
    for edge in edges:
        adjacency[edge.source].append(edge.target)

    if has_cycle(adjacency, node_ids):
        raise GraphInvalidError("cycle", "Workflow contains a cycle")


def is_valid_dag(nodes: Sequence[WorkflowNode], edges: Sequence[WorkflowEdge]) -> bool:
    try:
        validate_graph(nodes, edges)
    except GraphInvalidError:
        return False
    return True


def is_runnable(nodes: Sequence[WorkflowNode]) -> bool:
    return all(bool(n.container_image) for n in nodes)


def has_cycle(adjacency: Dict[str, List[str]], node_ids: Set[str]) -> bool:
    """Depth-first search with a recursion-stack set; any back edge is a cycle"""
    visited: Set[str] = set()

    for start in sorted(node_ids):
        if start in visited:
            continue

        on_stack = {start}
        stack = [(start, iter(adjacency.get(start, [])))]
        visited.add(start)

        while stack:
            node_id, children = stack[-1]
            child = next(children, None)

            if child is None:
                stack.pop()
                on_stack.discard(node_id)
                continue

            if child in on_stack:
                return True

            if child not in visited:
                visited.add(child)
                on_stack.add(child)
                stack.append((child, iter(adjacency.get(child, []))))

    return False
