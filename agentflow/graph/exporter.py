"""Mermaid rendering of a workflow's event routing."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from agentflow.graph.executor import Workflow


class MermaidExporter:
    """
    Renders ``Event --> Node`` edges from the routing table and
    ``Node --> Event`` edges from each node's declared ``emits``.
    """

    def export(self, workflow: Workflow) -> str:
        lines = ["graph TD"]
        seen: set[str] = set()

        def add(edge: str) -> None:
            if edge not in seen:
                seen.add(edge)
                lines.append(f"    {edge}")

        for event_type, node in workflow.event_node_map().items():
            add(f"{event_type.__name__} --> {node.name}")
            for produced in node.emits:
                add(f"{node.name} --> {produced.__name__}")

        return "\n".join(lines) + "\n"
