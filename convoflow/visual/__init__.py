"""Flow designer document models and pure rule handlers."""

from .models import FlowDefinition, FlowEdge, FlowNode, FlowState, NodeType

__all__ = ["FlowDefinition", "FlowEdge", "FlowNode", "FlowState", "NodeType"]
