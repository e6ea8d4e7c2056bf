"""Graph nodes. Each node takes the current RunState and returns a partial state patch."""

from api.orchestrators.nodes.citation_builder import citation_builder_node
from api.orchestrators.nodes.clarify import clarify_node
from api.orchestrators.nodes.classifier import ClassifierNode
from api.orchestrators.nodes.disclaimer_guard import disclaimer_guard_node
from api.orchestrators.nodes.emotional_support import emotional_support_node
from api.orchestrators.nodes.escalate import EscalateNode
from api.orchestrators.nodes.quality_checker import QualityCheckerNode
from api.orchestrators.nodes.query_planner import QueryPlannerNode
from api.orchestrators.nodes.researcher import ResearcherNode
from api.orchestrators.nodes.retrieval_expander import RetrievalExpanderNode
from api.orchestrators.nodes.retriever import RetrieverNode
from api.orchestrators.nodes.synthesizer import SynthesizerNode

__all__ = [
    "ClassifierNode",
    "EscalateNode",
    "QualityCheckerNode",
    "QueryPlannerNode",
    "ResearcherNode",
    "RetrievalExpanderNode",
    "RetrieverNode",
    "SynthesizerNode",
    "citation_builder_node",
    "clarify_node",
    "disclaimer_guard_node",
    "emotional_support_node",
]
