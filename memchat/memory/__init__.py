"""Memory tiers: message log, long-term summaries, trigger, summarizer, context, retrieval."""

from memchat.memory.context import ContextAssembler
from memchat.memory.log import LongTermMemoryStore, MessageLog
from memchat.memory.retrieval import SemanticRetriever, cosine_similarity
from memchat.memory.summarizer import Summarizer
from memchat.memory.trigger import SummarizationTrigger

__all__ = [
    "ContextAssembler",
    "LongTermMemoryStore",
    "MessageLog",
    "SemanticRetriever",
    "Summarizer",
    "SummarizationTrigger",
    "cosine_similarity",
]
