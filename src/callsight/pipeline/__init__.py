"""Analysis, storage and analytics stages."""

from callsight.pipeline.analysis import (
    CallAnalyzer,
    ClassificationPayload,
    ExtractionPayload,
    PassOutcome,
    PassSpec,
    PassState,
    compose_candidate,
    merge_mentioned_products,
    run_generation_pass,
)
from callsight.pipeline.factory import (
    ConfigurationError,
    build_analyzer,
    build_embedding_client,
    build_llm_client_factory,
    build_vector_index_client,
)
from callsight.pipeline.intent_clustering import (
    ClusteringReport,
    IntentCluster,
    IntentClusteringError,
    IntentRecord,
    cluster_intents,
    merge_intent_clusters,
)
from callsight.pipeline.model_comparison import ComparisonReport, compare_models
from callsight.pipeline.product_analytics import ProductAnalyticsReport, product_analytics
from callsight.pipeline.retrieval import RelatedDocumentSearch, RelatedSearchResult
from callsight.pipeline.storage import StorageWriter

__all__ = [
    "CallAnalyzer",
    "ClassificationPayload",
    "ClusteringReport",
    "ComparisonReport",
    "ConfigurationError",
    "ExtractionPayload",
    "IntentCluster",
    "IntentClusteringError",
    "IntentRecord",
    "PassOutcome",
    "PassSpec",
    "PassState",
    "ProductAnalyticsReport",
    "RelatedDocumentSearch",
    "RelatedSearchResult",
    "StorageWriter",
    "build_analyzer",
    "build_embedding_client",
    "build_llm_client_factory",
    "build_vector_index_client",
    "cluster_intents",
    "compare_models",
    "compose_candidate",
    "merge_mentioned_products",
    "product_analytics",
    "run_generation_pass",
]
