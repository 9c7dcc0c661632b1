"""
Graph Pipeline

Turns one document into one knowledge graph.

Flow:
    1. Chunk the document and check the whole-document budget
    2. Generate a subgraph per chunk through the orchestrator, in sequential
       batches of concurrent calls
    3. Merge subgraphs (namespace, dedup, remap, trim, integrity pass)
    4. Render Mermaid and report statistics

When generation fails on the model path (validation exhausted, provider
errors), a heading-derived graph is returned instead and flagged with
``fallback_used``. Budget, document and infrastructure errors propagate.

Example:
    >>> async with GraphPipeline.from_config(KGConfig()) as pipeline:
    ...     response = await pipeline.generate(GenerateGraphRequest(
    ...         document_id="doc-1",
    ...         document_text=text,
    ...         document_title="Transformers",
    ...         user_id="user-42",
    ...     ))
    >>> print(response.mermaid_code)
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from typing import TYPE_CHECKING, Any

from graphex_kg.config.pricing import calculate_cost
from graphex_kg.errors import BudgetExceededError, ModelError
from graphex_kg.ingestion.assembly import MergeEngine, render_mermaid
from graphex_kg.ingestion.chunking import TextChunker
from graphex_kg.pipeline.fallback import (
    FALLBACK_MODEL,
    FALLBACK_WARNING,
    build_structural_graph,
)
from graphex_kg.pipeline.progress import ProgressSink
from graphex_kg.types.ai import OrchestratorConfig, OrchestratorResponse
from graphex_kg.types.chunks import Chunk
from graphex_kg.types.graph import (
    BudgetAvailability,
    CostEstimate,
    GenerateGraphRequest,
    GenerateGraphResponse,
    GenerationProgress,
    GenerationStage,
    GraphMetadata,
    GraphStatistics,
    SubGraph,
)
from graphex_kg.utils.cost_telemetry import CostCollector, telemetry_collector, telemetry_stage

if TYPE_CHECKING:
    from graphex_kg.budget import CostGuard, DiskCacheStore, DuckDBUsageStore
    from graphex_kg.config import KGConfig
    from graphex_kg.orchestration import Orchestrator
    from graphex_kg.providers.gateway import ModelGateway

logger = logging.getLogger(__name__)

ESTIMATE_CHUNK_CHARS = 30000
ESTIMATE_OUTPUT_TOKENS_PER_CHUNK = 1000
ESTIMATE_MODEL = "claude-haiku"


class GraphPipeline:
    """
    Document-to-graph pipeline.

    Args:
        chunker: Splits the document
        orchestrator: Produces one validated subgraph per chunk
        merge_engine: Merges subgraphs into the final graph
        cost_guard: Whole-document admission check
        batch_size: Concurrent orchestrator calls per batch
        subgraph_max_nodes: Node budget requested per chunk
        progress: Optional progress sink
        orchestrator_config: Base settings for each chunk call
    """

    def __init__(
        self,
        chunker: TextChunker,
        orchestrator: "Orchestrator",
        merge_engine: MergeEngine,
        cost_guard: "CostGuard",
        *,
        batch_size: int = 2,
        subgraph_max_nodes: int = 10,
        progress: ProgressSink | None = None,
        orchestrator_config: OrchestratorConfig | None = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.chunker = chunker
        self.orchestrator = orchestrator
        self.merge_engine = merge_engine
        self.cost_guard = cost_guard
        self.batch_size = batch_size
        self.subgraph_max_nodes = subgraph_max_nodes
        self.progress = progress
        self.orchestrator_config = orchestrator_config or OrchestratorConfig()
        self._owned_store: "DuckDBUsageStore | None" = None
        self._owned_cache: "DiskCacheStore | None" = None
        self._initialized = False

    @classmethod
    def from_config(
        cls,
        config: "KGConfig",
        *,
        gateway: "ModelGateway | None" = None,
        progress: ProgressSink | None = None,
        **dedup_collaborators: Any,
    ) -> "GraphPipeline":
        """
        Wire every component from configuration.

        The usage store is a DuckDB database at ``config.usage_db_path``,
        opened on first use and closed by ``close()``. The cache lives in
        ``config.cache_dir`` when set, otherwise in memory. Extra keyword
        arguments (``similarity``, ``adjudicator``) go to the deduplicator and
        take precedence over ``dedup_similarity`` and ``dedup_adjudicator``.
        """
        from graphex_kg.budget import (
            CostGuard,
            DiskCacheStore,
            DuckDBUsageStore,
            InMemoryCacheStore,
        )
        from graphex_kg.ingestion.resolution import (
            EmbeddingSimilarity,
            LLMAdjudicator,
            NodeDeduplicator,
        )
        from graphex_kg.orchestration import Orchestrator
        from graphex_kg.providers.gateway import ModelGateway
        from graphex_kg.types.ai import CallOptions
        from graphex_kg.validation import OutputValidator

        gateway = gateway or ModelGateway.from_config(config)
        if "similarity" not in dedup_collaborators and config.dedup_similarity == "embedding":
            from graphex_kg.providers.embedding import OpenAIEmbeddingProvider

            dedup_collaborators["similarity"] = EmbeddingSimilarity(
                OpenAIEmbeddingProvider(config.openai_api_key, config.embedding_model)
            )
        if "adjudicator" not in dedup_collaborators and config.dedup_adjudicator == "llm":
            dedup_collaborators["adjudicator"] = LLMAdjudicator(
                gateway, model_id=config.adjudication_model
            )

        cache = DiskCacheStore(config.cache_dir) if config.cache_dir else InMemoryCacheStore()
        store = DuckDBUsageStore(config.usage_db_path)
        cost_guard = CostGuard.from_config(config, cache, store)
        orchestrator = Orchestrator(
            gateway,
            OutputValidator(),
            cost_guard,
            cache,
            call_options=CallOptions(
                max_tokens=config.max_tokens,
                temperature=config.temperature,
                timeout_ms=config.timeout_ms,
            ),
        )
        pipeline = cls(
            TextChunker.from_config(config),
            orchestrator,
            MergeEngine(NodeDeduplicator.from_config(config, **dedup_collaborators)),
            cost_guard,
            batch_size=config.batch_size,
            subgraph_max_nodes=config.subgraph_max_nodes,
            progress=progress,
            orchestrator_config=OrchestratorConfig(
                max_retries=config.max_retries,
                quality_threshold=config.quality_threshold,
                preferred_model=config.preferred_model,
                timeout_ms=config.timeout_ms,
                prompt_version=config.prompt_version,
            ),
        )
        pipeline._owned_store = store
        if isinstance(cache, DiskCacheStore):
            pipeline._owned_cache = cache
        return pipeline

    # === Lifecycle ===

    async def _ensure_initialized(self) -> None:
        if self._initialized:
            return
        if self._owned_store is not None:
            await self._owned_store.initialize()
        self._initialized = True

    async def __aenter__(self) -> "GraphPipeline":
        await self._ensure_initialized()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owned_store is not None and self._initialized:
            await self._owned_store.close()
        if self._owned_cache is not None:
            self._owned_cache.close()
        self._initialized = False

    # === Estimation ===

    async def estimate_cost(
        self,
        text: str,
        user_id: str | None = None,
        document_id: str | None = None,
    ) -> CostEstimate:
        """
        Pre-flight cost of generating a graph for a document.

        Chunks are counted at 30000 characters, input tokens at four
        characters per token, plus 1000 output tokens per chunk.
        """
        await self._ensure_initialized()

        chunks = max(1, math.ceil(len(text) / ESTIMATE_CHUNK_CHARS))
        input_per_chunk = math.ceil(min(len(text), ESTIMATE_CHUNK_CHARS) / 4)
        input_tokens = chunks * input_per_chunk
        output_tokens = chunks * ESTIMATE_OUTPUT_TOKENS_PER_CHUNK
        total_tokens = input_tokens + output_tokens

        check = await self.cost_guard.check_budget(
            user_id,
            "graph-generation",
            estimated_tokens=total_tokens,
            target_id=document_id,
        )
        if user_id:
            available = self.cost_guard.per_user_per_day - check.current_usage.today
        else:
            available = self.cost_guard.per_document

        return CostEstimate(
            estimated_chunks=chunks,
            estimated_tokens=total_tokens,
            estimated_cost=calculate_cost(input_tokens, output_tokens, ESTIMATE_MODEL),
            budget_check=BudgetAvailability(
                within_budget=check.allowed,
                available=max(0.0, available),
                reason=check.reason,
                reset_at=check.reset_at,
            ),
        )

    # === Generation ===

    async def generate(self, request: GenerateGraphRequest) -> GenerateGraphResponse:
        """
        Generate a knowledge graph for one document.

        Raises:
            EmptyDocumentError: The document has no text
            BudgetExceededError: The document or a chunk call was refused
            CostTrackingError: The usage ledger failed on a path that must not
                fail open
        """
        await self._ensure_initialized()
        start = time.perf_counter()
        collector = CostCollector()

        self._emit(GenerationStage.CHUNKING, 0, 0, 0, "Splitting document")
        chunking = self.chunker.chunk(request.document_text, request.document_title)
        chunks = chunking.chunks
        total = len(chunks)

        estimate = await self.estimate_cost(
            request.document_text,
            request.user_id,
            request.document_id,
        )
        if not estimate.budget_check.within_budget:
            logger.warning(
                f"Refused document {request.document_id}: {estimate.budget_check.reason}"
            )
            raise BudgetExceededError(
                estimate.budget_check.reason or "budget-exceeded",
                estimated_cost=estimate.estimated_cost,
                reset_at=estimate.budget_check.reset_at,
            )
        self._emit(GenerationStage.CHUNKING, 0, total, 5, f"Split into {total} chunks")

        with telemetry_collector(collector):
            self._emit(GenerationStage.GENERATING, 0, total, 10, "Generating subgraphs")
            try:
                responses = await self._generate_subgraphs(request, chunks)
            except ModelError as e:
                logger.warning(
                    f"Generation failed for {request.document_id}, using structural fallback: {e}"
                )
                return self._fallback(request, collector, start)

            self._emit(GenerationStage.MERGING, total, total, 70, "Merging subgraphs")
            subgraphs = [
                SubGraph.from_artifact(response.data, index)
                for index, response in responses
            ]
            with telemetry_stage("merge"):
                merged = await self.merge_engine.merge(subgraphs, request.max_nodes)

        self._emit(GenerationStage.VALIDATING, total, total, 90, "Rendering graph")
        mermaid_code = render_mermaid(merged.nodes, merged.edges)

        models = list(dict.fromkeys(
            [response.model for _, response in responses] + collector.models
        ))
        warnings = list(chunking.statistics.warnings) + merged.warnings
        for _, response in responses:
            warnings.extend(response.quality.warnings)

        result = GenerateGraphResponse(
            nodes=merged.nodes,
            edges=merged.edges,
            mermaid_code=mermaid_code,
            statistics=GraphStatistics(
                chunks_processed=total,
                total_nodes=len(merged.nodes),
                total_edges=len(merged.edges),
                merged_nodes=merged.merged_node_count,
                duplicate_edges_removed=merged.duplicate_edges_removed,
                quality_score=merged.quality_score,
                total_cost=collector.total_cost_usd,
                processing_time_ms=int((time.perf_counter() - start) * 1000),
            ),
            metadata=GraphMetadata(
                models=models,
                cache_hit=all(response.metadata.cached for _, response in responses),
                fallback_used=False,
                warnings=warnings,
            ),
        )
        self._emit(
            GenerationStage.COMPLETE,
            total,
            total,
            100,
            f"Generated {len(merged.nodes)} nodes and {len(merged.edges)} edges",
        )
        logger.info(
            f"Generated graph for {request.document_id}: {len(merged.nodes)} nodes, "
            f"{len(merged.edges)} edges, quality={merged.quality_score}, "
            f"cost=${collector.total_cost_usd:.6f}"
        )
        return result

    def generate_sync(self, request: GenerateGraphRequest) -> GenerateGraphResponse:
        """Sync wrapper for generate."""
        return asyncio.run(self.generate(request))

    async def _generate_subgraphs(
        self,
        request: GenerateGraphRequest,
        chunks: list[Chunk],
    ) -> list[tuple[int, OrchestratorResponse]]:
        total = len(chunks)
        node_cap = min(request.max_nodes, self.subgraph_max_nodes)
        results: list[tuple[int, OrchestratorResponse]] = []

        for batch_start in range(0, total, self.batch_size):
            batch = chunks[batch_start:batch_start + self.batch_size]
            # Every call in the batch finishes before the next batch starts
            outcomes = await asyncio.gather(
                *(self._generate_chunk(request, chunk, total, node_cap) for chunk in batch),
                return_exceptions=True,
            )
            errors = [outcome for outcome in outcomes if isinstance(outcome, BaseException)]
            if errors:
                # Budget and tracking failures outrank model failures that only
                # trigger the structural fallback
                fatal = [e for e in errors if not isinstance(e, ModelError)]
                raise (fatal or errors)[0]
            results.extend(outcomes)

            done = len(results)
            self._emit(
                GenerationStage.GENERATING,
                done,
                total,
                10 + (60 * done) // total,
                f"Processed {done}/{total} chunks",
            )
        return results

    async def _generate_chunk(
        self,
        request: GenerateGraphRequest,
        chunk: Chunk,
        total: int,
        node_cap: int,
    ) -> tuple[int, OrchestratorResponse]:
        title = request.document_title
        if total > 1:
            title = f"{title} (Part {chunk.index + 1}/{total})"

        config = self.orchestrator_config.model_copy(
            update={
                "user_id": request.user_id,
                "target_id": request.document_id,
                "skip_cache": request.skip_cache,
            }
        )
        with telemetry_stage("generation"):
            response = await self.orchestrator.execute(
                "graph-generation",
                {"documentText": chunk.content, "documentTitle": title, "maxNodes": node_cap},
                config,
            )
        return chunk.index, response

    def _fallback(
        self,
        request: GenerateGraphRequest,
        collector: CostCollector,
        start: float,
    ) -> GenerateGraphResponse:
        nodes, edges, quality = build_structural_graph(
            request.document_text,
            request.document_title,
            request.max_nodes,
        )
        self._emit(
            GenerationStage.COMPLETE,
            0,
            0,
            100,
            f"Generated fallback graph with {len(nodes)} nodes",
        )
        return GenerateGraphResponse(
            nodes=nodes,
            edges=edges,
            mermaid_code=render_mermaid(nodes, edges),
            statistics=GraphStatistics(
                chunks_processed=0,
                total_nodes=len(nodes),
                total_edges=len(edges),
                quality_score=quality,
                total_cost=collector.total_cost_usd,
                processing_time_ms=int((time.perf_counter() - start) * 1000),
            ),
            metadata=GraphMetadata(
                models=[FALLBACK_MODEL],
                cache_hit=False,
                fallback_used=True,
                warnings=[FALLBACK_WARNING],
            ),
        )

    # === Progress ===

    def _emit(
        self,
        stage: GenerationStage,
        processed: int,
        total: int,
        percent: int,
        message: str,
    ) -> None:
        if self.progress is None:
            return
        update = GenerationProgress(
            stage=stage,
            chunks_processed=processed,
            total_chunks=total,
            percent_complete=min(100, max(0, percent)),
            message=message,
        )
        try:
            self.progress.publish(update)
        except Exception as e:
            # Progress consumers must not abort generation
            logger.warning(f"Progress sink failed at {stage.value}: {e}")
