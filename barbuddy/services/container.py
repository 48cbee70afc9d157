"""Process-wide service graph, built once from settings and stored on ``app.state``."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass

from barbuddy.ai.backoff import RetrySchedule, Sleeper
from barbuddy.ai.invoker import ModelInvoker
from barbuddy.ai.providers.anthropic import AnthropicProvider
from barbuddy.ai.providers.base import ChatProvider
from barbuddy.ai.structured import StructuredInvoker
from barbuddy.config import Settings
from barbuddy.generation.documents import DocumentService
from barbuddy.generation.evaluation import AnswerEvaluator
from barbuddy.generation.mockbar import MockBarAssembler
from barbuddy.generation.pregeneration import PreGenerationEngine
from barbuddy.generation.progress import GenerationState, ProgressBroadcaster
from barbuddy.jobs.queue import JobQueue
from barbuddy.storage.blob_store import BlobStore, FileBlobStore, SqlBlobStore
from barbuddy.storage.knowledge_base import ContentCache, KnowledgeBase

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
  settings: Settings
  store: BlobStore
  knowledge: KnowledgeBase
  content: ContentCache
  provider: ChatProvider
  invoker: ModelInvoker
  structured: StructuredInvoker
  jobs: JobQueue
  broadcaster: ProgressBroadcaster
  engine: PreGenerationEngine
  documents: DocumentService
  assembler: MockBarAssembler
  evaluator: AnswerEvaluator

  @property
  def generation(self) -> GenerationState:
    return self.engine.state

  def load(self) -> None:
    """Read the persisted knowledge base and content cache into memory."""
    self.knowledge.load()
    self.content.load()
    logger.info(
      "Loaded knowledge base: syllabus=%s references=%d past_bar=%d cached_topics=%d",
      "yes" if self.knowledge.syllabus else "no",
      len(self.knowledge.references),
      len(self.knowledge.past_bar),
      self.content.topic_count,
    )

  def close(self) -> None:
    self.jobs.close()
    if isinstance(self.store, SqlBlobStore):
      self.store.dispose()


def build_store(settings: Settings) -> BlobStore:
  if settings.db_dsn:
    logger.info("Using SQL blob store")
    return SqlBlobStore(settings.db_dsn)
  logger.info("Using file blob store at %s (persistent volume: %s)", settings.storage_path, settings.persistent_storage)
  return FileBlobStore(settings.storage_path)


def build_container(settings: Settings, *, store: BlobStore | None = None, provider: ChatProvider | None = None, sleep: Sleeper = asyncio.sleep, rng: random.Random | None = None) -> ServiceContainer:
  """Wire every component; ``store``, ``provider`` and ``sleep`` are injectable for tests."""
  store = store if store is not None else build_store(settings)
  provider = provider if provider is not None else AnthropicProvider(settings.anthropic_api_key, base_url=settings.anthropic_base_url, timeout_seconds=settings.provider_timeout_seconds)

  knowledge = KnowledgeBase(store)
  content = ContentCache(store)
  invoker = ModelInvoker(provider, RetrySchedule.tiered(settings.primary_model, settings.fallback_model), sleep=sleep)
  structured = StructuredInvoker(invoker, sleep=sleep)
  jobs = JobQueue(delay_seconds=settings.job_delay_seconds, retention_seconds=settings.job_retention_seconds, sleep=sleep)
  broadcaster = ProgressBroadcaster()
  engine = PreGenerationEngine(structured=structured, knowledge=knowledge, content=content, broadcaster=broadcaster, topic_delay_seconds=settings.topic_delay_seconds, sleep=sleep)

  return ServiceContainer(
    settings=settings,
    store=store,
    knowledge=knowledge,
    content=content,
    provider=provider,
    invoker=invoker,
    structured=structured,
    jobs=jobs,
    broadcaster=broadcaster,
    engine=engine,
    documents=DocumentService(knowledge=knowledge, invoker=invoker, structured=structured, engine=engine, jobs=jobs, sleep=sleep),
    assembler=MockBarAssembler(knowledge=knowledge, content=content, structured=structured, rng=rng),
    evaluator=AnswerEvaluator(structured=structured, knowledge=knowledge),
  )
