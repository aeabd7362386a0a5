"""Composition root.

Every client handle (database engine, queue, embedding model, chat model, browser capturer) is
built here once per process and passed down explicitly. Tests pass fakes for any of them.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.engine import Engine

from beacongate.advisory.generator import AdvisoryGenerator
from beacongate.capture.artifacts import ArtifactStorage
from beacongate.capture.browser import Capturer, PlaywrightCapturer
from beacongate.capture.url_guard import Resolver
from beacongate.config import Settings
from beacongate.db.session import create_db_engine, create_session_factory, init_db
from beacongate.db.store import Store
from beacongate.llm.client import ChatModel, LLMClient
from beacongate.logging import get_logger
from beacongate.queue.backends import InMemoryJobQueue, JobQueue, RedisJobQueue
from beacongate.rag.embeddings import Embedder, create_embedder
from beacongate.rag.ingest import KnowledgeIngestor
from beacongate.rag.retriever import Retriever
from beacongate.rules.defaults import load_rule_table
from beacongate.rules.engine import RuleEngine
from beacongate.services.actions import CaseActions
from beacongate.worker.orchestrator import CaptureOrchestrator
from beacongate.worker.runner import CaptureWorker

logger = get_logger(__name__)


def create_queue(settings: Settings) -> JobQueue:
    if settings.queue_backend == "memory":
        return InMemoryJobQueue()
    return RedisJobQueue(settings.redis_url, key_prefix=settings.redis_key_prefix, queue_name=settings.queue_name)


def create_chat_model(settings: Settings) -> ChatModel | None:
    """The external chat model, or ``None`` when advisories must come from the mock."""

    if settings.advisory_provider == "mock" or not settings.openai_api_key:
        return None
    return LLMClient(settings)


@dataclass
class AppContext:
    settings: Settings
    db_engine: Engine
    store: Store
    storage: ArtifactStorage
    queue: JobQueue
    rule_engine: RuleEngine
    embedder: Embedder
    retriever: Retriever
    generator: AdvisoryGenerator
    actions: CaseActions
    resolver: Resolver | None = None

    def orchestrator(self, capturer: Capturer | None = None) -> CaptureOrchestrator:
        capturer = capturer or PlaywrightCapturer(self.settings, resolver=self.resolver)
        return CaptureOrchestrator(self.store, self.storage, capturer, self.rule_engine)

    def worker(self, capturer: Capturer | None = None) -> CaptureWorker:
        return CaptureWorker(
            self.queue,
            self.orchestrator(capturer),
            concurrency=self.settings.worker_concurrency,
            max_deliveries=self.settings.job_max_deliveries,
            backoff_s=self.settings.job_backoff_s,
            poll_s=self.settings.worker_poll_s,
        )

    def ingestor(self) -> KnowledgeIngestor:
        return KnowledgeIngestor(self.store, self.embedder)


def build_app_context(
    settings: Settings,
    *,
    queue: JobQueue | None = None,
    embedder: Embedder | None = None,
    chat_model: ChatModel | None = None,
    resolver: Resolver | None = None,
    create_tables: bool = True,
) -> AppContext:
    """Wire every component from settings; explicit arguments override the defaults."""

    db_engine = create_db_engine(settings.database_url)
    if create_tables:
        init_db(db_engine)
    store = Store(create_session_factory(db_engine))
    storage = ArtifactStorage(settings.storage_root)
    queue = queue if queue is not None else create_queue(settings)
    rule_engine = RuleEngine(load_rule_table(settings.rules_file))
    embedder = embedder or create_embedder(settings)
    retriever = Retriever(store, embedder)
    generator = AdvisoryGenerator(
        chat_model if chat_model is not None else create_chat_model(settings),
        temperature=settings.advisory_temperature,
    )
    actions = CaseActions(
        store,
        storage,
        queue,
        retriever,
        generator,
        resolver=resolver,
        url_max_length=settings.url_max_length,
        top_k=settings.retrieval_top_k,
    )
    logger.info(
        "Wired BeaconGate (queue=%s, embedder=%s, advisory=%s)",
        type(queue).__name__,
        embedder.model_name,
        generator.provider,
    )
    return AppContext(
        settings=settings,
        db_engine=db_engine,
        store=store,
        storage=storage,
        queue=queue,
        rule_engine=rule_engine,
        embedder=embedder,
        retriever=retriever,
        generator=generator,
        actions=actions,
        resolver=resolver,
    )
