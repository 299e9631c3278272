from orchestrator.config.settings import Settings
from orchestrator.service import Orchestrator
from orchestrator.worker.message_runner import MessageRunner
from orchestrator.worker.pool import WorkerPool
from orchestrator.worker.worker import Worker


def build_worker_pool(orchestrator: Orchestrator, settings: Settings) -> WorkerPool:
    """Build a WorkerPool with ``settings.ingestion_workers`` ingestion workers."""
    runner = MessageRunner(orchestrator.ingestor, orchestrator.transport)
    workers = [
        Worker(orchestrator.transport, runner, settings, name=f"ingestion-worker-{index}")
        for index in range(settings.ingestion_workers)
    ]
    return WorkerPool(workers, orchestrator.supervisor, orchestrator.fanout, settings)
