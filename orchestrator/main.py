from orchestrator.config.settings import Settings
from orchestrator.database.connection import close_pool, get_connection, init_pool
from orchestrator.database.schema import apply_schema
from orchestrator.logging.logger import Log
from orchestrator.service import build_orchestrator
from orchestrator.worker.factory import build_worker_pool


def uses_postgres(settings: Settings) -> bool:
    return "postgres" in (settings.registry_backend.lower(), settings.transport_backend.lower())


def main() -> None:
    """Entry point: initialize pool -> build dependencies -> run worker pool."""
    settings = Settings()
    Log.configure(settings.log_level)
    if uses_postgres(settings):
        init_pool(settings)
        if settings.db_auto_migrate:
            with get_connection() as conn:
                apply_schema(conn)

    try:
        orchestrator = build_orchestrator(settings)
        pool = build_worker_pool(orchestrator, settings)
        pool.run()
    finally:
        close_pool()


if __name__ == "__main__":
    main()
