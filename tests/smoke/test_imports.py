def test_import_package_exports():
    from agentmem.runtime.memory import (  # noqa: F401
        MemoryManager,
        MemoryOrchestrator,
        RetrievalEngine,
        SessionManager,
        UserMemoryStore,
        resolve_record_store,
    )


def test_import_backends():
    from agentmem.runtime.memory.arango_store import ArangoDocumentClient, ArangoRecordStore  # noqa: F401
    from agentmem.runtime.memory.sql_store import SqlRecordStore  # noqa: F401
