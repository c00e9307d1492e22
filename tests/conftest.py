import pytest

from agentmem.runtime.memory.sql_store import SqlRecordStore


@pytest.fixture
def store():
    record_store = SqlRecordStore.from_url("sqlite://")
    record_store.upgrade_schema()
    yield record_store
    record_store.close()
