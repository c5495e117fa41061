import pytest

from fieldroute.persistence.store import InMemoryRouteStore


@pytest.fixture
def store(monkeypatch: pytest.MonkeyPatch) -> InMemoryRouteStore:
    """In-memory store wired into every module that resolves the default store."""
    from fieldroute.api.routes import clusters as clusters_api
    from fieldroute.services.clustering import service as clustering_service
    from fieldroute.services.lifecycle import service as lifecycle_service
    from fieldroute.services.routing import service as routing_service

    memory = InMemoryRouteStore()
    for module in (routing_service, lifecycle_service, clustering_service, clusters_api):
        monkeypatch.setattr(module, "get_store", lambda: memory)
    return memory
