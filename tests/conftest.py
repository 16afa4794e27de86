import pytest

from wavechat.config import HubRuntimeConfig
from wavechat.service import ChatHub
from wavechat.stores import MemoryStore


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def config() -> HubRuntimeConfig:
    return HubRuntimeConfig(admin_key="sekrit")


@pytest.fixture
def hub(config: HubRuntimeConfig, store: MemoryStore) -> ChatHub:
    return ChatHub(config, store=store)
