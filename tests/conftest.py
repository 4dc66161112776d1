import pytest

from agentoperator.runtime.store import InMemoryResourceStore
from utils import cap, make_agent, make_channel, req


@pytest.fixture
def store():
    return InMemoryResourceStore()


@pytest.fixture
def billing_agent():
    return make_agent(
        "billing-agent",
        [cap("view-bill", "1.0.0"), cap("download-bill", "1.1.0")],
        description="Handles bills",
    )


@pytest.fixture
def contract_agent():
    return make_agent(
        "contract-agent",
        [cap("view-contract", "1.0.0"), cap("cancel-contract", "2.0.0")],
        description="Handles contracts",
    )


@pytest.fixture
def ivr_channel():
    return make_channel(
        "acme-ivr-stable",
        [req("view-bill", "1.0.0"), req("download-bill", ">=1.0.0"), req("view-contract", "1.x")],
    )
