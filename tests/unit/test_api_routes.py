"""Tests for API routes."""

from unittest.mock import AsyncMock, Mock

import pytest
from broker_api import create_app
from broker_api.app import app_state
from broker_config import BrokerConfig
from broker_core import BrokerAgent, LLMProvider, LLMProviderError
from broker_core.market import SupportedAssets
from broker_core.tools import ToolRegistry
from fastapi.testclient import TestClient
from langchain_core.messages import AIMessage


def purchase_request():
    """A model response asking to buy two bitcoin."""
    return AIMessage(
        content="",
        tool_calls=[
            {"name": "purchase_coin", "args": {"symbol": "bitcoin", "quantity": 2}, "id": "c1"}
        ],
    )


@pytest.fixture
def mock_llm_provider():
    """Create a mock LLM provider."""
    provider = Mock(spec=LLMProvider)
    provider.achat = AsyncMock(return_value=AIMessage(content="Test response"))
    return provider


@pytest.fixture
def agent(mock_llm_provider):
    """Create a broker agent with injected collaborators."""
    quotes = Mock()
    quotes.coin_price = AsyncMock(return_value=65000.0)
    quotes.stock_price = AsyncMock(return_value=None)
    return BrokerAgent(
        BrokerConfig(),
        llm_provider=mock_llm_provider,
        assets=SupportedAssets.bundled(),
        quotes=quotes,
        ticker_resolver=Mock(),
        tools=ToolRegistry(),
    )


@pytest.fixture
def reset_app_state():
    """Reset application state before and after tests."""
    app_state.agent = None
    app_state.store = None
    app_state.config = None
    yield
    app_state.agent = None
    app_state.store = None
    app_state.config = None


@pytest.fixture
def client(agent, reset_app_state):
    """Create a test client bound to the agent."""
    return TestClient(create_app(agent=agent))


class TestCreateThread:
    """Tests for POST /threads endpoint."""

    def test_create_thread_success(self, client, agent):
        """Test allocating a thread."""
        response = client.post("/threads")

        assert response.status_code == 200
        thread_id = response.json()["thread_id"]
        assert agent.get_thread(thread_id) is not None

    def test_create_thread_no_agent(self, reset_app_state):
        """Test allocating a thread when agent not configured."""
        client = TestClient(create_app())

        response = client.post("/threads")

        assert response.status_code == 503
        assert "not configured" in response.json()["detail"].lower()


class TestSendMessage:
    """Tests for POST /threads/{thread_id}/messages endpoint."""

    def test_send_message_success(self, client):
        """Test a completed turn."""
        thread_id = client.post("/threads").json()["thread_id"]

        response = client.post(f"/threads/{thread_id}/messages", json={"content": "Hello"})

        assert response.status_code == 200
        data = response.json()
        assert data["thread_id"] == thread_id
        assert data["status"] == "completed"
        assert data["reason"] is None
        assert [m["role"] for m in data["messages"]] == ["user", "assistant"]
        assert data["messages"][-1]["content"] == "Test response"

    def test_send_message_suspends_for_purchase(self, client, mock_llm_provider):
        """Test a purchase request leaves the thread waiting."""
        mock_llm_provider.achat.return_value = purchase_request()
        thread_id = client.post("/threads").json()["thread_id"]

        response = client.post(
            f"/threads/{thread_id}/messages", json={"content": "buy 2 bitcoin"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "suspended"
        assert data["reason"] == "confirmation required"
        assert data["staged_purchase"]["kind"] == "coin"
        assert data["staged_purchase"]["display_name"] == "Bitcoin"
        assert data["staged_purchase"]["quantity"] == 2
        assert data["messages"][-1]["tool_calls"][0]["id"] == "c1"

    def test_send_message_thread_not_found(self, client):
        """Test sending to an unknown thread."""
        response = client.post("/threads/missing/messages", json={"content": "Hello"})

        assert response.status_code == 404

    def test_send_message_empty_content(self, client):
        """Test that empty messages are rejected."""
        thread_id = client.post("/threads").json()["thread_id"]

        response = client.post(f"/threads/{thread_id}/messages", json={"content": ""})

        assert response.status_code == 422

    def test_send_message_llm_error(self, client, mock_llm_provider):
        """Test agent errors map to 500."""
        mock_llm_provider.achat.side_effect = LLMProviderError("quota exceeded")
        thread_id = client.post("/threads").json()["thread_id"]

        response = client.post(f"/threads/{thread_id}/messages", json={"content": "Hello"})

        assert response.status_code == 500
        assert "LLM error" in response.json()["detail"]


class TestConfirmPurchase:
    """Tests for POST /threads/{thread_id}/confirmation endpoint."""

    def test_approve(self, client, mock_llm_provider):
        """Test approving the staged purchase."""
        mock_llm_provider.achat.return_value = purchase_request()
        thread_id = client.post("/threads").json()["thread_id"]
        client.post(f"/threads/{thread_id}/messages", json={"content": "buy 2 bitcoin"})

        response = client.post(f"/threads/{thread_id}/confirmation", json={"approve": True})

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "completed"
        assert data["staged_purchase"] is None
        assert data["messages"][-1]["content"] == (
            "Successfully purchased 2 share(s) of bitcoin at $65000/share."
        )

    def test_reject(self, client, mock_llm_provider):
        """Test rejecting the staged purchase."""
        mock_llm_provider.achat.side_effect = [
            purchase_request(),
            AIMessage(content="Understood, nothing was bought."),
        ]
        thread_id = client.post("/threads").json()["thread_id"]
        client.post(f"/threads/{thread_id}/messages", json={"content": "buy 2 bitcoin"})

        response = client.post(f"/threads/{thread_id}/confirmation", json={"approve": False})

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "completed"
        assert data["messages"][-1]["content"] == "Understood, nothing was bought."

    def test_nothing_to_confirm(self, client):
        """Test confirming on a thread that is not waiting."""
        thread_id = client.post("/threads").json()["thread_id"]

        response = client.post(f"/threads/{thread_id}/confirmation", json={"approve": True})

        assert response.status_code == 409

    def test_confirm_thread_not_found(self, client):
        """Test confirming on an unknown thread."""
        response = client.post("/threads/missing/confirmation", json={"approve": True})

        assert response.status_code == 404

    def test_confirm_requires_flag(self, client):
        """Test the request body is validated."""
        thread_id = client.post("/threads").json()["thread_id"]

        response = client.post(f"/threads/{thread_id}/confirmation", json={})

        assert response.status_code == 422


class TestGetThread:
    """Tests for GET /threads/{thread_id} endpoint."""

    def test_get_suspended_thread(self, client, mock_llm_provider):
        """Test reading a suspended checkpoint."""
        mock_llm_provider.achat.return_value = purchase_request()
        thread_id = client.post("/threads").json()["thread_id"]
        client.post(f"/threads/{thread_id}/messages", json={"content": "buy 2 bitcoin"})

        response = client.get(f"/threads/{thread_id}")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "suspended"
        assert data["reason"] == "confirmation required"
        assert data["updated_at"] is not None
        assert len(data["messages"]) == 2

    def test_get_new_thread(self, client):
        """Test reading an empty thread."""
        thread_id = client.post("/threads").json()["thread_id"]

        data = client.get(f"/threads/{thread_id}").json()

        assert data["status"] == "completed"
        assert data["messages"] == []
        assert data["staged_purchase"] is None

    def test_get_thread_not_found(self, client):
        """Test reading an unknown thread."""
        assert client.get("/threads/missing").status_code == 404


class TestDeleteThread:
    """Tests for DELETE /threads/{thread_id} endpoint."""

    def test_delete_thread(self, client):
        """Test discarding a thread."""
        thread_id = client.post("/threads").json()["thread_id"]

        response = client.delete(f"/threads/{thread_id}")

        assert response.status_code == 200
        assert "deleted" in response.json()["message"]
        assert client.get(f"/threads/{thread_id}").status_code == 404

    def test_delete_thread_not_found(self, client):
        """Test discarding an unknown thread."""
        assert client.delete("/threads/missing").status_code == 404
