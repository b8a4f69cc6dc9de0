"""API routes for conversation threads."""

import time

from broker_core import AgentError, BrokerAgent, NothingToResumeError
from broker_core.metrics import HTTP_LATENCY, HTTP_REQUESTS
from fastapi import APIRouter, HTTPException  # type: ignore[import-not-found]

from .app import get_app_state
from .models import (
    ConfirmationRequest,
    CreateThreadResponse,
    ErrorResponse,
    MessageRequest,
    ThreadResponse,
)

router = APIRouter(prefix="/threads", tags=["threads"])


def _record(method: str, endpoint: str, status_code: str, start_time: float) -> None:
    HTTP_LATENCY.labels(method=method, endpoint=endpoint).observe(time.perf_counter() - start_time)
    HTTP_REQUESTS.labels(method=method, endpoint=endpoint, status=status_code).inc()


def _require_agent() -> BrokerAgent:
    """Return the configured agent or fail with 503."""
    agent = get_app_state().agent
    if agent is None:
        raise HTTPException(
            status_code=503,
            detail="Agent not configured. Please configure the agent first.",
        )
    return agent


def _thread_not_found(thread_id: str) -> HTTPException:
    return HTTPException(status_code=404, detail=f"Thread '{thread_id}' not found.")


@router.post(
    "",
    response_model=CreateThreadResponse,
    responses={503: {"model": ErrorResponse}},
)  # type: ignore[misc]
async def create_thread() -> CreateThreadResponse:
    """Allocate a new conversation thread.

    Returns:
        CreateThreadResponse with the thread ID

    Raises:
        HTTPException: If agent is not configured
    """
    start_time = time.perf_counter()
    status_code = "200"

    try:
        agent = _require_agent()
        return CreateThreadResponse(thread_id=agent.create_thread())
    except HTTPException as e:
        status_code = str(e.status_code)
        raise
    except Exception:
        status_code = "500"
        raise
    finally:
        _record("POST", "/threads", status_code, start_time)


@router.post(
    "/{thread_id}/messages",
    response_model=ThreadResponse,
    responses={
        404: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)  # type: ignore[misc]
async def send_message(thread_id: str, request: MessageRequest) -> ThreadResponse:
    """Send a user message to a thread.

    Args:
        thread_id: The conversation thread ID
        request: The message request containing user content

    Returns:
        ThreadResponse describing how the run ended

    Raises:
        HTTPException: If thread not found or agent error
    """
    start_time = time.perf_counter()
    status_code = "200"

    try:
        agent = _require_agent()
        if agent.get_thread(thread_id) is None:
            raise _thread_not_found(thread_id)

        result = await agent.send_message(thread_id, request.content)
        return ThreadResponse.from_result(result)
    except AgentError as e:
        status_code = "500"
        raise HTTPException(status_code=500, detail=str(e)) from e
    except HTTPException as e:
        status_code = str(e.status_code)
        raise
    except Exception:
        status_code = "500"
        raise
    finally:
        _record("POST", "/threads/{id}/messages", status_code, start_time)


@router.post(
    "/{thread_id}/confirmation",
    response_model=ThreadResponse,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)  # type: ignore[misc]
async def confirm_purchase(thread_id: str, request: ConfirmationRequest) -> ThreadResponse:
    """Approve or reject the purchase a thread is waiting on.

    Args:
        thread_id: The conversation thread ID
        request: The user's decision

    Returns:
        ThreadResponse describing how the resumed run ended

    Raises:
        HTTPException: If thread not found, not suspended, or agent error
    """
    start_time = time.perf_counter()
    status_code = "200"

    try:
        agent = _require_agent()
        if agent.get_thread(thread_id) is None:
            raise _thread_not_found(thread_id)

        result = await agent.confirm_purchase(thread_id, request.approve)
        return ThreadResponse.from_result(result)
    except NothingToResumeError as e:
        status_code = "409"
        raise HTTPException(status_code=409, detail=str(e)) from e
    except AgentError as e:
        status_code = "500"
        raise HTTPException(status_code=500, detail=str(e)) from e
    except HTTPException as e:
        status_code = str(e.status_code)
        raise
    except Exception:
        status_code = "500"
        raise
    finally:
        _record("POST", "/threads/{id}/confirmation", status_code, start_time)


@router.get(
    "/{thread_id}",
    response_model=ThreadResponse,
    responses={404: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)  # type: ignore[misc]
async def get_thread(thread_id: str) -> ThreadResponse:
    """Get the last checkpoint of a thread.

    Args:
        thread_id: The conversation thread ID

    Returns:
        ThreadResponse with status, messages and staged purchase

    Raises:
        HTTPException: If thread not found
    """
    start_time = time.perf_counter()
    status_code = "200"

    try:
        agent = _require_agent()
        checkpoint = agent.get_thread(thread_id)
        if checkpoint is None:
            raise _thread_not_found(thread_id)

        return ThreadResponse.from_checkpoint(checkpoint)
    except HTTPException as e:
        status_code = str(e.status_code)
        raise
    except Exception:
        status_code = "500"
        raise
    finally:
        _record("GET", "/threads/{id}", status_code, start_time)


@router.delete(
    "/{thread_id}",
    responses={404: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)  # type: ignore[misc]
async def delete_thread(thread_id: str) -> dict[str, str]:
    """Discard a thread and its pending purchase, if any.

    Args:
        thread_id: The conversation thread ID

    Returns:
        Confirmation message

    Raises:
        HTTPException: If thread not found
    """
    start_time = time.perf_counter()
    status_code = "200"

    try:
        agent = _require_agent()
        if not await agent.discard_thread(thread_id):
            raise _thread_not_found(thread_id)

        return {"message": f"Thread '{thread_id}' deleted successfully."}
    except HTTPException as e:
        status_code = str(e.status_code)
        raise
    except Exception:
        status_code = "500"
        raise
    finally:
        _record("DELETE", "/threads/{id}", status_code, start_time)
