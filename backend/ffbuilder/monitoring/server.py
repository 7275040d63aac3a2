"""
Monitoring endpoints.

- WS /ws: live push of every job event to the connected client
- GET /monitor/jobs: snapshot of running jobs

Observation only, no control operations. Reconnecting after a dropped
connection is up to the client; missed events are not replayed.
"""

import asyncio
import logging
from typing import List, Optional

from fastapi import APIRouter, Request, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, ConfigDict

from .broadcaster import EventBroadcaster, LoopObserver
from .errors import ObserverClosedError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["monitoring"])


class RunningJobSummary(BaseModel):
    """Summary view of a running job."""

    model_config = ConfigDict(extra="forbid")

    id: str
    kind: str
    state: str
    pid: int
    started_at: str
    command: str
    output_dir: str


class RunningJobsResponse(BaseModel):
    """Response for the running jobs listing."""

    model_config = ConfigDict(extra="forbid")

    jobs: List[RunningJobSummary]
    observers: int


@router.get("/monitor/jobs", response_model=RunningJobsResponse)
async def list_running_jobs(request: Request):
    """
    List running jobs with their command lines (secrets masked).

    Returns:
        RunningJobsResponse, oldest job first
    """
    registry = request.app.state.job_registry
    broadcaster: EventBroadcaster = request.app.state.broadcaster
    return RunningJobsResponse(
        jobs=[RunningJobSummary(**job.to_summary()) for job in registry.list_jobs()],
        observers=broadcaster.observer_count,
    )


async def _forward_events(websocket: WebSocket, observer: LoopObserver) -> None:
    while True:
        event = await observer.get()
        await websocket.send_json(event.to_dict())


@router.websocket("/ws")
async def event_stream(websocket: WebSocket):
    """
    Subscribe the client to the event broadcaster until it disconnects.

    Messages sent by the client are ignored.
    """
    broadcaster: EventBroadcaster = websocket.app.state.broadcaster
    observer = LoopObserver(asyncio.get_running_loop())

    # Subscribed before accept: once the client sees the handshake, no event is missed
    broadcaster.subscribe(observer)
    sender: Optional[asyncio.Task] = None

    try:
        await websocket.accept()
        logger.info("[Events] WebSocket client connected")
        sender = asyncio.create_task(_forward_events(websocket, observer))

        while True:
            receiver = asyncio.ensure_future(websocket.receive_text())
            done, _ = await asyncio.wait({receiver, sender}, return_when=asyncio.FIRST_COMPLETED)
            if sender in done:
                receiver.cancel()
                # Raises the sender's failure (closed observer, send error)
                sender.result()
            else:
                receiver.result()
    except WebSocketDisconnect:
        logger.info("[Events] WebSocket client disconnected")
    except ObserverClosedError:
        logger.info("[Events] Observer closed, ending WebSocket stream")
        await websocket.close(code=1001)
    except Exception as e:
        logger.warning(f"[Events] WebSocket stream ended: {e}")
    finally:
        if sender is not None:
            sender.cancel()
        broadcaster.unsubscribe(observer)
