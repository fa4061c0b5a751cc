import asyncio
import inspect
import json
from typing import Any, Callable, Dict, NamedTuple

from pydantic import BaseModel

from datajobs.util import logger_util

logger = logger_util.get_logger(__name__)

SendFunc = Callable[[str], Any]


class _Client(NamedTuple):
    send: SendFunc
    job_id: str


class EventBroadcaster:
    """
    Fan-out of job progress messages to subscribed clients.

    A client is any ``send(data: str)`` callable (plain or coroutine function)
    registered for one job id, e.g. a websocket's send method. Delivery is
    fire-and-forget: a client whose send fails is logged and dropped, and
    the failure never reaches the publisher.
    """

    def __init__(self):
        self._clients: Dict[str, _Client] = {}
        self._pending = set()

    def add_client(self, client_id: str, send: SendFunc, job_id: str) -> None:
        self._clients[client_id] = _Client(send, job_id)
        logger.info(f"Event client connected: {client_id} for job {job_id}")

    def remove_client(self, client_id: str) -> None:
        if self._clients.pop(client_id, None) is not None:
            logger.info(f"Event client disconnected: {client_id}")

    def broadcast(self, job_id: str, message: Any) -> None:
        data = self._serialize(message)
        for client_id, client in list(self._clients.items()):
            if client.job_id == job_id:
                self._deliver(client_id, client, data)

    def broadcast_all(self, message: Any) -> None:
        data = self._serialize(message)
        for client_id, client in list(self._clients.items()):
            self._deliver(client_id, client, data)

    def get_client_count(self) -> int:
        return len(self._clients)

    def get_clients_for_job(self, job_id: str) -> int:
        return sum(1 for client in self._clients.values() if client.job_id == job_id)

    @staticmethod
    def _serialize(message: Any) -> str:
        if isinstance(message, BaseModel):
            return message.model_dump_json(exclude_none=True)
        return json.dumps(message, default=str)

    def _deliver(self, client_id: str, client: _Client, data: str) -> None:
        try:
            result = client.send(data)
        except Exception as e:
            logger.error(f"Error sending to client {client_id}: {e}")
            self.remove_client(client_id)
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._pending.add(task)
            task.add_done_callback(lambda t: self._on_sent(client_id, t))

    def _on_sent(self, client_id: str, task: asyncio.Future) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Error sending to client {client_id}: {error}")
            self.remove_client(client_id)
