"""
Row change feed keyed by table name.

Writers call `publish()` after a committed insert, update or delete.
Subscribers register a callback with `subscribe()` and re-run their own
queries when notified; a notification only says that something changed in
the table, it is not a copy of the row.

Every message is delivered to the in-process subscribers of this worker and
broadcast on the Redis channel `changes:<table>` for other workers and the
websocket endpoints.
"""

import json
from collections import defaultdict
from logging import getLogger
from typing import Callable, Dict, List
from redis.exceptions import RedisError

from cabhub.src.constants import CHANGE_FEED_PREFIX
from cabhub.src.enums import ChangeOperation
from cabhub.src import redis

logger = getLogger("uvicorn.error")
listeners: Dict[str, List[Callable[[dict], None]]] = defaultdict(list)


def channelName(tableName: str) -> str:
    return f"{CHANGE_FEED_PREFIX}:{tableName}"


def subscribe(tableName: str, callback: Callable[[dict], None]) -> Callable[[], None]:
    """
    Register `callback` for changes of `tableName`.

    Returns:
        Callable[[], None]: Call it to remove the subscription.
    """
    listeners[tableName].append(callback)

    def unsubscribe():
        if callback in listeners[tableName]:
            listeners[tableName].remove(callback)

    return unsubscribe


def publish(tableName: str, operation: ChangeOperation, pk: int) -> dict:
    """
    Notify subscribers that a row of `tableName` changed.

    A broker failure is logged and does not fail the caller, the write it
    reports on is already committed.
    """
    message = {"table": tableName, "operation": ChangeOperation(operation).name, "id": pk}
    for callback in list(listeners[tableName]):
        callback(message)
    try:
        redis.redisClient.publish(channelName(tableName), json.dumps(message))
    except RedisError as e:
        logger.warning(f"Change feed publish failed for {tableName}: {e}")
    return message
