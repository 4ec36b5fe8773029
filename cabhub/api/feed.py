"""
Websocket change feed of bookings.

Clients pass their access token as the `token` query parameter, browsers
cannot set headers on a websocket handshake. Every committed booking change
is forwarded as `{"table": ..., "operation": ...}`; clients re-run their
booking queries on receipt.
"""

import json
import asyncio
from logging import getLogger
from typing import Callable
from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status
from fastapi.concurrency import run_in_threadpool

from cabhub.src.db import Booking, sessionMaker
from cabhub.src import exceptions, notifier, redis, validators
from cabhub.src.urls import URL_BOOKING_FEED

route_company = APIRouter()
route_vendor = APIRouter()
logger = getLogger("uvicorn.error")


## Function
def authenticate(access_token: str, validateToken: Callable) -> bool:
    session = sessionMaker()
    try:
        validateToken(access_token, session)
        return True
    except exceptions.InvalidToken:
        return False
    finally:
        session.close()


async def forwardChanges(websocket: WebSocket, pubsub):
    async for message in pubsub.listen():
        if message["type"] != "message":
            continue
        change = json.loads(message["data"])
        await websocket.send_json(
            {"table": change["table"], "operation": change["operation"]}
        )


async def waitForDisconnect(websocket: WebSocket):
    # Clients never send anything, the only expected frame is the close
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


async def streamChanges(websocket: WebSocket, tableName: str):
    """
    Forward change messages of `tableName` until the client goes away.

    The Redis subscription is released as soon as the client disconnects,
    without waiting for the next change to fail on send.
    """
    pubsub = redis.asyncRedisClient.pubsub()
    await pubsub.subscribe(notifier.channelName(tableName))
    tasks = [
        asyncio.create_task(forwardChanges(websocket, pubsub)),
        asyncio.create_task(waitForDisconnect(websocket)),
    ]
    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            task.result()
        logger.info(f"Change feed client of {tableName} disconnected")
    except WebSocketDisconnect:
        logger.info(f"Change feed client of {tableName} disconnected")
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await pubsub.unsubscribe()
        await pubsub.aclose()


async def openFeed(websocket: WebSocket, token: str, validateToken: Callable):
    if not await run_in_threadpool(authenticate, token, validateToken):
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    await websocket.accept()
    await streamChanges(websocket, Booking.__tablename__)


## API endpoints [Company]
@route_company.websocket(URL_BOOKING_FEED)
async def company_booking_feed(websocket: WebSocket, token: str = Query()):
    await openFeed(websocket, token, validators.companyToken)


## API endpoints [Vendor]
@route_vendor.websocket(URL_BOOKING_FEED)
async def vendor_booking_feed(websocket: WebSocket, token: str = Query()):
    await openFeed(websocket, token, validators.vendorToken)
