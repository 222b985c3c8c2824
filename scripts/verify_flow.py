import asyncio
import base64
import httpx
import websockets
import json
import logging

import os

# Configure logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

BASE_URL = os.getenv("BASE_URL", "http://localhost:8000")
WS_URL = os.getenv("WS_URL", "ws://localhost:8000")

# 20 ms of PCM16 mono silence at 24 kHz
FRAME_BYTES = 960
FRAME_COUNT = int(os.getenv("FRAME_COUNT", "100"))


async def create_session(client, source_language="en", target_language="es"):
    url = f"{BASE_URL}/api/sessions"
    data = {
        "platform": "meet",
        "meeting_url": "https://meet.google.com/abc-defg-hij",
        "source_language": source_language,
        "target_language": target_language,
    }
    try:
        resp = await client.post(url, json=data)
        if resp.status_code == 201:
            logger.info(f"Created session {resp.json()['id']}")
            return resp.json()
        else:
            logger.error(f"Failed to create session: {resp.status_code} {resp.text}")
            return None
    except Exception as e:
        logger.error(f"Request Error (Create): {e}")
        return None


async def listen(session_id, event_queue):
    ws_url = f"{WS_URL}/ws/relay/{session_id}/listen"
    logger.info(f"Connecting listener: {ws_url}")
    try:
        async with websockets.connect(ws_url) as ws:
            async for msg in ws:
                data = json.loads(msg)
                logger.info(f"[listener] {data['type']}")
                await event_queue.put(data)
    except Exception as e:
        logger.error(f"Listener Error ({session_id}): {e}")


async def wait_for(ws, event_type, timeout=10.0):
    while True:
        data = json.loads(await asyncio.wait_for(ws.recv(), timeout=timeout))
        if data["type"] != event_type:
            logger.info(f"[relay] {data['type']}")
        if data["type"] in ("error", "translation_error"):
            raise RuntimeError(data)
        if data["type"] == event_type:
            return data


async def run_scenario():
    async with httpx.AsyncClient() as client:
        # 1. Create the session
        session = await create_session(client)
        if not session: return
        session_id = session["id"]

        # 2. Attach a listener
        listener_events = asyncio.Queue()
        listener_task = asyncio.create_task(listen(session_id, listener_events))
        await asyncio.sleep(0.5)

        # 3. Bot connects and initializes
        async with websockets.connect(session["websocket_url"]) as ws:
            await wait_for(ws, "connected")
            await ws.send(json.dumps({"type": "initialize", "sessionId": session_id}))
            initialized = await wait_for(ws, "initialized")
            logger.info(f"Initialized: {initialized}")

            try:
                await wait_for(ws, "ai_connected", timeout=15.0)
                logger.info("SUCCESS: Provider connected")
            except RuntimeError as e:
                logger.error(f"FAILED: {e}")
                return

            # 4. Stream audio
            silence = base64.b64encode(bytes(FRAME_BYTES)).decode("ascii")
            for seq in range(FRAME_COUNT):
                await ws.send(json.dumps({
                    "type": "audio_chunk",
                    "audioData": silence,
                    "sequenceNumber": seq,
                    "durationMs": 20,
                }))
                await asyncio.sleep(0.02)
            logger.info(f"Streamed {FRAME_COUNT} frames")

            # 5. Check the status endpoint
            resp = await client.get(f"{BASE_URL}/api/sessions/{session_id}")
            logger.info(f"Status: {resp.json()['status']} (live={resp.json()['live']})")

            # 6. Stop
            await ws.send(json.dumps({"type": "stop"}))
            await wait_for(ws, "session_stopped")
            logger.info("SUCCESS: Session stopped")

        logger.info(f"Listener received {listener_events.qsize()} events")
        listener_task.cancel()

if __name__ == "__main__":
    asyncio.run(run_scenario())
