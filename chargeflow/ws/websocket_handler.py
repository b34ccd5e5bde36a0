from fastapi import WebSocket, WebSocketDisconnect, status
from fastapi.encoders import jsonable_encoder
import logging
import time

from chargeflow.dependencies.auth import get_websocket_user

logger = logging.getLogger("chargeflow.ws")

async def websocket_endpoint(websocket: WebSocket):
    """
    WebSocket endpoint streaming a user's charging progress at one station.

    The client connects to `/ws/charging-progress?stationId=...` carrying the
    session cookie (or a `token` query parameter). The first frame is
    `{"type": "initial", "ticket": ...}`; later frames come from the hub.
    """
    connection_start_time = time.time()
    station_id = websocket.query_params.get("stationId")

    user = get_websocket_user(websocket)
    if not user:
        logger.warning(f"⚠️ UNAUTHORIZED SOCKET | station={station_id}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Unauthorized")
        return

    if not station_id:
        logger.warning(f"⚠️ SOCKET WITHOUT STATION | user={user.user_id}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="stationId is required")
        return

    hub = websocket.app.state.session_hub
    service = websocket.app.state.charging_service
    key = hub.build_key(user.user_id, station_id)

    await websocket.accept()
    hub.subscribe(key, websocket)
    logger.info(f"✅ CONNECTION ACCEPTED | key={key}")

    try:
        try:
            ticket = await service.get_active_ticket_payload(user.user_id, station_id)
        except Exception as e:
            logger.error(f"❌ Could not load initial ticket | key={key} | {str(e)}", exc_info=True)
            ticket = None
        await websocket.send_json(jsonable_encoder({"type": "initial", "ticket": ticket}))

        # Client frames carry nothing; reading keeps the disconnect observable
        while True:
            await websocket.receive_text()

    except WebSocketDisconnect:
        connection_duration = time.time() - connection_start_time
        logger.info(f"👋 DISCONNECTED | key={key} | Duration: {connection_duration:.2f} seconds")
    except Exception as e:
        logger.error(f"⚠️ CONNECTION ERROR | key={key} | Error: {e}", exc_info=True)
    finally:
        hub.unsubscribe(key, websocket)
