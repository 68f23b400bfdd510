import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from vocab_trainer.api.websocket_manager import notification_hub
from vocab_trainer.repositories.user_repository import UserRepository
from vocab_trainer.utils.database import get_db_session
from vocab_trainer.utils.helpers import format_timestamp

logger = logging.getLogger(__name__)
router = APIRouter()


@router.websocket("/ws/notifications/{user_id}")
async def notifications_websocket_endpoint(websocket: WebSocket, user_id: int):
    """
    通知WebSocket端点
    - 推送任务进度（generating / evaluating / completed / failed）和通知
    - 客户端只需要发送 heartbeat
    """
    db = get_db_session()
    try:
        user = UserRepository(db).get_by_id(user_id)
    finally:
        db.close()
    if not user:
        await websocket.close(code=1008, reason="用户不存在")
        return

    await websocket.accept()
    await notification_hub.connect(websocket, user_id)
    try:
        while True:
            data = await websocket.receive_text()
            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                logger.warning(f"用户 {user_id} 消息JSON解析失败: {data}")
                continue
            if message.get("type") == "heartbeat":
                await websocket.send_text(json.dumps({
                    "type": "heartbeat_ack",
                    "userId": user_id,
                    "timestamp": format_timestamp(),
                }))
    except WebSocketDisconnect:
        logger.info(f"用户 {user_id} WebSocket连接正常断开")
    finally:
        notification_hub.disconnect(user_id, websocket)
