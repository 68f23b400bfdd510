import json
import logging
from typing import Any, Dict, List, Optional

from fastapi import WebSocket

from vocab_trainer.utils.helpers import format_timestamp

logger = logging.getLogger(__name__)


class NotificationHub:
    """通知推送管理器：按用户保存 WebSocket 连接，推送任务进度和通知"""

    def __init__(self):
        # 存储活跃连接: user_id -> [WebSocket]
        self.active_connections: Dict[int, List[WebSocket]] = {}
        logger.info("通知推送管理器初始化完成")

    async def connect(self, websocket: WebSocket, user_id: int):
        """
        保存WebSocket连接到管理器

        Args:
            websocket: 已 accept 的连接
            user_id: 用户ID
        """
        self.active_connections.setdefault(user_id, []).append(websocket)
        logger.info(f"WebSocket连接已建立: 用户{user_id}")

    def disconnect(self, user_id: int, websocket: Optional[WebSocket] = None):
        connections = self.active_connections.get(user_id)
        if not connections:
            return
        if websocket is None:
            del self.active_connections[user_id]
        else:
            if websocket in connections:
                connections.remove(websocket)
            if not connections:
                del self.active_connections[user_id]
        logger.info(f"WebSocket连接已断开: 用户{user_id}")

    async def send_to_user(self, user_id: int, message: Dict[str, Any]):
        """向用户的所有连接发送消息，发送失败的连接会被移除，不抛出异常"""
        connections = list(self.active_connections.get(user_id, []))
        if not connections:
            logger.debug(f"用户{user_id}没有在线连接，跳过推送: {message.get('type', 'unknown')}")
            return
        for websocket in connections:
            try:
                await websocket.send_text(json.dumps(message, ensure_ascii=False, default=str))
            except Exception as e:
                logger.error(f"发送消息到用户{user_id}失败: {e}")
                self.disconnect(user_id, websocket)

    async def emit_progress(self, user_id: int, job_id: str, event_type: str,
                            payload: Optional[Dict[str, Any]] = None):
        """
        推送任务进度事件

        Args:
            event_type: generating / evaluating / completed / failed
        """
        await self.send_to_user(user_id, {
            "type": event_type,
            "jobId": job_id,
            "userId": user_id,
            "payload": payload,
            "timestamp": format_timestamp(),
        })

    async def emit_notification(self, user_id: int, notification: Dict[str, Any]):
        await self.send_to_user(user_id, {
            "type": "notification",
            "userId": user_id,
            "payload": notification,
            "timestamp": format_timestamp(),
        })

    def is_connected(self, user_id: int) -> bool:
        return bool(self.active_connections.get(user_id))

    def get_connection_count(self) -> int:
        return sum(len(connections) for connections in self.active_connections.values())


# 创建全局通知推送管理器实例
notification_hub = NotificationHub()
