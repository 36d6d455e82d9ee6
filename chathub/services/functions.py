"""
Execution of assistant function calls.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
import json
import logging
import requests

from ..errors import ToolCallError
from .generation import ToolCall

logger = logging.getLogger(__name__)


class FunctionProcessor(ABC):
    """Executes the function calls a run asks for."""

    @abstractmethod
    def execute(self, tool_call: ToolCall) -> Dict[str, Any]:
        """Run one tool call and return its output, or raise ToolCallError."""
        pass


def format_notification(arguments: Any) -> str:
    """Render function arguments as a notification text."""
    if isinstance(arguments, dict):
        text = "".join(f"📌 {key}: {value}\n" for key, value in arguments.items())
    elif arguments is None:
        text = ""
    else:
        text = str(arguments)

    if not text.strip():
        text = "Нет данных"
    return text


class NotificationFunctionProcessor(FunctionProcessor):
    """Forwards function call arguments to a Telegram chat.

    Assistants use functions such as ``send_lead`` to hand collected contact
    details to the business owner. Whatever the function name, its arguments
    are posted to the configured notification chat.
    """

    api_base = "https://api.telegram.org"

    def __init__(self, bot_token: Optional[str], chat_id: Optional[str], timeout: int = 10):
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.timeout = timeout

    def execute(self, tool_call: ToolCall) -> Dict[str, Any]:
        logger.info(f"Executing function {tool_call.name} (call {tool_call.id})")

        try:
            arguments = json.loads(tool_call.arguments or "{}")
        except json.JSONDecodeError as e:
            raise ToolCallError(f"Invalid arguments for {tool_call.name}: {e}", tool_name=tool_call.name) from e

        if not self.bot_token or not self.chat_id:
            logger.error(f"Telegram notifications are not configured, cannot execute {tool_call.name}")
            return {"success": False, "error": "Notification channel is not configured"}

        text = format_notification(arguments)

        try:
            response = requests.post(
                f"{self.api_base}/bot{self.bot_token}/sendMessage",
                json={"chat_id": self.chat_id, "text": text},
                timeout=self.timeout
            )
            response.raise_for_status()
            result = response.json()
        except requests.exceptions.RequestException as e:
            logger.error(f"HTTP error sending Telegram notification: {e}")
            return {"success": False, "error": f"Telegram request failed: {e}"}

        if not result.get("ok"):
            logger.error(f"Telegram API error: {result.get('description')}")
            return {"success": False, "error": result.get("description") or "Telegram API error"}

        logger.info(f"Function {tool_call.name} data sent to Telegram chat {self.chat_id}")
        return {
            "success": True,
            "data": "Данные успешно отправлены",
            "notification_sent": True
        }
