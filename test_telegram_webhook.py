import asyncio
import time
import unittest
from unittest.mock import AsyncMock, MagicMock, patch

from admin_channel.core.agent import TurnResult
from admin_channel.core.errors import ExternalOperationError
from admin_channel.models.state import CallerContext, Channel, KeyboardButton
from admin_channel.services import telegram
from admin_channel.utils.ratelimiter import reset_rate_limits


CALLER = CallerContext(tenant_id="t-1", user_id="u-1")


def _message_update(update_id: int, text: str = "/ayuda", date=None) -> dict:
    return {
        "update_id": update_id,
        "message": {
            "message_id": 10,
            "date": date if date is not None else int(time.time()) + 5,
            "chat": {"id": 555},
            "from": {"id": 777, "username": "operador"},
            "text": text,
        },
    }


def _callback_update(update_id: int, data: str) -> dict:
    return {
        "update_id": update_id,
        "callback_query": {
            "id": "cb-1",
            "from": {"id": 777},
            "data": data,
            # The original bot message may predate the process.
            "message": {"message_id": 9, "date": 1, "chat": {"id": 555}},
        },
    }


def _runtime(caller=CALLER):
    runtime = MagicMock()
    runtime.conversations.get_user_by_channel = AsyncMock(return_value=caller)
    return runtime


class TestTelegramUpdates(unittest.TestCase):
    def setUp(self):
        telegram.reset_update_tracking()
        reset_rate_limits()

    def test_message_is_processed_and_answered(self):
        async def run():
            runtime = _runtime()
            keyboard = [[KeyboardButton(text="Ayuda", callback_data="/ayuda")]]
            with patch.object(telegram, "send_message", new=AsyncMock()) as send, patch.object(
                telegram, "process_admin_message", new=AsyncMock(return_value=TurnResult(text="hola", keyboard=keyboard))
            ) as process:
                await telegram.handle_telegram_update(_message_update(1), request_id="r-1", runtime=runtime)

            runtime.conversations.get_user_by_channel.assert_awaited_once_with(Channel.TELEGRAM, "777")
            self.assertEqual(process.await_args.args[1:], (CALLER, "/ayuda"))
            self.assertEqual(process.await_args.kwargs["message_id"], "10")
            send.assert_awaited_once_with("555", "hola", keyboard)

        asyncio.run(run())

    def test_duplicate_update_is_dropped(self):
        async def run():
            runtime = _runtime()
            with patch.object(telegram, "send_message", new=AsyncMock()), patch.object(
                telegram, "process_admin_message", new=AsyncMock(return_value=TurnResult(text="ok"))
            ) as process:
                await telegram.handle_telegram_update(_message_update(5), runtime=runtime)
                await telegram.handle_telegram_update(_message_update(5), runtime=runtime)
                await telegram.handle_telegram_update(_message_update(4), runtime=runtime)

            self.assertEqual(process.await_count, 1)

        asyncio.run(run())

    def test_stale_message_is_dropped(self):
        async def run():
            runtime = _runtime()
            with patch.object(telegram, "process_admin_message", new=AsyncMock()) as process:
                await telegram.handle_telegram_update(_message_update(1, date=1), runtime=runtime)
            process.assert_not_awaited()

        asyncio.run(run())

    def test_button_press_becomes_command_text(self):
        async def run():
            runtime = _runtime()
            with patch.object(telegram, "send_message", new=AsyncMock()), patch.object(
                telegram, "answer_callback_query", new=AsyncMock()
            ) as answer, patch.object(
                telegram, "process_admin_message", new=AsyncMock(return_value=TurnResult(text="✅"))
            ) as process:
                await telegram.handle_telegram_update(_callback_update(2, "/confirmar"), runtime=runtime)

            answer.assert_awaited_once_with("cb-1")
            self.assertEqual(process.await_args.args[2], "/confirmar")

        asyncio.run(run())

    def test_unlinked_user_is_told(self):
        async def run():
            runtime = _runtime(caller=None)
            with patch.object(telegram, "send_message", new=AsyncMock()) as send, patch.object(
                telegram, "process_admin_message", new=AsyncMock()
            ) as process:
                await telegram.handle_telegram_update(_message_update(3), runtime=runtime)

            send.assert_awaited_once_with("555", telegram.NOT_LINKED_MESSAGE)
            process.assert_not_awaited()

        asyncio.run(run())

    def test_operator_lookup_outage_sends_internal_error(self):
        async def run():
            runtime = _runtime()
            runtime.conversations.get_user_by_channel = AsyncMock(
                side_effect=ExternalOperationError("Get user by channel failed")
            )
            with patch.object(telegram, "send_message", new=AsyncMock()) as send, patch.object(
                telegram, "process_admin_message", new=AsyncMock()
            ) as process:
                await telegram.handle_telegram_update(_message_update(8), runtime=runtime)

            send.assert_awaited_once_with("555", telegram.INTERNAL_ERROR_MESSAGE)
            process.assert_not_awaited()

        asyncio.run(run())

    def test_processing_error_sends_internal_error(self):
        async def run():
            with patch.object(telegram, "send_message", new=AsyncMock()) as send, patch.object(
                telegram, "process_admin_message", new=AsyncMock(side_effect=RuntimeError("boom"))
            ):
                await telegram.handle_telegram_update(_message_update(6), runtime=_runtime())

            send.assert_awaited_once_with("555", telegram.INTERNAL_ERROR_MESSAGE)

        asyncio.run(run())

    def test_rate_limited_user_is_told(self):
        async def run():
            with patch.object(telegram, "send_message", new=AsyncMock()) as send, patch.object(
                telegram, "process_admin_message", new=AsyncMock(return_value=TurnResult(text="ok"))
            ), patch.object(telegram, "check_rate_limit", new=AsyncMock(return_value=False)):
                await telegram.handle_telegram_update(_message_update(7), runtime=_runtime())

            send.assert_awaited_once_with("555", telegram.RATE_LIMITED_MESSAGE)

        asyncio.run(run())


class TestInlineKeyboard(unittest.TestCase):
    def test_rows_map_to_bot_api_markup(self):
        markup = telegram.to_inline_keyboard([[KeyboardButton(text="Sí", callback_data="/confirmar")], []])
        self.assertEqual(markup, {"inline_keyboard": [[{"text": "Sí", "callback_data": "/confirmar"}]]})
        self.assertIsNone(telegram.to_inline_keyboard(None))


if __name__ == "__main__":
    unittest.main()
