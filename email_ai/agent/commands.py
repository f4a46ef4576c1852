"""Request/response command surface over the sync controller."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from email_ai.agent.controller import CycleReport, CycleStatus, result_to_dict
from email_ai.storage.db import utc_now

if TYPE_CHECKING:
    from email_ai.agent.controller import SyncController

logger = logging.getLogger(__name__)


class Command(str, Enum):
    SYNC_NOW = "sync_now"
    FORCE_SYNC = "force_sync"
    PROCESS_ONE = "process_one"
    GET_STATUS = "get_status"
    PING = "ping"


@dataclass(frozen=True)
class CommandRequest:
    command: Command
    message_id: str | None = None

    @classmethod
    def parse(cls, payload: Mapping[str, Any]) -> CommandRequest:
        """Build a request from a ``{"type": ..., "message_id": ...}`` mapping.

        Raises:
            ValueError: unknown command type.
        """
        raw = str(payload.get("type", "")).strip().lower()
        try:
            command = Command(raw)
        except ValueError:
            raise ValueError(f"Unknown command: {raw!r}") from None
        message_id = payload.get("message_id")
        return cls(command=command, message_id=str(message_id) if message_id else None)


@dataclass(frozen=True)
class CommandResponse:
    success: bool
    data: dict[str, Any] = field(default_factory=dict)
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"success": self.success, "data": self.data, "error": self.error}


Handler = Callable[[CommandRequest], Awaitable[CommandResponse]]


class CommandDispatcher:
    """Routes each Command to its handler; every call yields a CommandResponse.

    The handler table must cover the whole Command enum.  A missing entry is
    caught when the dispatcher is built, not when the command first arrives.
    """

    def __init__(self, controller: SyncController) -> None:
        self._controller = controller
        self._handlers: dict[Command, Handler] = {
            Command.SYNC_NOW: self._sync_now,
            Command.FORCE_SYNC: self._force_sync,
            Command.PROCESS_ONE: self._process_one,
            Command.GET_STATUS: self._get_status,
            Command.PING: self._ping,
        }
        missing = set(Command) - self._handlers.keys()
        if missing:
            raise TypeError(f"No handler for command(s): {sorted(c.value for c in missing)}")

    async def dispatch(self, request: CommandRequest | Mapping[str, Any]) -> CommandResponse:
        try:
            if not isinstance(request, CommandRequest):
                request = CommandRequest.parse(request)
        except ValueError as exc:
            return CommandResponse(success=False, error=str(exc))

        logger.debug("Dispatching %s", request.command.value)
        try:
            return await self._handlers[request.command](request)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.error("Command %s failed: %s", request.command.value, exc, exc_info=True)
            return CommandResponse(success=False, error=f"{type(exc).__name__}: {exc}")

    # ── Handlers ───────────────────────────────────────────────────────────────

    async def _sync_now(self, request: CommandRequest) -> CommandResponse:
        return _cycle_response(await self._controller.run_sync_cycle())

    async def _force_sync(self, request: CommandRequest) -> CommandResponse:
        return _cycle_response(await self._controller.force_sync())

    async def _process_one(self, request: CommandRequest) -> CommandResponse:
        if not request.message_id:
            return CommandResponse(success=False, error="process_one requires a message_id")
        result = await self._controller.process_one(request.message_id)
        if result is None:
            return CommandResponse(
                success=True,
                data={"message_id": request.message_id, "skipped": "already_processed"},
            )
        return CommandResponse(
            success=result.succeeded,
            data=result_to_dict(result),
            error=result.error_reason,
        )

    async def _get_status(self, request: CommandRequest) -> CommandResponse:
        return CommandResponse(success=True, data=self._controller.status().to_dict())

    async def _ping(self, request: CommandRequest) -> CommandResponse:
        return CommandResponse(success=True, data={"pong": True, "timestamp": utc_now()})


def _cycle_response(report: CycleReport) -> CommandResponse:
    return CommandResponse(
        success=report.status is not CycleStatus.FAILED,
        data=report.to_dict(),
        error=report.error,
    )
