"""Entitlement dispatcher - reward to RCON command mapping and delivery"""
import asyncio
from typing import List, Optional, Sequence

from pydantic import BaseModel, Field

from app.core.config import settings
from app.core.exceptions import DispatchError, UnknownItemTypeError, ValidationError
from app.core.logging import rcon_logger
from app.core.metrics import rcon_commands_counter
from app.services.rcon_service import RconChannel, RconChannelError


# LuckPerms groups granted for a limited time
RANK_GROUPS = {
    "VIP": "vip",
    "VIP+": "vip+",
}

# CrazyCrates crate names for physical keys
KEY_CRATES = {
    "Klucz Rzadki": "rare",
    "Klucz Epicki": "epic",
    "Klucz Legendarny": "legendary",
    "Klucz Mityczny": "mythic",
}


def is_known_item_type(item_type: str) -> bool:
    return item_type in RANK_GROUPS or item_type in KEY_CRATES


def validate_reward(item_type: str, quantity: int) -> None:
    """Raise ValidationError unless item_type and quantity describe a grantable reward"""
    if not is_known_item_type(item_type):
        raise UnknownItemTypeError(item_type)
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise ValidationError(f"Quantity must be a positive integer, got {quantity!r}")


def validate_nick(nick: str) -> str:
    """Nicks are spliced into command lines, so they must be a single token"""
    nick = (nick or "").strip()
    if not nick or any(ch.isspace() for ch in nick):
        raise ValidationError(f"Invalid Minecraft nick: {nick!r}")
    return nick


def resolve_commands(item_type: str, quantity: int, nick: str) -> List[str]:
    """Map a reward to the RCON commands that deliver it. No side effects.

    Raises:
        UnknownItemTypeError: item_type is not in the mapping table
        ValidationError: quantity is not positive or the nick is unusable
    """
    validate_reward(item_type, quantity)
    nick = validate_nick(nick)

    if item_type in RANK_GROUPS:
        group = RANK_GROUPS[item_type]
        return [f"lp user {nick} parent settemp {group} {settings.RANK_DURATION}"]

    crate = KEY_CRATES[item_type]
    return [f"crate give physical {crate} {quantity} {nick}"]


def describe_reward(item_type: str, quantity: int) -> str:
    """Human readable reward, e.g. 'Klucz Epicki x3'"""
    return f"{item_type} x{quantity}" if quantity > 1 else item_type


class DispatchOutcome(BaseModel):
    commands: List[str] = Field(default_factory=list)
    responses: List[str] = Field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return len(self.responses)


class EntitlementDispatcher:
    """Sends resolved commands over RCON, one session per command.

    Failed commands are never retried here: a grant whose outcome is unknown
    may already have been applied by the server.
    """

    def __init__(
        self,
        channel: RconChannel,
        timeout: Optional[float] = None,
        failure_markers: Optional[Sequence[str]] = None,
    ):
        self.channel = channel
        self.timeout = timeout if timeout is not None else settings.RCON_TIMEOUT
        self.failure_markers = list(
            failure_markers if failure_markers is not None else settings.RCON_FAILURE_MARKERS
        )

    def resolve_commands(self, item_type: str, quantity: int, nick: str) -> List[str]:
        return resolve_commands(item_type, quantity, nick)

    def is_acknowledged(self, response: str) -> bool:
        return not any(marker in (response or "") for marker in self.failure_markers)

    async def _run_in_session(self, command: str) -> str:
        async with self.channel.session() as rcon_session:
            return await rcon_session.send(command)

    async def send(self, command: str) -> str:
        """Run a single command in its own session.

        The timeout covers connecting, authenticating and sending.

        Raises:
            DispatchError: with cause 'timeout', 'connection', 'auth', 'send'
                or 'rejected'
        """
        try:
            response = await asyncio.wait_for(self._run_in_session(command), timeout=self.timeout)
        except asyncio.TimeoutError:
            rcon_commands_counter.labels(status="timeout").inc()
            raise DispatchError(command, "timeout")
        except RconChannelError as e:
            rcon_commands_counter.labels(status=e.cause).inc()
            raise DispatchError(command, f"{e.cause}: {e}") from e

        if not self.is_acknowledged(response):
            rcon_commands_counter.labels(status="rejected").inc()
            raise DispatchError(command, f"rejected: {response.strip()}")

        rcon_commands_counter.labels(status="ok").inc()
        rcon_logger.info(f"Command executed: {command}")
        rcon_logger.info(f"Response: {response}")
        return response

    async def dispatch(self, commands: Sequence[str]) -> DispatchOutcome:
        """Send commands in order, stopping at the first failure.

        Commands before the failing one stay applied; the raised
        DispatchError reports how many succeeded.
        """
        outcome = DispatchOutcome(commands=list(commands))
        for command in commands:
            try:
                response = await self.send(command)
            except DispatchError as e:
                e.succeeded = outcome.succeeded
                rcon_logger.error(
                    f"RCON dispatch failed on {command!r} after {e.succeeded}/{len(commands)} "
                    f"commands: {e.cause}"
                )
                raise
            outcome.responses.append(response)
        return outcome

    async def check_connection(self) -> str:
        """Run the 'list' command to verify the channel works"""
        return await self.send("list")
