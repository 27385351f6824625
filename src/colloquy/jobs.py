"""Background conversation jobs.

A job freezes a conversation into JSON so a worker process can send it
later. It makes exactly one Messages API call and never runs the tool loop,
because the worker is not guaranteed to have the tool handlers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import importlib
import inspect
import json
import logging
from typing import TYPE_CHECKING, Any, ClassVar, Protocol, runtime_checkable

from colloquy.errors import ConfigurationError
from colloquy.payload import ConversationConfig, PayloadBuilder
from colloquy.retry import RetryPolicy, retry_async, should_retry_api_error

if TYPE_CHECKING:
    from colloquy.transport.base import MessagesClient

logger = logging.getLogger(__name__)


@runtime_checkable
class ConversationCallback(Protocol):
    """Receives the outcome of a background job. Methods may be async."""

    def on_success(self, response: Any, context: dict[str, Any]) -> Any: ...

    def on_failure(self, error: BaseException, context: dict[str, Any]) -> Any: ...


def resolve_callback(path: str) -> ConversationCallback:
    """Import ``"package.module:Name"``; classes are instantiated without arguments."""
    module_name, sep, qualname = path.partition(":")
    if not sep or not module_name or not qualname:
        raise ConfigurationError(
            f"Invalid callback path '{path}'",
            hint="Use the form 'package.module:CallbackClass'.",
        )
    try:
        target: Any = importlib.import_module(module_name)
        for attr in qualname.split("."):
            target = getattr(target, attr)
    except (ImportError, AttributeError) as e:
        raise ConfigurationError(f"Cannot resolve callback '{path}': {e}") from e

    if inspect.isclass(target):
        target = target()
    if not isinstance(target, ConversationCallback):
        raise ConfigurationError(
            f"Callback '{path}' must define on_success() and on_failure()"
        )
    return target


async def _invoke(method: Any, *args: Any) -> None:
    outcome = method(*args)
    if inspect.isawaitable(outcome):
        await outcome


@dataclass(frozen=True)
class ConversationJob:
    """A serializable single-call conversation with a completion callback."""

    tries: ClassVar[int] = 3
    #: Fixed delay in seconds between attempts.
    backoff: ClassVar[float] = 10.0

    config: ConversationConfig
    callback: str
    context: dict[str, Any] = field(default_factory=dict)

    @property
    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy.fixed(attempts=self.tries, delay_s=self.backoff)

    def to_json(self) -> str:
        return json.dumps(
            {
                "config": self.config.to_dict(),
                "callback": self.callback,
                "context": self.context,
            }
        )

    @classmethod
    def from_json(cls, raw: str | bytes) -> ConversationJob:
        data = json.loads(raw)
        return cls(
            config=ConversationConfig.from_dict(data["config"]),
            callback=data["callback"],
            context=data.get("context") or {},
        )

    async def handle(self, client: MessagesClient) -> Any:
        """Send the request, retrying API errors, then report to the callback.

        On terminal failure ``on_failure`` is called and the error re-raised.
        """
        callback = resolve_callback(self.callback)
        payload = PayloadBuilder(self.config).build()

        try:
            response = await retry_async(
                lambda: client.create_message(payload),
                policy=self.retry_policy,
                should_retry=should_retry_api_error,
            )
        except Exception as e:
            logger.warning(
                "Conversation job failed: %s (%s)", type(e).__name__, e
            )
            await _invoke(callback.on_failure, e, self.context)
            raise

        await _invoke(callback.on_success, response, self.context)
        return response
