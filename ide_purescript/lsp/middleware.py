"""
Global interception pipeline for protocol traffic.

Interceptors are registered once and wrap every outgoing request and
notification and every incoming response of every session, whether the
session was created before or after registration.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Iterable, List, Optional

from ide_purescript.lsp.lsp_types import MessageKind
from ide_purescript.utils.logger import setup_logger

logger = setup_logger(__name__)


@dataclass(frozen=True)
class ProtocolMessage:
    """A message travelling through the pipeline.

    For requests and notifications ``payload`` is the params object; for
    responses it is the result.
    """

    kind: MessageKind
    method: str
    payload: Any = None
    root: Optional[str] = None

    def with_payload(self, payload: Any) -> "ProtocolMessage":
        return replace(self, payload=payload)


NextHandler = Callable[[ProtocolMessage], Awaitable[Any]]
Interceptor = Callable[[ProtocolMessage, NextHandler], Awaitable[Any]]


@dataclass(frozen=True)
class InterceptorRecord:
    token: str
    interceptor: Interceptor
    kinds: FrozenSet[MessageKind]


class MiddlewarePipeline:
    """Ordered, replaceable chain of interceptors."""

    def __init__(self) -> None:
        # dicts keep insertion order, and deleting a key keeps the others in place
        self._records: Dict[str, InterceptorRecord] = {}

    def use(
        self,
        interceptor: Interceptor,
        kinds: Optional[Iterable[MessageKind]] = None,
    ) -> str:
        """Append ``interceptor`` to the chain and return its removal token.

        ``kinds`` limits the message kinds it wraps; all kinds by default.
        """
        token = uuid.uuid4().hex
        wrapped = frozenset(MessageKind(k) for k in kinds) if kinds else frozenset(MessageKind)
        self._records[token] = InterceptorRecord(token, interceptor, wrapped)
        logger.debug(
            f"Registered interceptor {token} for {sorted(k.value for k in wrapped)}"
        )
        return token

    def remove(self, token: str) -> bool:
        removed = self._records.pop(token, None) is not None
        if not removed:
            logger.debug(f"Interceptor {token} was not registered")
        return removed

    def clear(self) -> None:
        self._records.clear()

    def __len__(self) -> int:
        return len(self._records)

    def interceptors_for(self, kind: MessageKind) -> List[Interceptor]:
        return [r.interceptor for r in self._records.values() if kind in r.kinds]

    async def run(self, message: ProtocolMessage, final: NextHandler) -> Any:
        """Pass ``message`` through the chain, ending in ``final``."""
        chain = self.interceptors_for(message.kind)

        async def call(index: int, current: ProtocolMessage) -> Any:
            if index == len(chain):
                return await final(current)

            async def call_next(next_message: ProtocolMessage) -> Any:
                return await call(index + 1, next_message)

            return await chain[index](current, call_next)

        return await call(0, message)
