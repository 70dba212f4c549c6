"""
MessageBus -- in-process delivery of AgentMessages between registered agents.

Two delivery modes:

  deliver(message)  one recipient, returns its reply (the reply is not routed)
  send(message)     queue-driven: routes the message, then every reply, until
                    the queue drains or the hop limit is hit

Routing in send(): to_agent None broadcasts to every agent except the sender;
a registered role gets the message directly; anything else (e.g. "system")
lands in the inbox.

Usage:
    bus = MessageBus(registry)
    await bus.send(new_message(SYSTEM_ADDRESS, AgentRole.DIRECTOR,
                               {"action": Action.CREATE_PROJECT, "title": "Harbor"}))
    bus.inbox  # replies addressed to the system
"""

import logging
from collections import deque

from .messages import AgentMessage, AgentRole
from .registry import AgentRegistry

logger = logging.getLogger(__name__)

DEFAULT_MAX_HOPS = 50


class MessageBus:
    def __init__(self, registry: AgentRegistry, max_hops: int = DEFAULT_MAX_HOPS):
        self._registry = registry
        self._max_hops = max_hops
        self.inbox: list[AgentMessage] = []
        self.transcript: list[AgentMessage] = []

    async def deliver(self, message: AgentMessage) -> AgentMessage | None:
        """
        Hand a direct message to its recipient and return the reply.

        Raises UnknownAgentError if no agent holds the addressed role.
        """
        if message.to_agent is None:
            raise ValueError("deliver() needs a recipient; use send() to broadcast")
        agent = self._registry.get(message.to_agent)
        self.transcript.append(message)
        logger.debug(
            f"[MessageBus] {message.from_agent} -> {message.to_agent}: "
            f"{message.type}/{message.action or '-'}"
        )
        reply = await agent.process(message)
        if reply is not None:
            self.transcript.append(reply)
        return reply

    async def send(self, message: AgentMessage) -> list[AgentMessage]:
        """
        Route a message and all follow-up replies.

        Returns the messages routed during this call, in order.
        """
        queue = deque([message])
        routed: list[AgentMessage] = []

        while queue:
            if len(routed) >= self._max_hops:
                logger.warning(
                    f"[MessageBus] Hop limit {self._max_hops} reached, "
                    f"dropping {len(queue)} queued message(s)"
                )
                break
            current = queue.popleft()
            routed.append(current)
            self.transcript.append(current)

            for agent in self._recipients(current):
                logger.debug(
                    f"[MessageBus] {current.from_agent} -> {agent.role.value}: "
                    f"{current.type}/{current.action or '-'}"
                )
                reply = await agent.process(current)
                if reply is not None:
                    queue.append(reply)

        return routed

    def _recipients(self, message: AgentMessage) -> list:
        if message.to_agent is None:
            return [a for a in self._registry.get_all() if a.role.value != message.from_agent]
        if self._registry.has(message.to_agent):
            return [self._registry.get(message.to_agent)]
        if message.to_agent in {r.value for r in AgentRole}:
            logger.warning(f"[MessageBus] No agent for role '{message.to_agent}', message dropped")
        else:
            self.inbox.append(message)
        return []
