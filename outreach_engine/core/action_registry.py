"""Action dispatcher: maps action identifiers to side-effecting adapters."""

import inspect
from typing import Any, Awaitable, Callable, Dict

from ..models.core import ActionContext, ActionInput
from .exceptions import ActionRegistryError, MissingActionError, UnsupportedActionError
from .logging import get_logger

logger = get_logger(__name__)

ActionHandler = Callable[[ActionInput, ActionContext], Awaitable[Dict[str, Any]]]


def normalize_action_name(name: Any) -> str:
    return str(name or "").strip().lower()


class ActionDispatcher:
    """Registry of action adapters keyed by identifier (e.g. ``whatsapp.send_template``)."""

    def __init__(self):
        self._handlers: Dict[str, ActionHandler] = {}
        self._descriptions: Dict[str, str] = {}

    def register_action(self, name: str, handler: ActionHandler, description: str = "") -> None:
        """Register an adapter under a new identifier.

        Args:
            name: Action identifier, matched case-insensitively
            handler: Coroutine function (or object with an async ``__call__``)
                taking ``(ActionInput, ActionContext)`` and returning a dict
            description: Optional description of what the action does

        Raises:
            ActionRegistryError: If the name is empty, taken, or the handler is not callable
        """
        action = normalize_action_name(name)
        if not action:
            raise ActionRegistryError("Action name cannot be empty")

        if not callable(handler):
            raise ActionRegistryError(f"Action '{action}' handler must be callable", action=action)

        if not (inspect.iscoroutinefunction(handler)
                or inspect.iscoroutinefunction(getattr(handler, "__call__", None))):
            raise ActionRegistryError(f"Action '{action}' handler must be a coroutine function", action=action)

        if action in self._handlers:
            raise ActionRegistryError(f"Action '{action}' is already registered", action=action)

        self._handlers[action] = handler
        self._descriptions[action] = description.strip() if description else ""
        logger.info(f"Registered action '{action}'")

    def unregister_action(self, name: str) -> bool:
        """Remove an adapter; returns False if it was not registered."""
        action = normalize_action_name(name)
        if action not in self._handlers:
            return False
        del self._handlers[action]
        self._descriptions.pop(action, None)
        logger.info(f"Unregistered action '{action}'")
        return True

    def action_exists(self, name: str) -> bool:
        return normalize_action_name(name) in self._handlers

    def get_action(self, name: str) -> ActionHandler:
        """Return the adapter for an identifier.

        Raises:
            UnsupportedActionError: If nothing is registered under the name
        """
        action = normalize_action_name(name)
        if action not in self._handlers:
            raise UnsupportedActionError(action)
        return self._handlers[action]

    def list_actions(self) -> Dict[str, str]:
        """Map of registered identifiers to their descriptions."""
        return dict(sorted(self._descriptions.items()))

    async def execute(self, action_input: ActionInput, context: ActionContext) -> Dict[str, Any]:
        """Run the adapter named by ``action_input.action``.

        Adapter errors propagate unchanged; nothing is retried here.

        Raises:
            MissingActionError: If the node names no action
            UnsupportedActionError: If no adapter is registered for it
        """
        action = normalize_action_name(action_input.action)
        if not action:
            raise MissingActionError(action_input.node_id)

        handler = self._handlers.get(action)
        if handler is None:
            raise UnsupportedActionError(action, node_id=action_input.node_id)

        normalized = action_input.model_copy(update={"action": action})
        logger.debug(f"Dispatching action '{action}' for node {action_input.node_id}")
        return await handler(normalized, context)
