"""Per-definition dynamic context.

Definitions are stored data, so the code that looks up extra context for a
run (an organisation profile, a candidate record...) is registered next to
the engine instead, keyed by definition id::

    async def candidate_context(definition, context):
        return f"Organisation ID: {context.org_id}"

    EngineDeps(..., context_providers={"reference-check": candidate_context})

The provider is awaited once per run, before the first model call. Its text
is appended to the ``CONTEXT:`` layer of the system prompt.
"""

from __future__ import annotations

import logging
from typing import Mapping, Optional, Protocol

from ..schemas.definition import AgentDefinition
from ..schemas.execution import ExecutionContext

logger = logging.getLogger(__name__)


class ContextProvider(Protocol):
    async def __call__(self, definition: AgentDefinition, context: ExecutionContext) -> Optional[str]: ...


async def resolve_dynamic_context(
    providers: Mapping[str, ContextProvider],
    definition: AgentDefinition,
    context: ExecutionContext,
) -> Optional[str]:
    """Run the definition's provider, if any.

    A failing provider is logged and skipped; the run goes on with the
    built-in context only.
    """
    provider = providers.get(definition.id)
    if provider is None:
        return None
    try:
        text = await provider(definition, context)
    except Exception as e:
        logger.warning(f"Context provider for {definition.id} failed; continuing without it: {e}")
        return None
    if text is None or not str(text).strip():
        return None
    return str(text).strip()
