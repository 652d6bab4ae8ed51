"""Gym Receptionist: a WhatsApp receptionist agent for Global Fit.

Architecture Overview
=====================

Each inbound message is handed to :class:`~receptionist.core.agent_engine.AgentEngine`
together with the sender's session.  The engine walks a fixed decision order
and returns exactly one reply:

1. **Gates**: chatbot disabled, or outside business hours.
2. **Active flow**: the message answers the current step of a guided dialogue.
3. **Keyword rules**: transfer rules, flow starters, then plain text replies.
4. **Greeting**: the first message of a new session gets the default greeting.
5. **AI**: an LLM reply through an ordered chain of providers, optionally
   grounded with snippets from the knowledge base.
6. **Fallback**: the configured fallback message.

Key Design Decisions
--------------------
- **Deterministic first**: rules and flows answer before any paid AI call.
- **Providers**: OpenAI and DeepSeek over ``httpx``, Anthropic via
  ``langchain-anthropic``.  Errors are classified as retryable (rate limits,
  5xx, timeouts) or not (auth, bad request); only retryable errors move on
  to the next provider in the fallback chain.
- **Sessions**: owned by the transport, mutated by the engine for the
  duration of one call.  History is trimmed to a bounded window.
- **Dual Interface**: FastAPI test-chat server + CLI chat loop.

Package Structure
-----------------
- ``receptionist/models.py``: Pydantic data model (sessions, rules, flows, settings)
- ``receptionist/config.py``: Configuration from environment variables
- ``receptionist/prompts.py``: Default texts and knowledge prompt section
- ``receptionist/agent.py``: Builds a configured engine
- ``receptionist/core/``: Engine, keyword matcher, flow executor, context, business hours
- ``receptionist/providers/``: LLM providers and the fallback factory
- ``receptionist/services/``: Rule and knowledge stores, retrieval, cache, metrics
- ``receptionist/api/``: FastAPI routes and Pydantic schemas
- ``receptionist/server.py``: FastAPI application
- ``receptionist/main.py``: CLI chat interface
"""
