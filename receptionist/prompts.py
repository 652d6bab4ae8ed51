"""Default texts for the gym receptionist."""

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful customer service assistant for Global Fit receptionist."
)

DEFAULT_GREETING = "¡Hola! ¿Cómo puedo ayudarte?"
DEFAULT_FALLBACK_MESSAGE = "Lo siento, no entendí tu pregunta."
DEFAULT_OUT_OF_HOURS_MESSAGE = "Estamos cerrados."

DISABLED_MESSAGE = "Chatbot is currently disabled"
TRANSFER_MESSAGE = "Transferring to an agent..."

FLOW_FIRST_STEP_MESSAGE = "Please provide the following information:"
FLOW_COMPLETED_MESSAGE = "Thank you for providing this information!"
FLOW_ENDED_MESSAGE = "Flow session ended."

KNOWLEDGE_SECTION_HEADER = "Relevant knowledge base information:"


def with_knowledge(system_prompt: str, knowledge_context: list[str] | None) -> str:
    """Append retrieved snippets to *system_prompt* as a grounding section."""
    if not knowledge_context:
        return system_prompt
    snippets = "\n\n".join(knowledge_context)
    return f"{system_prompt}\n\n{KNOWLEDGE_SECTION_HEADER}\n{snippets}"
