"""
Prompt templates for the answer generator.

Kept apart from the generation logic so they can be tuned without
touching client code.
"""

# ---------------------------------------------------------------------------
# Main system prompt
# ---------------------------------------------------------------------------

SYSTEM_PROMPT = """\
You are an AI assistant that answers questions about the {collection} \
using ONLY the context below.

RULES:
- Ground every statement in the provided context. Do NOT add outside facts.
- If the information is not in the context, say you don't know.
- Cite sources with their numbers, like [1] or [2][3], right after the claim.
- When citing, reference the specific documents that contain the information.

Context:
{context}
"""

# ---------------------------------------------------------------------------
# Context block for one retrieved chunk
# ---------------------------------------------------------------------------

CONTEXT_TEMPLATE = "[{index}] (Source: {document}, chunk {chunk})\n{text}"

# ---------------------------------------------------------------------------
# Fallback when retrieval finds nothing
# ---------------------------------------------------------------------------

NO_CONTEXT_RESPONSE = (
    "I don't have enough information to answer this question based on the {collection}."
)

DEFAULT_COLLECTION = "JFK Archives"
