SUMMARY_PROMPT_TEMPLATE = """Summarize the earlier part of the conversation below so the assistant can continue it without the full transcript.

Keep:
- facts the user stated about themselves, their goals and constraints
- decisions that were made and open questions that remain
- the outcome of any tool calls that later turns may depend on

Write in the third person, in the language of the conversation, using at most {max_tokens} tokens.

Conversation:
{conversation}

Return a JSON object: {{"summary": "..."}}
"""


SUMMARY_SCHEMA = {
    "type": "object",
    "properties": {"summary": {"type": "string"}},
    "required": ["summary"],
}
