HYDE_PROMPT_TEMPLATE = """Given this question: "{query}"

Write a comprehensive, factual answer that would typically be found in a knowledge base or documentation.
Be specific and include relevant details, but keep it concise (2-3 paragraphs).
Focus on information that directly answers the question.

Answer:"""


EXPANSION_PROMPT_TEMPLATE = """Given this search query: "{query}"

Provide query expansions to improve search results. Return a JSON object with:
1. synonyms: Alternative words or phrases with similar meaning
2. related_terms: Closely related concepts that might appear in relevant documents
3. expanded_query: A reformulated query incorporating key expansions

Keep expansions relevant and avoid overly broad terms.

Example format:
{{
  "synonyms": ["alternative1", "alternative2"],
  "related_terms": ["related1", "related2"],
  "expanded_query": "original query with key alternatives and related concepts"
}}

JSON:"""


EXPANSION_SCHEMA = {
    "type": "object",
    "properties": {
        "synonyms": {"type": "array", "items": {"type": "string"}},
        "related_terms": {"type": "array", "items": {"type": "string"}},
        "expanded_query": {"type": "string"},
    },
    "required": ["synonyms", "related_terms", "expanded_query"],
}


POINTWISE_RERANK_PROMPT_TEMPLATE = """Rate the relevance of the document to the query on a scale from 0 to 10.
Query: {query}

Document:
{document}

Respond with only a number between 0 and 10, where:
- 0 means completely irrelevant
- 5 means somewhat relevant
- 10 means highly relevant

Score:"""


BATCH_RERANK_PROMPT_TEMPLATE = """Given the following query and documents, rate the relevance of each document on a scale from 0 to 10.

Query: {query}

Documents:
{documents}

Please respond with a JSON object holding a "scores" array of objects, each containing:
- "index": the document number (1-based)
- "score": relevance score (0-10)

Example format:
{{"scores": [{{"index": 1, "score": 8.5}}, {{"index": 2, "score": 3.0}}]}}

Response:"""


BATCH_RERANK_SCHEMA = {
    "type": "object",
    "properties": {
        "scores": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "index": {"type": "integer"},
                    "score": {"type": "number"},
                },
                "required": ["index", "score"],
            },
        },
    },
    "required": ["scores"],
}


def format_numbered_documents(documents: list[str]) -> str:
    return "\n\n".join(f"[{i}] {text}" for i, text in enumerate(documents, 1))
