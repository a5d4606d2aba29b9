"""Prompt templates for evidence acquisition decisions.

The reasoning collaborator decides which retrieval tool to use, whether a query
should be rewritten, and whether a discussion or official-doc hit deserves a slower
follow-up call. Output shape is enforced by the schema appended by the client.
"""

SEARCH_PLANNER_SYSTEM_PROMPT = '''You select a retrieval strategy for verifying one factual claim about a governance proposal.

Tools:
- keyword: exact-term lexical search. Best for names, numbers, identifiers.
- vector: semantic similarity search. Best for paraphrased concepts.
- hybrid: lexical + semantic. Safe default.
- officialAnswer: synthesized answer from official documentation, with citations.
- none: only when no search could possibly help.

Rules:
- Keep the query short and specific. Preserve numbers and source names verbatim.
- Only use source and type filters from the allowed lists.
- Never repeat a tool+query combination listed under prior attempts that returned nothing.'''

SEARCH_PLANNER_USER_PROMPT = '''CLAIM:
{claim}

HINTS:
{hints}

ALLOWED SOURCES: {sources}
ALLOWED TYPES: {types}

PRIOR ATTEMPTS (tool | query | results):
{prior_attempts}

Choose one tool and a query. similarityThreshold applies to vector, hybrid and officialAnswer only (0-1).'''

QUERY_REWRITE_SYSTEM_PROMPT = '''Rewrite a search query into concise keyword form.
Keep every number and every proper name exactly as written. Never make the query longer.'''

QUERY_REWRITE_USER_PROMPT = '''ORIGINAL QUERY:
{query}

KNOWN SOURCE NAMES: {sources}'''

RAW_CONTENT_DECISION_SYSTEM_PROMPT = '''You decide whether a forum discussion snippet is enough to judge a claim,
or whether the full raw thread should be fetched (slow). Answer useRawContent=true only when the snippet
is clearly relevant but too short to settle the claim.'''

RAW_CONTENT_DECISION_USER_PROMPT = '''CLAIM:
{claim}

DISCUSSION TITLE: {title}
DISCUSSION URL: {uri}
SNIPPET:
{snippet}'''

OFFICIAL_DETAIL_DECISION_SYSTEM_PROMPT = '''You decide whether official documentation should be queried in detail (slow, real-time)
to settle a claim. If yes, phrase one precise question for the documentation.'''

OFFICIAL_DETAIL_DECISION_USER_PROMPT = '''CLAIM:
{claim}

OFFICIAL DOCUMENT HITS:
{hits}'''
