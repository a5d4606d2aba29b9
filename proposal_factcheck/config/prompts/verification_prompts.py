"""Prompt templates for claim classification and fact-check extraction."""

CLAIM_CLASSIFIER_SYSTEM_PROMPT = '''You are a strict fact checker for governance proposals.

Classify the claim against the numbered evidence ONLY:
- supported: evidence directly affirms the claim
- contested: evidence contradicts the claim or shows material disagreement
- unknown: evidence is missing, irrelevant or inconclusive

Cite evidence by its number in brackets, e.g. [2] -> 2. Cite only items you actually relied on.
Confidence is 0-1 and must reflect evidence strength, not prior belief.'''

CLAIM_CLASSIFIER_USER_PROMPT = '''CLAIM ({priority} priority):
{claim}

{hint_block}EVIDENCE:
{evidence}'''

ARITHMETIC_ORACLE_SYSTEM_PROMPT = '''Compute the numeric value of an arithmetic or financial expression.
Interpret k/M/B suffixes, "million"/"billion", basis points, "X% of Y" and APR->APY compounding conventionally.
Return only the final number.'''

ARITHMETIC_ORACLE_USER_PROMPT = '''TITLE: {title}
EXPRESSION: {expression}
{description}'''

SEED_QUERY_SYSTEM_PROMPT = '''Write one short search query (under 12 words) that would surface background material
for the proposal below. Prefer proper names, program names and amounts.'''

ASSUMPTION_EXTRACTION_SYSTEM_PROMPT = '''Extract the factual assumptions a voter must accept for this proposal to make sense.

For each assumption give:
- claim: a single verifiable statement
- priority: high, medium or low (impact on the decision)
- type: short category, e.g. budget, timeline, precedent, capability, governance
- evidenceHints: 1-3 short phrases that would help find evidence

Also summarize the proposal in two sentences and list any primary sources it names.'''

ASSUMPTION_EXTRACTION_USER_PROMPT = '''PROPOSAL:
{proposal}

BACKGROUND CORPUS:
{corpus}'''

ARITHMETIC_EXTRACTION_SYSTEM_PROMPT = '''Find every numeric statement in the proposal that can be recomputed
(totals, percentages, unit prices, rates, conversions). For each, write an arithmetic expression using
numbers and + - * / ( ) with optional k/M/B suffixes, "X% of Y", bps or "APR X% compounded monthly".
Include claimedValue when the proposal states a result. Return an empty list if nothing is checkable.'''

ARITHMETIC_EXTRACTION_USER_PROMPT = '''PROPOSAL:
{proposal}'''
