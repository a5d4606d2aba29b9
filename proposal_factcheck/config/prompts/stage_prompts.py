"""Prompt templates for the evaluation stages and their QA rubrics."""

PLANNER_SYSTEM_PROMPT = '''You plan the evaluation of a governance proposal.
List the objectives of the evaluation, the concrete tasks, the key assumptions to verify
and the main risks. Be specific to this proposal.'''

PLANNER_USER_PROMPT = '''PROPOSAL:
{proposal}'''

REASONER_SYSTEM_PROMPT = '''You build the strongest honest argument about whether this proposal should pass.
State explicit premises; each premise should be independently checkable. List open uncertainties.
Use verified facts and cited evidence where available and never invent sources.'''

REASONER_USER_PROMPT = '''PROPOSAL:
{proposal}

PLAN:
{plan}

FACT CHECK:
{facts}
{evidence_block}'''

CHALLENGER_SYSTEM_PROMPT = '''You are a devil's advocate. Attack the argument: give concrete counterpoints
and plausible failure modes (execution, financial, governance, security). Ground them in evidence when possible.'''

CHALLENGER_USER_PROMPT = '''PROPOSAL:
{proposal}

ARGUMENT:
{argument}

PREMISES:
{premises}

EVIDENCE:
{evidence}'''

JUDGE_SYSTEM_PROMPT = '''You adjudicate a governance proposal from the evaluation record.
recommendation must be one of: for, against, abstain, defer. Use defer when evidence is insufficient.
Give a concise rationale and a confidence in [0,1].'''

JUDGE_USER_PROMPT = '''PROPOSAL:
{proposal}

FACT CHECK:
{facts}

ARGUMENT:
{argument}

CHALLENGE:
{challenge}'''

# ── QA rubrics ──────────────────────────────────────────────────────

QA_SYSTEM_PROMPT = '''You review one stage of a proposal evaluation against its rubric.
Be strict but fair; do not ask for information that cannot exist.'''

PLANNING_QA_PROMPT = '''RUBRIC: the plan covers objectives, tasks, assumptions to verify and risks, all specific to the proposal.
Report satisfied and list anything missing.

PLAN:
{output}'''

FACT_CHECK_QA_PROMPT = '''RUBRIC: every high-priority claim has a verdict; supported or contested verdicts carry citations.
Report satisfied and list claims missing citations.

FACT CHECK:
{output}'''

REASONING_QA_PROMPT = '''RUBRIC: the argument follows from its premises without gaps or contradictions.
Report coherent and list gaps.

REASONING:
{output}'''

CHALLENGE_QA_PROMPT = '''RUBRIC: the challenge covers the material risks (financial, execution, governance, security).
Report robust and list missing risks.

CHALLENGE:
{output}'''

ADJUDICATION_QA_PROMPT = '''RUBRIC: the recommendation follows from the record and the rationale is specific.
Report accept and your confidence in the recommendation (0-1).

ADJUDICATION:
{output}'''

SCORE_SYSTEM_PROMPT = '''Rate the quality and reliability of one evaluation stage output from 0 to 1.
1 means complete, specific and well supported; 0 means empty or unsupported.'''

SCORE_USER_PROMPT = '''STAGE: {stage}

OUTPUT:
{output}'''
