"""Prompt templates for the reasoning collaborator.

Modules:
    retrieval_prompts: Search planning, query rewrite and expansion decisions
    verification_prompts: Claim classification, arithmetic oracle and extraction
    stage_prompts: Evaluation stages, QA rubrics and confidence scoring
"""
