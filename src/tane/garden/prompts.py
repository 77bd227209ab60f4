"""Prompt sent to the research agent."""

from __future__ import annotations

REPORT_SECTIONS = (
    "Executive Summary",
    "Market Analysis",
    "Competitive Landscape",
    "Strategic Advice",
)

_RESEARCH_PROMPT = """\
You are an expert Venture Capital Researcher.
Your task is to analyze the following startup idea/concept and write a comprehensive research report.

Startup Idea: "{idea}"

Please perform the following steps:
1. Search for existing competitors and similar products.
2. Analyze the market size and trends.
3. Identify potential risks and opportunities.
4. Synthesize all findings into a structured Markdown report.

The report MUST follow this format:
# Research Report: [Idea Name]

## Executive Summary
[Brief overview]

## Market Analysis
[Market size, trends, growth drivers]

## Competitive Landscape
[Major players, gaps, your advantage]

## Strategic Advice
[Recommendations for MVP, go-to-market, etc.]

Do not include any conversational filler. Just output the report.
"""


def build_research_prompt(idea: str) -> str:
    """Render the single research prompt for one seed."""

    return _RESEARCH_PROMPT.format(idea=idea.strip())
