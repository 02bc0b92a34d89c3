"""All prompts used by the research pipeline."""

# ──────────────────────────────────────────────────────────────────────
# OUTLINE
# ──────────────────────────────────────────────────────────────────────

OUTLINE_SYSTEM = "You are an experienced academic research advisor. Always answer in JSON."

OUTLINE_PROMPT = """
Topic: "{topic}"
Today's date: {current_date}

Goal: design the table of contents for a doctoral-level research report
with roughly {chapter_count} main chapters.

Requirements:
1. The title must be scholarly and descriptive. Write the title and every
   chapter heading in {language}.
2. Together the chapters must cover: historical background, the underlying
   technical or causal mechanism, market and industry analysis, current
   challenges, and the future outlook.
3. Do NOT include any chapter on ethics or moral debate.
4. Chapters must build on each other in a logical progression.

Return JSON only:
{{"title": "Report title", "chapters": ["1. Introduction", "2. Background", "..."]}}
"""

# ──────────────────────────────────────────────────────────────────────
# CHAPTER QUERIES
# ──────────────────────────────────────────────────────────────────────

QUERY_SYSTEM = "You are a search expert. Return a JSON array of strings."

QUERY_PROMPT = """
Topic: "{topic}"
Chapter: "{chapter}"
Findings from earlier chapters: {recent_findings}

Generate {query_count} highly specific, high-value web search queries that
gather material for this chapter. Build on the earlier findings instead of
repeating them. Focus on statistics, recent papers and technical detail,
and prefer the latest data: include "{year}" or "{previous_year}" in the
queries where recency matters.

Return a JSON array only: ["query 1", "query 2", "query 3"]
"""

# ──────────────────────────────────────────────────────────────────────
# SEARCH
# ──────────────────────────────────────────────────────────────────────

GROUNDED_SEARCH_PROMPT = """
Research task: "{query}"
Extract precise facts, figures and dates from current web sources.
Summarize the findings in {language}.
"""

KNOWLEDGE_SEARCH_SYSTEM = "You are a helpful research assistant."

KNOWLEDGE_SEARCH_PROMPT = """
You are a search engine with up-to-date knowledge of the internet.
Give a detailed, fact-based summary for the query below, including data,
dates and key entities. Write in {language}.
Query: "{query}"

Where you can, end with the names of the institutions that usually
publish authoritative data on this subject (you cannot browse, but you
can name them).
"""

# ──────────────────────────────────────────────────────────────────────
# CHAPTER WRITER
# ──────────────────────────────────────────────────────────────────────

WRITER_SYSTEM = "You are a rigorous postdoctoral researcher. Write in Markdown."

WRITER_PROMPT = """
Topic: "{topic}"
Current chapter: "{chapter_title}"
Today's date: {current_date}

Research findings (each finding lists the citation numbers it may use):
{findings}

Available references for this chapter:
{references}

Task: write the complete text of this chapter.

Requirements:
1. Tone: formal, objective and information-dense. Write entirely in {language}.
2. Length: thorough detail, about 800-1500 words.
3. Diagram: you MUST include exactly one Mermaid diagram in a ```mermaid block.
   Use only `graph TD`, `graph LR` or `pie`. Wrap every node label in double
   quotes and keep labels free of brackets, parentheses and semicolons.
4. Tables: any statistics MUST be presented as a Markdown table.
5. Citations: cite inline with bracketed numbers such as [1] or [2, 3].
   Only use numbers that appear in the available references above. Never
   invent, renumber or shift citation numbers. If no reference supports a
   claim, leave it uncited. Do NOT add a reference list at the end of the
   chapter; references are collected at the end of the report.
6. Formatting: use Markdown H2, H3 and H4 headings, tables and lists. Use
   bold only for key terms, never for whole sentences. Use a blockquote at
   most once, for the chapter's central conclusion.

Write only this chapter. Do not add preamble such as "Here is the chapter";
output the Markdown directly.
"""
