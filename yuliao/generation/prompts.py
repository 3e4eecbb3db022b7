"""
LLM Prompts for Practice Content Generation.

Contains prompts for:
- Scenario (one Chinese passage covering several target phrases)
- Answer evaluation (score a translation attempt)
- Review feedback (detailed critique of a spoken scenario answer)
- Corpus extraction (pull expressions out of free text)

Every prompt asks for a JSON object; the generation client requests
``response_format = json_object`` and validates the result.
"""
from __future__ import annotations

# =============================================================================
# Scenario Prompt
# =============================================================================

SCENARIO_PROMPT = """
TASK: Create a natural sight translation paragraph.
TOPIC: {topic}
REQUIRED ENGLISH PHRASES (MUST INCLUDE ALL {count}): {phrases}
{variation}
CRITICAL JSON FORMAT RULES:
1. 'chineseScript': A coherent Chinese passage using the meaning of all phrases.
2. 'highlights': Array of objects.
   - 'text': The EXACT SUBSTRING used in 'englishReference' (even if it is a conjugation
     like "scheduled" instead of "schedule"). This is mandatory for highlighting.
   - 'original': The dictionary form of the English phrase (e.g. "schedule").
   - 'translation': The Chinese meaning.
   - IMPORTANT: NEVER put Chinese text in 'text' or 'original' fields.
3. 'chineseHighlights': The exact Chinese substrings in 'chineseScript' that map to the phrases.
4. Match the register of the phrases. Use native-level, natural English.

Return JSON with this exact structure:
{{
  "topic": "scenario title",
  "chineseScript": "Chinese passage",
  "chineseHighlights": ["highlight 1", "highlight 2"],
  "englishReference": "English passage",
  "highlights": [
    {{"text": "exact phrase in English", "original": "dictionary form", "translation": "Chinese"}}
  ]
}}
"""

# Appended when the learner failed and needs a different sentence for the same phrase
FRESH_VARIATION = """
The learner has already seen a sentence for these phrases. Write a NEW situation with
different wording so the retry is not a verbatim repeat.
"""

# =============================================================================
# Evaluation Prompts
# =============================================================================

EVALUATION_PROMPT = """
Evaluation Task: Compare the "User Answer" with the "Reference English".

Reference English: "{reference}"
User Answer: "{answer}"

Scoring Criteria:
- 100: Meaning is identical, and grammar is correct (ignore small punctuation/case/filler words).
- 70-90: Meaning is correct, but grammar or phrasing is slightly unnatural.
- 40-69: Meaning is partially captured, but core vocabulary or intent is wrong.
- 0-39: Meaning is completely different or irrelevant.

Strict Rules:
1. Focus on SEMANTICS. If the intent is perfect, score above 90.
2. If the user input is irrelevant or generic ("ok", "yes" for a long sentence), score below 10.
3. Provide feedback in concise Chinese (max 10 words).
4. Return JSON: {{ "score": number, "feedback": string }}
"""

REVIEW_FEEDBACK_PROMPT = """Compare user input "{answer}" with reference "{reference}".
Analyze grammar, naturalness, and vocabulary usage. Return the 'feedback' field in CHINESE.

Return JSON with this exact structure:
{{
  "score": 0-100,
  "feedback": "feedback in Chinese",
  "punctuatedTranscript": "user input with correct punctuation",
  "improvedVersion": "improved English version"
}}"""

# =============================================================================
# Extraction Prompt
# =============================================================================

EXTRACTION_PROMPT = """Extract English oral expressions from: "{text}".
Provide Chinese translations and synonyms. Return JSON with this exact structure:
{{
  "items": [
    {{
      "english": "expression",
      "chinese": "Chinese translation",
      "type": "phrase|word|sentence",
      "tags": ["tag1", "tag2"],
      "synonyms": ["synonym1", "synonym2"]
    }}
  ]
}}"""


def get_scenario_prompt(phrases: list[str], topic: str, fresh: bool = False) -> str:
    """
    Build the scenario prompt.

    Args:
        phrases: English target phrases (one for learn mode, several for review)
        topic: Session topic
        fresh: Ask for a different situation than last time

    Returns:
        Formatted prompt string
    """
    return SCENARIO_PROMPT.format(
        topic=topic,
        count=len(phrases),
        phrases=", ".join(phrases),
        variation=FRESH_VARIATION if fresh else "",
    )


def get_evaluation_prompt(answer: str, reference: str) -> str:
    return EVALUATION_PROMPT.format(answer=answer, reference=reference)


def get_review_feedback_prompt(answer: str, reference: str) -> str:
    return REVIEW_FEEDBACK_PROMPT.format(answer=answer, reference=reference)


def get_extraction_prompt(text: str) -> str:
    return EXTRACTION_PROMPT.format(text=text)
