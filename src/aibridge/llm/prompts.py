"""Instruction prompts used to emulate specialised capabilities via text generation."""

from __future__ import annotations

from collections.abc import Sequence

SENTIMENT_PROMPT = (
    "Analyze the sentiment of the following text and provide a score from -1 "
    "(very negative) to 1 (very positive), and categorize as 'positive', 'negative', "
    "or 'neutral'. Return JSON format with keys 'score' and 'category'. "
    'Text: "{text}"'
)

CLASSIFICATION_PROMPT = (
    "Classify the following text into one of these categories: {categories}. "
    "Return JSON format with keys 'category' and 'confidence' (a number between 0 and 1). "
    'Text: "{text}"'
)

ENTITY_PROMPT = (
    "Extract all named entities (people, organizations, locations, dates, etc.) from the "
    "following text. For each entity, identify its type. Return as a JSON array of objects "
    "with 'entity', 'type', and 'count' properties. "
    'Text: "{text}"'
)

SUMMARIZE_PROMPT = "Summarize the following text in {max_length} characters or less: {text}"

TRANSLATE_PROMPT = "Translate the following text to {language}: {text}"


def sentiment_prompt(text: str) -> str:
    return SENTIMENT_PROMPT.format(text=text)


def classification_prompt(text: str, categories: Sequence[str]) -> str:
    return CLASSIFICATION_PROMPT.format(categories=", ".join(categories), text=text)


def entity_prompt(text: str) -> str:
    return ENTITY_PROMPT.format(text=text)


def summarize_prompt(text: str, max_length: int = 100) -> str:
    return SUMMARIZE_PROMPT.format(max_length=max_length, text=text)


def translate_prompt(text: str, language: str) -> str:
    return TRANSLATE_PROMPT.format(language=language, text=text)
