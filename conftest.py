"""Shared test fixtures and utilities."""

from unittest.mock import MagicMock


def make_openai_response(text="hello", prompt_tokens=10, completion_tokens=5):
    """Build a mock OpenAI ChatCompletion response."""
    msg = MagicMock()
    msg.content = text
    choice = MagicMock()
    choice.message = msg
    usage = MagicMock()
    usage.prompt_tokens = prompt_tokens
    usage.completion_tokens = completion_tokens
    resp = MagicMock()
    resp.choices = [choice]
    resp.usage = usage
    return resp


def word_count(text):
    """Stand-in tokenizer: one token per whitespace-separated word."""
    return len(text.split())


class ScriptedGenerator:
    """Fake text-generation capability returning canned responses in order."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def __call__(self, template, variables):
        self.calls.append((template, dict(variables)))
        if not self.responses:
            return ""
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response
