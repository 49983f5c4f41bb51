"""Text-generation capability: render a prompt template, return model text."""

import threading
import weakref
from typing import Callable, Mapping, Optional

from langchain_core.prompts import PromptTemplate

from transcript_digest.shared import (
    tprint as print,
    DigestConfig,
    create_llm_client, llm_call_with_retry,
)

# (template, variables) -> generated text
TextGenerator = Callable[[str, Mapping[str, str]], str]

GENERATION_TEMPERATURE = 0.01


def render_prompt(template: str, variables: Mapping[str, str]) -> str:
    """Substitute ``{name}`` placeholders; literal braces are written ``{{ }}``.

    Variables the template does not mention are ignored. A placeholder
    without a value raises KeyError.
    """
    prompt = PromptTemplate.from_template(template)
    values = {k: v for k, v in variables.items() if k in prompt.input_variables}
    return prompt.format(**values)


class SingleSlotGenerator:
    """Serialize calls to a generator so at most one is outstanding."""

    def __init__(self, generate: TextGenerator, slot: Optional[threading.Semaphore] = None):
        self._generate = generate
        self._slot = slot if slot is not None else threading.Semaphore(1)

    def __call__(self, template: str, variables: Mapping[str, str]) -> str:
        with self._slot:
            return self._generate(template, variables)


# generator -> its semaphore; values never reference the key, so entries
# disappear with the generator
_slots = weakref.WeakKeyDictionary()
_slots_lock = threading.Lock()


def single_slot(generate: TextGenerator) -> SingleSlotGenerator:
    """Guard generate with the one semaphore every caller of it shares.

    Summarizers running in different threads on the same generator wait for
    each other. Generators that cannot be weakly referenced get a private
    slot.
    """
    if isinstance(generate, SingleSlotGenerator):
        return generate
    with _slots_lock:
        try:
            slot = _slots.get(generate)
            if slot is None:
                slot = _slots[generate] = threading.Semaphore(1)
        except TypeError:
            slot = None
    return SingleSlotGenerator(generate, slot)


class LLMGenerator:
    """Generator backed by the configured LLM (local server or Anthropic API).

    Transport errors that survive llm_call_with_retry propagate unchanged.
    """

    def __init__(self, config: DigestConfig, client=None):
        self.config = config
        self.client = client if client is not None else create_llm_client(config)
        self.model = config.local_model if config.local else config.claude_model

    def __call__(self, template: str, variables: Mapping[str, str]) -> str:
        prompt = render_prompt(template, variables)
        message = llm_call_with_retry(
            self.client, self.config,
            model=self.model,
            max_tokens=self.config.max_tokens,
            temperature=GENERATION_TEMPERATURE,
            messages=[{"role": "user", "content": prompt}],
        )
        text = message.content[0].text.strip()
        if self.config.verbose:
            print(f"    Response: {len(text)} chars, usage: "
                  f"{message.usage.input_tokens} in / {message.usage.output_tokens} out")
        return text
