from dataclasses import dataclass, field
from typing import Dict

FUNCTION_NAMES = ("act", "extract", "observe", "agent")


@dataclass
class FunctionUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    inference_time_ms: int = 0


@dataclass
class UsageMetrics:
    """Token and latency counters, bucketed by the calling function."""
    buckets: Dict[str, FunctionUsage] = field(
        default_factory=lambda: {name: FunctionUsage() for name in FUNCTION_NAMES})

    def update(self, function_name: str, prompt_tokens: int,
               completion_tokens: int, inference_time_ms: int) -> None:
        if function_name not in self.buckets:
            raise ValueError(f"Unknown metrics bucket: {function_name}")
        bucket = self.buckets[function_name]
        bucket.prompt_tokens += prompt_tokens
        bucket.completion_tokens += completion_tokens
        bucket.inference_time_ms += inference_time_ms

    @property
    def total_prompt_tokens(self) -> int:
        return sum(b.prompt_tokens for b in self.buckets.values())

    @property
    def total_completion_tokens(self) -> int:
        return sum(b.completion_tokens for b in self.buckets.values())

    @property
    def total_inference_time_ms(self) -> int:
        return sum(b.inference_time_ms for b in self.buckets.values())
