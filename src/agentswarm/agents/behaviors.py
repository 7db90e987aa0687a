"""Prompt-driven agent behavior backed by the provider router."""

from __future__ import annotations

import json
import re
import textwrap
from typing import Any, Dict, Optional

from ..llm.provider import GenerateOptions
from ..tasks.base import Task
from .base import Agent, AgentType, TaskAnalysis, ValidationResult

_FENCE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)

ROLE_GUIDANCE: Dict[AgentType, str] = {
    AgentType.DEVELOPER: "Write clean, documented, production-ready code with file names.",
    AgentType.QA: "Produce concrete test cases, expected results and coverage notes.",
    AgentType.DEVOPS: "Describe deployment steps, infrastructure and monitoring.",
    AgentType.PRODUCT_MANAGER: "Produce requirements, user stories and acceptance criteria.",
    AgentType.DESIGNER: "Describe layouts, components and a style guide.",
    AgentType.MARKETING: "Produce campaign content tailored to the target audience.",
    AgentType.TECH_WRITER: "Produce clear, structured documentation.",
    AgentType.RESEARCH: "Summarize findings with sources and open questions.",
    AgentType.SEO: "Give keyword strategy, on-page and technical SEO recommendations.",
    AgentType.LEAD_GENERATION: "Design channels, funnels and conversion tactics.",
    AgentType.AI_ML: "Propose models, evaluation design and MLOps readiness.",
    AgentType.MENTOR: "Give actionable feedback, growth areas and a follow-up plan.",
}


def extract_json(text: str) -> Optional[Any]:
    """Best-effort parse of a JSON document embedded in model output."""

    if not text:
        return None
    candidates = [text.strip()]
    candidates.extend(match.strip() for match in _FENCE.findall(text))
    start, end = text.find("{"), text.rfind("}")
    if 0 <= start < end:
        candidates.append(text[start : end + 1])
    for candidate in candidates:
        try:
            return json.loads(candidate)
        except (json.JSONDecodeError, ValueError):
            continue
    return None


class PromptBehavior:
    """Default behavior: ask the model for a JSON plan, then the work product.

    ``review`` enables a model-based review pass in :meth:`validate`; its
    output is untrusted, so anything unparsable is treated as approval and
    only an explicit ``"isValid": false`` rejects the work.
    """

    def __init__(
        self,
        *,
        guidance: Optional[str] = None,
        temperature: float = 0.3,
        max_tokens: int = 4000,
        review: bool = False,
        min_length: int = 1,
    ) -> None:
        self.guidance = guidance
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.review = review
        self.min_length = min_length

    def _guidance_for(self, agent: Agent) -> str:
        return self.guidance or ROLE_GUIDANCE.get(agent.type, "Complete the task thoroughly.")

    async def analyze(self, agent: Agent, task: Task) -> TaskAnalysis:
        prompt = textwrap.dedent(
            f"""
            Analyze this task:
            Title: {task.title}
            Description: {task.description}
            Type: {task.type.value}
            Required capabilities: {', '.join(task.required_capabilities) or 'none'}

            Respond in JSON with keys: complexity (low|medium|high), steps, challenges, approach.
            """
        )
        response = await agent.generate(
            prompt, GenerateOptions(temperature=self.temperature, max_tokens=1500)
        )
        return TaskAnalysis.from_payload(extract_json(response), raw=response)

    async def act(self, agent: Agent, analysis: TaskAnalysis, task: Task) -> Dict[str, Any]:
        steps = "\n".join(f"- {step}" for step in analysis.required_steps) or "- Complete the task"
        prompt = textwrap.dedent(
            f"""
            Based on this plan (complexity {analysis.estimated_complexity}):
            {steps}
            Approach: {analysis.recommended_approach or 'use your judgement'}

            Complete this task:
            {task.description}

            Context: {json.dumps(task.context, default=str) if task.context else 'none'}
            {self._guidance_for(agent)}
            """
        )
        output = await agent.generate(
            prompt, GenerateOptions(temperature=self.temperature, max_tokens=self.max_tokens)
        )
        return {
            "output": output,
            "analysis": {
                "complexity": analysis.estimated_complexity,
                "steps": list(analysis.required_steps),
                "challenges": list(analysis.potential_challenges),
            },
        }

    async def validate(self, agent: Agent, result: Any, task: Task) -> ValidationResult:
        output = result.get("output", "") if isinstance(result, dict) else str(result or "")
        if len(output.strip()) < self.min_length:
            return ValidationResult(is_valid=False, reason="No output generated")
        if not self.review:
            return ValidationResult(is_valid=True)
        prompt = textwrap.dedent(
            f"""
            Review this work product for the task "{task.title}".
            Check correctness, completeness and obvious defects.

            Work product:
            {output}

            Respond with JSON: {{"isValid": boolean, "issues": [string], "suggestions": [string]}}
            """
        )
        response = await agent.generate(prompt, GenerateOptions(temperature=0.2, max_tokens=1000))
        verdict = extract_json(response)
        if not isinstance(verdict, dict):
            return ValidationResult(is_valid=True)
        issues = verdict.get("issues") or []
        suggestions = verdict.get("suggestions") or []
        return ValidationResult(
            is_valid=verdict.get("isValid") is not False,
            reason=", ".join(str(item) for item in issues) or None,
            suggestions=[str(item) for item in suggestions] if isinstance(suggestions, list) else [],
        )
