"""Predefined workflow templates."""

from __future__ import annotations

from typing import Any, Dict, List

from .base import WorkflowTemplate

BUILTIN_TEMPLATES: List[Dict[str, Any]] = [
    {
        "id": "software-development",
        "name": "Complete Software Development",
        "description": "End-to-end software development workflow from requirements to deployment",
        "category": "development",
        "estimated_duration": 3600,
        "steps": [
            {
                "id": "requirements",
                "name": "Analyze Requirements",
                "agent_type": "PRODUCT_MANAGER",
                "task_type": "REQUIREMENTS_ANALYSIS",
                "inputs": {"description": "input"},
                "expected_outputs": ["requirements document", "user stories"],
            },
            {
                "id": "development",
                "name": "Develop Solution",
                "agent_type": "DEVELOPER",
                "task_type": "CODE_GENERATION",
                "dependencies": ["requirements"],
                "inputs": {"requirements": "from_previous_step"},
                "expected_outputs": ["source code", "documentation"],
            },
            {
                "id": "testing",
                "name": "Create Tests",
                "agent_type": "QA",
                "task_type": "TESTING",
                "dependencies": ["development"],
                "inputs": {"code": "from_previous_step"},
                "expected_outputs": ["test suite", "test results"],
            },
            {
                "id": "deployment",
                "name": "Deploy Application",
                "agent_type": "DEVOPS",
                "task_type": "DEPLOYMENT",
                "dependencies": ["testing"],
                "inputs": {"code": "from_development", "tests": "from_testing"},
                "expected_outputs": ["deployment confirmation", "monitoring setup"],
            },
        ],
    },
    {
        "id": "marketing-campaign",
        "name": "Complete Marketing Campaign",
        "description": "Launch a marketing campaign with SEO and lead generation",
        "category": "marketing",
        "estimated_duration": 7200,
        "steps": [
            {
                "id": "strategy",
                "name": "Define Campaign Strategy",
                "agent_type": "PRODUCT_MANAGER",
                "task_type": "REQUIREMENTS_ANALYSIS",
                "inputs": {"campaign_goals": "input"},
                "expected_outputs": ["campaign strategy", "target audience"],
            },
            {
                "id": "seo",
                "name": "SEO Optimization",
                "agent_type": "SEO",
                "task_type": "SEO_OPTIMIZATION",
                "dependencies": ["strategy"],
                "inputs": {"strategy": "from_previous_step"},
                "expected_outputs": ["seo recommendations", "keyword strategy"],
            },
            {
                "id": "lead-gen",
                "name": "Lead Generation Strategy",
                "agent_type": "LEAD_GENERATION",
                "task_type": "LEAD_GENERATION",
                "dependencies": ["strategy", "seo"],
                "inputs": {"strategy": "from_strategy", "seo": "from_seo"},
                "expected_outputs": ["lead generation plan", "funnel design"],
            },
            {
                "id": "content",
                "name": "Create Marketing Content",
                "agent_type": "MARKETING",
                "task_type": "CONTENT_MARKETING",
                "dependencies": ["seo", "lead-gen"],
                "inputs": {"seo": "from_seo", "strategy": "from_lead-gen"},
                "expected_outputs": ["marketing content", "campaign materials"],
            },
        ],
    },
    {
        "id": "website-launch",
        "name": "Complete Website Launch",
        "description": "Full website development and launch with SEO optimization",
        "category": "development",
        "estimated_duration": 5400,
        "steps": [
            {
                "id": "design",
                "name": "Design Website",
                "agent_type": "DESIGNER",
                "task_type": "DESIGN",
                "inputs": {"requirements": "input"},
                "expected_outputs": ["design mockups", "style guide"],
            },
            {
                "id": "development",
                "name": "Develop Website",
                "agent_type": "DEVELOPER",
                "task_type": "CODE_GENERATION",
                "dependencies": ["design"],
                "inputs": {"design": "from_previous_step"},
                "expected_outputs": ["website code", "documentation"],
            },
            {
                "id": "seo",
                "name": "SEO Optimization",
                "agent_type": "SEO",
                "task_type": "SEO_OPTIMIZATION",
                "dependencies": ["development"],
                "inputs": {"website": "from_previous_step"},
                "expected_outputs": ["seo optimizations", "meta tags"],
            },
            {
                "id": "testing",
                "name": "Test Website",
                "agent_type": "QA",
                "task_type": "TESTING",
                "dependencies": ["seo"],
                "inputs": {"website": "from_development"},
                "expected_outputs": ["test results", "bug reports"],
            },
        ],
    },
    {
        "id": "product-launch",
        "name": "Complete Product Launch",
        "description": "Product launch with development, marketing and lead generation",
        "category": "operations",
        "estimated_duration": 10800,
        "steps": [
            {
                "id": "planning",
                "name": "Product Planning",
                "agent_type": "PRODUCT_MANAGER",
                "task_type": "REQUIREMENTS_ANALYSIS",
                "inputs": {"product_concept": "input"},
                "expected_outputs": ["product roadmap", "feature list"],
            },
            {
                "id": "development",
                "name": "Build Product",
                "agent_type": "DEVELOPER",
                "task_type": "CODE_GENERATION",
                "dependencies": ["planning"],
                "inputs": {"roadmap": "from_previous_step"},
                "expected_outputs": ["product code", "api documentation"],
            },
            {
                "id": "marketing",
                "name": "Marketing Strategy",
                "agent_type": "MARKETING",
                "task_type": "CONTENT_MARKETING",
                "dependencies": ["planning"],
                "inputs": {"product": "from_planning"},
                "expected_outputs": ["marketing plan", "content calendar"],
            },
            {
                "id": "lead-gen",
                "name": "Lead Generation Campaign",
                "agent_type": "LEAD_GENERATION",
                "task_type": "LEAD_GENERATION",
                "dependencies": ["marketing"],
                "inputs": {"marketing": "from_previous_step"},
                "expected_outputs": ["lead generation plan", "landing pages"],
            },
        ],
    },
]


def builtin_templates() -> List[WorkflowTemplate]:
    """Return fresh template objects for the predefined workflows."""

    return [WorkflowTemplate.from_mapping(data) for data in BUILTIN_TEMPLATES]
