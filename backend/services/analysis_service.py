"""
Analysis Service - Semantic analysis, patch planning and document generation
"""

from __future__ import annotations

import json
import logging
import re
from datetime import date

from pydantic import ValidationError as PydanticValidationError

from models.analysis import AnalysisResult, Language, Persona
from models.patch import GeneratedDocument, PatchPlan

from .exceptions import CollaboratorError
from .llm_service import LLMService

logger = logging.getLogger(__name__)

LANGUAGE_NAMES = {
    Language.ZH: "Simplified Chinese",
    Language.EN: "English",
}

PERSONA_PROMPTS = {
    Persona.GENERAL: "Balanced tone for a mixed audience. Explain what changed and why it matters in plain language.",
    Persona.DEVELOPER: "Technical and precise. Mention affected components, interfaces, configuration and edge cases.",
    Persona.EXECUTIVE: "Brief and outcome-oriented. Focus on business impact, scope and risk; skip implementation detail.",
    Persona.PUBLIC: "Friendly release-note style for end users. Avoid jargon and internal details.",
}

_STRING = {"type": "STRING"}


def analysis_schema(language_name: str) -> dict:
    """Response schema for the analysis call (Gemini schema dialect)"""
    return {
        "type": "OBJECT",
        "properties": {
            "version": {"type": "STRING", "description": "The new calculated semantic version (e.g., 1.1.0)"},
            "previousVersion": {"type": "STRING", "description": "The previous version detected or inferred"},
            "bumpType": {"type": "STRING", "enum": ["Major", "Minor", "Patch"]},
            "summary": {"type": "STRING", "description": f"A concise executive summary of all changes in {language_name}"},
            "changes": {
                "type": "ARRAY",
                "items": {
                    "type": "OBJECT",
                    "properties": {
                        "id": _STRING,
                        "type": {"type": "STRING", "enum": ["feat", "fix", "docs", "refactor", "style", "perf"]},
                        "title": {"type": "STRING", "description": f"Short title in {language_name}"},
                        "description": {"type": "STRING", "description": f"What changed, in {language_name}"},
                        "lines": {
                            "type": "OBJECT",
                            "properties": {
                                "start": {"type": "INTEGER", "description": "Start line in the NEW document (1-based)"},
                                "end": {"type": "INTEGER", "description": "End line in the NEW document (1-based)"},
                            },
                            "required": ["start", "end"],
                        },
                    },
                    "required": ["id", "type", "title", "description", "lines"],
                },
            },
        },
        "required": ["version", "bumpType", "summary", "changes", "previousVersion"],
    }


def plan_schema(language_name: str) -> dict:
    """Response schema for the planning call"""
    return {
        "type": "OBJECT",
        "properties": {
            "summary": {"type": "STRING", "description": f"Brief overview of the plan in {language_name}"},
            "proposedVersion": {"type": "STRING", "description": "The new proposed version number (e.g., 1.1.0)"},
            "bumpType": {"type": "STRING", "enum": ["Major", "Minor", "Patch"]},
            "actions": {
                "type": "ARRAY",
                "items": {
                    "type": "OBJECT",
                    "properties": {
                        "operation": {"type": "STRING", "enum": ["insert", "replace", "delete"]},
                        "targetSectionHeader": {"type": "STRING", "description": "Target section (e.g. ## 2.1 Login)"},
                        "reason": {"type": "STRING", "description": f"Reasoning in {language_name}"},
                        "description": {"type": "STRING", "description": f"Action description in {language_name}"},
                    },
                    "required": ["operation", "targetSectionHeader", "reason", "description"],
                },
            },
        },
        "required": ["summary", "proposedVersion", "bumpType", "actions"],
    }


def number_lines(text: str) -> str:
    """Prefix each line with its 1-based number so replies can cite lines"""
    return "\n".join(f"{index}: {line}" for index, line in enumerate(text.split("\n"), start=1))


def build_analysis_prompt(
    previous_text: str,
    new_text: str,
    language_name: str,
    known_version: str | None,
    persona: Persona,
) -> str:
    """Build prompt for semantic diff analysis"""
    if known_version:
        version_rule = f'3. The new version is explicitly set to "{known_version}". You MUST use this version string in the output.'
    else:
        version_rule = "3. If V1 has a version header, increment from there. If not, start from 1.0.0."

    return f"""You are an expert Semantic Versioning manager and Diff Analyzer.

Your task is to compare two documents (V1 and V2) and generate a structured changelog.

Target Audience / Persona: "{persona.value}"
Persona Instruction: {PERSONA_PROMPTS[persona]}

Input V1 (Original):
{previous_text}

Input V2 (New Version - with line numbers for reference):
{number_lines(new_text)}

Instructions:
1. Compare V1 and V2 semantically.
2. Determine the semantic version bump (Major, Minor, or Patch) based on the changes.
{version_rule}
4. Identify specific changes. For each change:
   - Categorize it (feat, fix, docs, refactor, style, perf).
   - Provide a title and description in **{language_name}**.
   - Tone & Detail: strictly follow the Persona Instruction above.
   - CRITICAL: Identify the start and end line numbers in V2 where this change is located. Use the line numbers provided in the V2 input.

IMPORTANT CONSTRAINT:
- Ignore changes inside sections named "Changelog", "History", "Update Log", or similar archival sections.
- Focus ONLY on changes in the actual document content and their immediate effects.

5. Return the result strictly as JSON with keys: version, previousVersion, bumpType, summary, changes."""


def build_plan_prompt(previous_text: str, patch_fragment: str, language_name: str) -> str:
    """Build prompt for patch planning"""
    return f"""You are a Document Architect.
User wants to apply a "Patch Fragment" to an existing "V1 Document".

Task:
1. Analyze the "Patch Fragment" semantic meaning.
2. Detect the current version of "V1 Document" (if any).
3. Calculate a new version number based on the significance of the changes (Major, Minor, or Patch).
4. Create a detailed plan with a list of specific actions to apply the patch. Use multiple actions if the patch affects different sections.
Write summary, reasons and descriptions in {language_name}.

V1 Document:
{previous_text}

Patch Fragment:
{patch_fragment}

Return a structured plan as JSON with keys: summary, proposedVersion, bumpType, actions."""


def build_generation_prompt(
    previous_text: str,
    patch_fragment: str,
    plan: PatchPlan,
    target_version: str,
    today: str,
    language_name: str,
) -> str:
    """Build prompt for full-document regeneration"""
    return f"""You are an AI Document Editor.

Task: Generate the NEW full document (V2) by applying the Patch Fragment to V1 Document following the Plan Actions.

Constraints:
1. Principle of Least Change: ONLY modify the sections identified in the plan. Do NOT rephrase other sections.
2. Structure: Keep the original Markdown structure, indentation, and formatting.
3. Flow: Ensure the inserted/replaced text flows naturally with the surrounding context. Match the language of V1
   (use {language_name} when V1 gives no clear signal).
4. Version & Date header: replace any existing version/date values in place with Version "{target_version}" and Date "{today}".
   Prefer this format when inserting: > **Version**: {target_version} | **Last Updated**: {today}
   Never add a second header block; the output must contain EXACTLY ONE version identifier.
5. Metadata removal: if V1 ends with a block containing "SMARTDIFF AI METADATA" or a JSON block describing a previous
   version, REMOVE IT COMPLETELY. The output ends with the document content only.

Plan Actions:
{plan.describe_actions()}

V1 Document:
{previous_text}

Patch Fragment:
{patch_fragment}

Output:
Return ONLY the complete content of the new V2 document. Do not use markdown code blocks."""


def parse_json_from_response(response: str) -> dict:
    """Parse JSON from LLM response, handling code blocks"""
    json_match = re.search(r"```(?:json)?\s*([\s\S]*?)```", response)
    json_str = json_match.group(1).strip() if json_match else response.strip()

    try:
        data = json.loads(json_str)
    except json.JSONDecodeError as e:
        # Try to find a JSON object in the response
        brace_start = json_str.find("{")
        brace_end = json_str.rfind("}") + 1
        if brace_start < 0 or brace_end <= brace_start:
            raise CollaboratorError(f"Failed to parse JSON: {e}") from e
        try:
            data = json.loads(json_str[brace_start:brace_end])
        except json.JSONDecodeError as inner:
            raise CollaboratorError(f"Failed to parse JSON: {inner}") from inner

    if not isinstance(data, dict):
        raise CollaboratorError("Expected a JSON object in the response")
    return data


def strip_code_fence(text: str) -> str:
    """Remove a markdown fence wrapping the whole generated document"""
    cleaned = re.sub(r"^```(?:markdown|md)?[ \t]*\n", "", text.strip())
    return re.sub(r"\n```$", "", cleaned)


class AnalysisService:
    """Adapter between the workflow and the LLM collaborator"""

    def __init__(self, llm: LLMService):
        self.llm = llm

    async def analyze_diff(
        self,
        previous_text: str,
        new_text: str,
        language: Language = Language.EN,
        known_version: str | None = None,
        persona: Persona = Persona.GENERAL,
    ) -> AnalysisResult:
        """Structured change report with line ranges in `new_text`"""
        language_name = LANGUAGE_NAMES[language]
        prompt = build_analysis_prompt(previous_text, new_text, language_name, known_version, persona)
        reply = await self.llm.generate(prompt, temperature=0.2, response_schema=analysis_schema(language_name))

        data = parse_json_from_response(reply.text)
        if reply.usage is not None:
            data["usage"] = reply.usage.to_wire()
        try:
            result = AnalysisResult.model_validate(data)
        except (PydanticValidationError, TypeError) as e:
            raise CollaboratorError(f"Analysis response did not match schema: {e}") from e

        if known_version and result.version != known_version:
            logger.warning("Analysis returned version %s, pinning to %s", result.version, known_version)
            result = result.model_copy(update={"version": known_version})
        return result

    async def create_patch_plan(
        self,
        previous_text: str,
        patch_fragment: str,
        language: Language = Language.EN,
    ) -> PatchPlan:
        """Step 1 of Smart Patch: intent analysis, action list and version proposal"""
        language_name = LANGUAGE_NAMES[language]
        prompt = build_plan_prompt(previous_text, patch_fragment, language_name)
        reply = await self.llm.generate(prompt, temperature=0.1, response_schema=plan_schema(language_name))

        data = parse_json_from_response(reply.text)
        if reply.usage is not None:
            data["usage"] = reply.usage.to_wire()
        try:
            return PatchPlan.model_validate(data)
        except (PydanticValidationError, TypeError) as e:
            raise CollaboratorError(f"Plan response did not match schema: {e}") from e

    async def generate_patched_document(
        self,
        previous_text: str,
        patch_fragment: str,
        plan: PatchPlan,
        target_version: str,
        language: Language = Language.EN,
    ) -> GeneratedDocument:
        """Step 2 of Smart Patch: the full new document text"""
        prompt = build_generation_prompt(
            previous_text,
            patch_fragment,
            plan,
            target_version,
            date.today().isoformat(),
            LANGUAGE_NAMES[language],
        )
        reply = await self.llm.generate(prompt, temperature=0.2)
        text = strip_code_fence(reply.text)
        if not text.strip():
            raise CollaboratorError("Failed to generate document")
        return GeneratedDocument(text=text, usage=reply.usage)
