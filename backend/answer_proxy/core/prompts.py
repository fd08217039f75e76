from enum import Enum
from typing import Dict

from backend.answer_proxy.models.schemas import AnswerLength

NOT_FOUND_ANSWER = "Not found in CV"

BANNED_PHRASES = (
    "I'm excited to",
    "passionate about",
    "leverage",
    "synergy",
    "proven track record",
    "results-driven",
)


class PromptVersion(Enum):
    V1 = "v1"


ANSWER_WORD_TARGETS: Dict[AnswerLength, str] = {
    AnswerLength.SHORT: "50-80 words",
    AnswerLength.MEDIUM: "100-150 words",
    AnswerLength.LONG: "200-300 words",
}

COVER_LETTER_WORD_TARGETS: Dict[AnswerLength, str] = {
    AnswerLength.SHORT: "150-220 words",
    AnswerLength.MEDIUM: "250-350 words",
    AnswerLength.LONG: "350-500 words",
}


class Prompts:
    """Centralized prompt repository. Versioned prompts for LLM calls."""

    @staticmethod
    def get_extraction_system(version: PromptVersion) -> str:
        if version == PromptVersion.V1:
            return f"""You are a data extraction assistant. Extract ONLY the requested information from the CV.

RULES:
- Return ONLY the exact value requested, nothing else
- No sentences, no explanations, no formatting
- If the information is not found, respond with: "{NOT_FOUND_ANSWER}"
- For URLs (LinkedIn, GitHub, portfolio, website, Twitter/X, etc.), return the full URL including the https:// prefix. If the CV only shows "linkedin.com/in/johndoe", return "https://linkedin.com/in/johndoe"
- For names, return just the name
- For phone numbers, include the country code if present"""
        else:
            raise ValueError(f"Unsupported prompt version: {version}")

    @staticmethod
    def get_answer_system(version: PromptVersion, *, has_job_context: bool) -> str:
        if version != PromptVersion.V1:
            raise ValueError(f"Unsupported prompt version: {version}")

        tailor_rule = "\n5. Tailor the answer to the job description provided" if has_job_context else ""
        banned = "\n".join(f'- "{p}"' for p in BANNED_PHRASES)
        return f"""You are helping a job candidate write authentic, tailored answers to application questions.

## MANDATORY: USE THE FULL CV
Before writing, scan the ENTIRE CV and identify ALL relevant experiences:
- Look at EVERY job listed, not just the most recent
- Check education, certifications, projects, volunteer work
- Find the BEST examples regardless of when they occurred
- Older experiences are often MORE relevant than recent ones

## MANDATORY: USE THE JOB CONTEXT (IF PROVIDED)
If a job description or requirements are provided, you MUST:
- Identify 3-5 key requirements/responsibilities that matter most
- Map at least 3 of them to concrete CV evidence (specific roles, projects, skills) from anywhere in the CV
- Use the role's language naturally (tools, responsibilities) but do NOT copy/paste it
- If a requirement is not covered, do not claim it; address it honestly ("I haven't done X directly, but I've done Y which is adjacent")

## ANSWER STRUCTURE
Your answer MUST include experiences from at least 2 different time periods or roles when the CV has them. For example:
- "In my role at [OLDER COMPANY], I... Later at [RECENT COMPANY], I built on this by..."
- "My experience spans from [EARLY ROLE] where I learned X, through [MID ROLE] where I applied it to Y"

## RULES
1. Write in first person as the candidate
2. NEVER focus only on the current/most recent role
3. NEVER invent employers, degrees, dates, or metrics that are not in the CV
4. Sound human and genuine, no corporate buzzwords{tailor_rule}

## OUTPUT
- Output ONLY the answer text
- No preamble, no headings, no commentary about the answer

## BANNED PHRASES
{banned}
- Starting with "As a [current title]..." """

    @staticmethod
    def get_cover_letter_mode(version: PromptVersion) -> str:
        if version == PromptVersion.V1:
            return """

## COVER LETTER MODE
The candidate is asking for a cover letter. Write a real letter, not a paragraph answer:
- Greeting: "Dear Hiring Manager," or "Dear [Company] team,"
- 1st paragraph: a specific hook showing you understand the role and why you fit
- 2nd-3rd paragraphs: map at least 3 job requirements to concrete CV evidence, drawn from different roles/time periods when possible
- Final paragraph: close confidently, then "Sincerely," followed by the candidate's name from the CV
- Do NOT write a generic summary of skills; the letter must be tailored to the job context"""
        else:
            raise ValueError(f"Unsupported prompt version: {version}")

    @staticmethod
    def get_why_company_block(version: PromptVersion) -> str:
        if version == PromptVersion.V1:
            return """
SPECIAL (WHY COMPANY):
- Use 2-3 specific points from the job context (mission, responsibilities, requirements) to show you understand the role
- Connect each point to a different concrete example from the CV (preferably from different roles/time periods)
- End with exactly 1 sentence explaining why this is a logical next step for you, grounded in the CV (no generic hype)
"""
        else:
            raise ValueError(f"Unsupported prompt version: {version}")

    @staticmethod
    def get_cover_letter_block(version: PromptVersion, *, role: str, company: str | None) -> str:
        if version == PromptVersion.V1:
            at_company = f" at {company}" if company else ""
            return f"""
SPECIAL (COVER LETTER):
- Output a complete cover letter: greeting + 3-4 paragraphs + closing
- Open with a greeting such as "Dear Hiring Manager," (or "Dear {company or '[Company]'} team,")
- Explicitly mention the role ({role}){at_company}
- Include at least 3 specific job requirements from the job context and map each to CV evidence
- Close with "Sincerely," and the candidate's name
"""
        else:
            raise ValueError(f"Unsupported prompt version: {version}")
