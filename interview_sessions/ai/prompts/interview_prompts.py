"""
Interview prompts for the interview session engine.

This module contains the prompt templates used to brief the AI interviewer,
to generate candidate-specific questions and coding tasks, and the fixed
messages the conversation controller writes into the transcript.
"""
import json
from typing import Any, Dict, List, Optional

# System prompt for the main interview conversation
INTERVIEW_SYSTEM_PROMPT = """You are an expert technical interviewer conducting an interview for a {position} position.

Candidate Information:
- Name: {candidate_name}
- Skills: {skills}
{project_line}
Your responsibilities:
1. Ask relevant technical questions based on the candidate's skills and experience
2. Follow up on their answers with deeper technical questions
3. Assess their problem-solving approach
4. Be professional, encouraging, and constructive
5. Keep questions clear and concise
6. Adapt difficulty based on their responses
{priority_questions}
Interview Guidelines:
- Start with an introduction and ask about their background
- Progress from general to specific technical questions
- Ask about real-world scenarios and problem-solving
- Evaluate code quality, best practices, and system design thinking
- Be conversational but professional

Important Interview Flow for Coding Exercises:
- If at any point you ask the candidate to complete a coding exercise, the system will open a coding editor for the candidate. When the candidate starts the coding exercise, you MUST pause asking further questions and wait for the coding submission. Do NOT speculate or continue with follow-ups while the candidate is actively working on the test.
- Once the candidate submits their solution, the system will notify you and include a short summary of the submission. At that point, resume the interview: evaluate the submission, ask follow-ups about approach and trade-offs, and continue the normal interview flow.
- Keep your responses concise and focus on evaluating the candidate's reasoning, code correctness, and design choices after the submission.

Remember: You're speaking to them via voice, so keep responses natural and concise."""

QUESTION_WRITER_ROLE = "You are an expert technical interviewer and question writer."

QUESTION_GENERATION_PROMPT = """You are an expert technical interviewer. Based on the following candidate profile, generate an array (JSON) of 6-10 relevant interview questions that focus on the candidate's skills, projects, and likely junior-to-mid level expectations. Return ONLY a JSON array of strings.

Candidate Profile:
{profile_block}

Requirements:
- Produce 6 to 10 clear, distinct interview questions
- Include at least 1 coding or implementation task-style question
- Include at least 1 question about system design or architecture appropriate to the role
- Keep questions concise and practical"""

TASK_WRITER_ROLE = "You are a senior engineer who writes clear, testable coding tasks."

TASK_GENERATION_PROMPT = """You are an expert coding-question writer. Given the following candidate profile, produce a JSON array of 1-3 coding tasks suitable for a live coding editor. Each task should be an object with the fields: id (short string), title, description, languageHints (array), exampleInputOutput (optional), and a small set of unit tests described as strings. Return ONLY valid JSON.

Candidate Profile:
{profile_block}

Requirements:
- Create 1 to 3 practical coding tasks, each with clear instructions and input/output examples when appropriate.
- Include at least one task that can be evaluated with small unit tests.
- Keep tasks concise and focused for a 20-45 minute coding exercise.
- Return only JSON (array of objects)."""

WELCOME_MESSAGE = (
    "Hello {candidate_name}! Welcome to your technical interview for the {role} position at {company}. "
    "I'll be asking you some questions today to understand your technical skills and experience better. "
    "Let's start with: Can you tell me about yourself and your technical background?"
)

SCHEDULED_GREETING = (
    "Hello {candidate_name}! Welcome to your scheduled technical interview for the {position} position. "
    "You have {minutes_remaining} minutes remaining in your session. Let's begin!"
)

CODING_PAUSE_ANNOUNCEMENT = (
    "The coding exercise \"{test_name}\" has started. I'll wait for your submission before "
    "asking any further questions. Take your time and submit when you're ready."
)

CODE_SUBMISSION_SUMMARY = (
    "I have submitted my solution for the coding exercise.\n"
    "Language: {language}\n"
    "Result: {outcome}\n"
    "Summary: {result}"
)

CODE_SUBMISSION_DETAILS = "\nDetails: {details}"


def _join_skills(skills: Any) -> str:
    if isinstance(skills, (list, tuple)):
        return ", ".join(str(s) for s in skills)
    return str(skills or "")


def format_profile_block(profile: Dict[str, Any]) -> str:
    """Render the candidate profile section shared by the generation prompts."""
    return "\n".join([
        f"Name: {profile.get('candidateName', '')}",
        f"Position: {profile.get('position') or 'Full Stack Developer'}",
        f"Skills: {_join_skills(profile.get('skills'))}",
        f"Projects: {profile.get('projectDetails') or profile.get('githubProjects') or 'N/A'}",
        f"Experience: {profile.get('experience') or 'N/A'}",
    ])


def format_system_prompt(profile: Dict[str, Any], questions: Optional[List[str]] = None) -> str:
    """
    Build the interviewer system prompt for a candidate.

    Args:
        profile: Candidate profile (stored or derived from the session snapshot)
        questions: Priority questions to embed, in order

    Returns:
        The formatted system prompt
    """
    project_details = profile.get("projectDetails") or profile.get("githubProjects") or ""
    project_line = f"- Project Experience: {project_details}\n" if project_details else ""

    priority_questions = ""
    if questions:
        numbered = "\n".join(f"{i + 1}. {q}" for i, q in enumerate(questions))
        priority_questions = f"\nPriority Questions to Cover:\n{numbered}\n"

    return INTERVIEW_SYSTEM_PROMPT.format(
        position=profile.get("position") or "Software Developer",
        candidate_name=profile.get("candidateName", ""),
        skills=_join_skills(profile.get("skills")),
        project_line=project_line,
        priority_questions=priority_questions,
    )


def format_question_generation_messages(profile: Dict[str, Any]) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": QUESTION_WRITER_ROLE},
        {"role": "user", "content": QUESTION_GENERATION_PROMPT.format(profile_block=format_profile_block(profile))},
    ]


def format_task_generation_messages(profile: Dict[str, Any]) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": TASK_WRITER_ROLE},
        {"role": "user", "content": TASK_GENERATION_PROMPT.format(profile_block=format_profile_block(profile))},
    ]


def format_welcome_message(candidate_name: str, role: Optional[str], company: Optional[str]) -> str:
    return WELCOME_MESSAGE.format(
        candidate_name=candidate_name,
        role=role or "Software Developer",
        company=company or "our company",
    )


def format_code_submission(
    language: Optional[str],
    passed: bool,
    result: str,
    details: Optional[Any] = None,
) -> str:
    """Synthesize the user-side transcript entry describing a coding submission."""
    text = CODE_SUBMISSION_SUMMARY.format(
        language=language or "unspecified",
        outcome="all tests passed" if passed else "some tests failed",
        result=result or "no output",
    )
    if details:
        rendered = details if isinstance(details, str) else json.dumps(details, default=str)
        text += CODE_SUBMISSION_DETAILS.format(details=rendered)
    return text
