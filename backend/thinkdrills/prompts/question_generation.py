"""Prompt templates for interest-themed question generation."""

QUESTION_GENERATION_SYSTEM_PROMPT = (
    "You are an expert educational content creator, specializing in creating "
    "engaging, age-appropriate questions that combine academic subjects with "
    "students' interests."
)

QUESTION_GENERATION_PROMPT = """Generate {count} multiple-choice educational questions for a grade {grade} student.
Subject: {category}
Theme/Interest: {interest}

Requirements:
- Each question should be grade-appropriate
- Include 4 options for each question
- One option must be the correct answer
- Provide a clear explanation for the correct answer
- Make questions engaging and related to the student's interest in {interest}
- For Math questions, include age-appropriate calculations
- For other subjects, ensure factual accuracy and educational value

Return a JSON object in the following format:
{{
  "questions": [
    {{
      "content": "the question text",
      "options": ["A", "B", "C", "D"],
      "answer": "the correct answer (must match one of the options exactly)",
      "explanation": "why this answer is correct"
    }}
  ]
}}"""


def build_question_prompt(category: str, interest: str, grade: int, count: int) -> str:
    return QUESTION_GENERATION_PROMPT.format(
        category=category,
        interest=interest,
        grade=grade,
        count=count,
    )
