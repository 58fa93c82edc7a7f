"""
Client for the Google Generative Language API (generateContent).

Prompts ask for JSON only; the first {...} block of the response is parsed.
Models from GEMINI_MODELS are tried in order until one returns usable text.
"""
import json
import re

import requests
from flask import current_app
import logging

logger = logging.getLogger(__name__)

JSON_BLOCK = re.compile(r'\{[\s\S]*\}')
CONTROL_CHARS = re.compile(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]')

BEGINNER_LEVELS = ('A1', 'A2')

METHODOLOGY_GUIDANCE = {
    'CLT': 'Emphasize real-life communication, dialogues, role-plays, discussions',
    'TBLT': 'Focus on meaningful tasks and practical applications',
    'PPP': 'Structure with clear presentation, controlled practice, then production',
    'TTT': 'Balance teacher input with guided student discovery',
}

GENERATION_CONFIG = {
    'temperature': 0.1,
    'topK': 40,
    'topP': 0.95,
    'maxOutputTokens': 8192,
}


class GenerationError(Exception):
    """The model could not produce a usable response"""


def _contains_any(text, words):
    return any(word in text for word in words)


def select_methodology(profile):
    """Pick a teaching methodology from the student's goals, level and weaknesses

    Returns:
        (methodology, reasoning)
    """
    goals = (profile.get('end_goals') or '').lower()
    weak = (profile.get('weaknesses') or '').lower()

    if _contains_any(goals, ('conversation', 'speaking', 'communication', 'travel', 'social')):
        return 'CLT', (
            "Selected CLT (Communicative Language Teaching) because the student's goals emphasize "
            "real-world communication, speaking practice, and interactive scenarios. This methodology "
            "prioritizes fluency and meaningful interaction."
        )

    if _contains_any(goals, ('work', 'business', 'professional', 'job')) or profile.get('occupation'):
        return 'TBLT', (
            "Selected TBLT (Task-Based Language Teaching) because the student has professional or "
            "work-related goals. This methodology focuses on completing meaningful real-world tasks "
            "that directly apply to their professional context."
        )

    if (profile.get('level') in BEGINNER_LEVELS or _contains_any(weak, ('grammar', 'structure'))
            or _contains_any(goals, ('exam', 'academic'))):
        return 'PPP', (
            "Selected PPP (Presentation, Practice, Production) because the student is a beginner or "
            "has grammar weaknesses. This structured approach gradually builds accuracy before moving "
            "to free production."
        )

    return 'CLT', (
        "Selected CLT (Communicative Language Teaching) as the default methodology, focusing on "
        "real-life communication and speaking practice, which benefits most language learners."
    )


def extract_json(text):
    """Parse the first JSON object found in a model response"""
    match = JSON_BLOCK.search(text or '')
    if not match:
        raise GenerationError('No valid JSON found in AI response')

    try:
        return json.loads(CONTROL_CHARS.sub('', match.group(0)), strict=False)
    except json.JSONDecodeError as e:
        raise GenerationError(f'Invalid JSON in AI response: {e}') from e


def as_list(value):
    """List of strings from a list or a comma separated string"""
    if isinstance(value, list):
        return [str(v) for v in value if v]
    if isinstance(value, str) and value:
        return [v.strip() for v in value.split(',') if v.strip()]
    return []


def normalize_topic(raw, index, methodology):
    """Map a topic from the model (camelCase keys) to stored form

    Raises:
        ValueError: lessonNumber is not a whole number
    """
    return {
        'lesson_number': int(raw.get('lessonNumber') or raw.get('lesson_number') or index),
        'title': str(raw.get('title') or f'Lesson {index}'),
        'objective': str(raw.get('objective') or ''),
        'vocabulary': as_list(raw.get('vocabulary')),
        'grammar_focus': raw.get('grammarFocus') or raw.get('grammar_focus'),
        'skills': as_list(raw.get('skills')),
        'context': str(raw.get('context') or ''),
        'methodology': raw.get('methodology') or methodology,
    }


def format_profile(profile, default_occupation='Not specified'):
    return '\n'.join([
        f"- Name: {profile['name']}",
        f"- Target Language: {profile['target_language']}",
        f"- Native Language: {profile['native_language']}",
        f"- Age Group: {profile['age_group']}",
        f"- Level: {profile['level']}",
        f"- Goals: {profile['end_goals']}",
        f"- Occupation: {profile.get('occupation') or default_occupation}",
        f"- Weaknesses: {profile.get('weaknesses') or 'Not specified'}",
        f"- Interests: {profile.get('interests') or 'Not specified'}",
    ])


def build_plan_prompt(profile, methodology, reasoning):
    return f"""Generate a 10-lesson learning plan for a {profile['level']} {profile['target_language']} student.

STUDENT PROFILE:
{format_profile(profile)}

SELECTED METHODOLOGY: {methodology}
{reasoning}

REQUIREMENTS:
1. Create exactly 10 learning topics
2. Each topic should be relevant to the student's goals and context
3. Focus on speaking-based materials as most students prefer this
4. Use {methodology} methodology principles: {METHODOLOGY_GUIDANCE[methodology]}
5. Make content domain-specific to their occupation/interests when relevant
6. Progress logically from simpler to more complex topics

FORMAT YOUR RESPONSE AS VALID JSON ONLY (no markdown, no explanations):
{{
  "topics": [
    {{
      "lessonNumber": 1,
      "title": "Topic title",
      "objective": "What the student will learn/achieve",
      "vocabulary": ["word1", "word2", "phrase1"],
      "grammarFocus": "Grammar point if applicable",
      "skills": ["speaking", "listening", "reading", "writing"],
      "context": "Real-world scenario or domain context",
      "methodology": "{methodology}"
    }}
  ]
}}

IMPORTANT: Return ONLY the JSON object."""


def build_lesson_prompt(profile, topic, duration):
    vocabulary = ', '.join(topic['vocabulary'])
    return f"""You are an expert language curriculum designer. Generate a {duration}-minute {profile['target_language']} lesson plan based on the student profile and topic, selecting the most appropriate lesson format.

STUDENT PROFILE:
{format_profile(profile, default_occupation='General learner')}

LESSON TOPIC: {topic['title']}
OBJECTIVE: {topic['objective']}
CONTEXT: {topic['context']}

REQUIRED VOCABULARY (MUST ALL BE USED IN LESSON): {vocabulary}

Every vocabulary word must appear in several exercises: dialogues, reading passages,
fill-in-the-blank exercises, discussion questions and role-play scenarios.

LESSON FORMATS:
1. BUSINESS: Useful Expressions, Dialogue Practice, Role Play, Discussion
2. GRAMMAR: Sentence Practice, Grammar Focus, Fill in Blanks, Sentence Building
3. ARTICLE: Vocabulary, Article Reading, Discussion, Further Discussion
4. CONVERSATION: Vocabulary, Useful Expressions, Dialogue Practice, Role Play, Discussion
5. MIXED: adapted to specific needs

Adapt complexity to the level and activities to the age group. Address typical difficulties
for speakers of {profile['native_language']}.

OUTPUT FORMAT (JSON):
{{
  "title": {json.dumps(topic['title'])},
  "lessonType": "business|grammar|article|conversation|mixed",
  "difficulty": 1,
  "duration": {duration},
  "objective": {json.dumps(topic['objective'])},
  "skills": {json.dumps(topic['skills'])},
  "vocabulary": {json.dumps(topic['vocabulary'])},
  "context": {json.dumps(topic['context'])},
  "exercises": [
    {{
      "type": "vocabulary|expressions|dialogue|roleplay|discussion|grammar|article|fill_blanks|sentence_building",
      "title": "Exercise 1: [Title]",
      "description": "Brief description",
      "content": "Exercise content using the vocabulary naturally",
      "timeMinutes": 10
    }}
  ],
  "homework": "Optional homework assignment using vocabulary",
  "materials": ["suggested materials"],
  "teachingNotes": "Notes on how vocabulary is integrated"
}}

Return ONLY the JSON."""


def build_grammar_prompt(profile, grammar_topic):
    level = profile['level']
    return f"""Generate a grammar lesson for a {level} student learning {profile['target_language']}.

STUDENT PROFILE:
{format_profile(profile)}

GRAMMAR TOPIC REQUESTED: {grammar_topic}

REQUIREMENTS:
1. The lesson must be about the grammar topic requested: {json.dumps(grammar_topic)}
2. All explanations and examples are contextualized to the student's profile, interests and goals
3. Weave the student's occupation and interests into examples when relevant
4. Use vocabulary and complexity appropriate for {level} level
5. Progress from explanation to practice to application
6. Address typical mistakes made by speakers of {profile['native_language']}

LEVEL SCALING:
- A1/A2: short simple sentences, minimal metalanguage, 2-4 everyday examples
- B1/B2: mix simple and compound sentences, common contrasts, 1-3 common mistakes
- C1/C2: nuanced usage, register notes, exceptions, 3-5 common mistakes with reasons

FORMAT YOUR RESPONSE AS VALID JSON ONLY:
{{
  "title": "Lesson title about the grammar topic",
  "grammarTopic": {json.dumps(grammar_topic)},
  "context": "Real-world context where this grammar is used",
  "explanation": {{
    "definition": "Clear definition of the grammar rule",
    "usage": "When and how to use it in real contexts",
    "examples": ["Example sentence 1", "Example sentence 2", "Example sentence 3"]
  }},
  "exercises": [
    {{"type": "grammar-focus", "title": "Understanding the Rule",
      "content": {{"explanation": "Explanation at {level} level", "keyPoints": ["point1"], "examples": ["example1"]}}}},
    {{"type": "sentence-practice", "title": "Model Sentences",
      "content": {{"sentences": [{{"sentence": "sentence 1", "context": "why this example"}}]}}}},
    {{"type": "dialogue-practice", "title": "Conversation Practice",
      "content": {{"character1": "{profile['name']}", "character2": "Friend", "context": "Scenario",
                   "dialogue": [{{"speaker": "character1", "text": "dialogue line"}}]}}}},
    {{"type": "fill-blanks", "title": "Fill in the Blanks",
      "content": {{"sentences": [{{"sentence": "sentence with _____ blank", "answer": "word", "hint": "hint"}}]}}}},
    {{"type": "multiple-choice", "title": "Grammar Check",
      "content": {{"questions": [{{"question": "Which is correct?", "options": ["a", "b", "c", "d"],
                                  "correctAnswer": 0, "explanation": "why this is correct"}}]}}}},
    {{"type": "sentence-building", "title": "Create Sentences",
      "content": {{"exercises": [{{"instruction": "Build a sentence using...", "words": ["word1", "word2"],
                                  "correct": "correct sentence order"}}]}}}}
  ]
}}

Return ONLY valid JSON, no markdown or explanations."""


class GeminiService:
    """Service for generating learning plans and lessons"""

    def __init__(self):
        # Persistent HTTP session with connection pooling
        self.session = requests.Session()
        adapter = requests.adapters.HTTPAdapter(
            pool_connections=10,
            pool_maxsize=20,
            max_retries=1
        )
        self.session.mount('https://', adapter)
        self.session.mount('http://', adapter)

    def _call_model(self, model, prompt):
        config = current_app.config
        url = f"{config['GEMINI_API_URL']}/{model}:generateContent"
        payload = {
            'contents': [{'role': 'user', 'parts': [{'text': prompt}]}],
            'generationConfig': GENERATION_CONFIG,
        }

        response = self.session.post(
            url,
            params={'key': config['GOOGLE_API_KEY']},
            json=payload,
            timeout=config.get('GEMINI_TIMEOUT', 60)
        )
        response.raise_for_status()

        data = response.json()
        try:
            text = data['candidates'][0]['content']['parts'][0]['text']
        except (KeyError, IndexError, TypeError):
            raise GenerationError('Unexpected response shape') from None

        if not text or not text.strip():
            raise GenerationError('Empty response text')
        return text

    def generate(self, prompt, models=None):
        """Send `prompt` to each model in turn until one answers

        Returns:
            (model_used, text)
        """
        if not current_app.config.get('GOOGLE_API_KEY'):
            raise GenerationError('GOOGLE_API_KEY is not configured')

        errors = []
        for model in models or current_app.config['GEMINI_MODELS']:
            try:
                text = self._call_model(model, prompt)
                logger.info(f"Generated content with {model}")
                return model, text
            except (requests.RequestException, ValueError, GenerationError) as e:
                logger.warning(f"Model {model} failed: {e}")
                errors.append(f"{model}: {e}")

        raise GenerationError('All fallback models failed. Details:\n' + '\n'.join(errors))

    def generate_learning_plan(self, profile):
        """Ten-topic plan for a student profile

        Returns:
            dict with selected_methodology, methodology_reasoning, topics
        """
        methodology, reasoning = select_methodology(profile)
        _, text = self.generate(build_plan_prompt(profile, methodology, reasoning))
        parsed = extract_json(text)

        raw_topics = parsed.get('topics')
        if not isinstance(raw_topics, list):
            raise GenerationError('AI response did not contain any topics')

        topics = []
        for index, raw in enumerate(raw_topics, start=1):
            if not isinstance(raw, dict):
                continue
            try:
                topics.append(normalize_topic(raw, index, methodology))
            except (TypeError, ValueError) as e:
                raise GenerationError(f'Invalid topic {index} in AI response: {e}') from e

        if not topics:
            raise GenerationError('AI response did not contain any usable topics')

        return {
            'selected_methodology': methodology,
            'methodology_reasoning': reasoning,
            'topics': topics
        }

    def generate_lesson(self, profile, topic, duration=50):
        """Full lesson content for one topic"""
        _, text = self.generate(build_lesson_prompt(profile, topic, duration))
        lesson = extract_json(text)

        lesson['title'] = str(lesson.get('title') or topic['title'])
        lesson.setdefault('objective', topic['objective'])
        lesson['vocabulary'] = as_list(lesson.get('vocabulary')) or topic['vocabulary']
        lesson['skills'] = as_list(lesson.get('skills')) or topic['skills']
        lesson['duration'] = duration
        if not isinstance(lesson.get('exercises'), list):
            lesson['exercises'] = []
        return lesson

    def generate_grammar_lesson(self, profile, grammar_topic):
        """Grammar lesson on a requested point, with examples drawn from the student's profile"""
        _, text = self.generate(build_grammar_prompt(profile, grammar_topic))
        lesson = extract_json(text)

        if not isinstance(lesson.get('exercises'), list) or not lesson['exercises']:
            raise GenerationError('AI response did not contain any exercises')

        lesson['title'] = str(lesson.get('title') or grammar_topic)
        lesson['grammarTopic'] = lesson.get('grammarTopic') or grammar_topic
        lesson['context'] = str(lesson.get('context') or '')
        lesson['isGrammarLesson'] = True
        return lesson


gemini_service = GeminiService()
