from models import db, LearningPlan, Lesson, User
from services.gemini_service import gemini_service, GenerationError
from datetime import datetime, timezone
from sqlalchemy import or_
import logging

logger = logging.getLogger(__name__)


class ServiceError(Exception):
    """Domain error with the HTTP status a view should answer with"""
    status_code = 400

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class NotFound(ServiceError):
    status_code = 404


class QuotaExceeded(ServiceError):
    status_code = 429


class UpstreamUnavailable(ServiceError):
    status_code = 503


class LessonGenerationFailed(ServiceError):
    status_code = 502


def utc_today():
    return datetime.now(timezone.utc).date()


class GenerationService:
    """AI generation for a tutor's students, metered by a daily quota"""

    @staticmethod
    def consume_quota(user, today=None):
        """Count one generation against the user's daily limit

        A new day starts the count again at 1. Each case is one conditional
        UPDATE, so the check and the increment happen together in the database.

        Returns:
            bool: False when today's limit is already used up
        """
        today = today or utc_today()

        charged = User.query.filter(
            User.id == user.id,
            or_(User.last_generation_date.is_(None), User.last_generation_date != today)
        ).update(
            {User.daily_generation_count: 1, User.last_generation_date: today},
            synchronize_session=False
        )

        if not charged:
            charged = User.query.filter(
                User.id == user.id,
                User.last_generation_date == today,
                User.daily_generation_count < User.daily_limit
            ).update(
                {User.daily_generation_count: User.daily_generation_count + 1},
                synchronize_session=False
            )

        db.session.commit()
        return charged == 1

    @staticmethod
    def refund_quota(user, today=None):
        """Give back a generation that failed"""
        today = today or utc_today()
        User.query.filter(
            User.id == user.id,
            User.last_generation_date == today,
            User.daily_generation_count > 0
        ).update(
            {User.daily_generation_count: User.daily_generation_count - 1},
            synchronize_session=False
        )
        db.session.commit()

    @staticmethod
    def get_stats(user, today=None):
        today = today or utc_today()
        used = user.daily_generation_count if user.last_generation_date == today else 0
        return {
            'used': used,
            'limit': user.daily_limit,
            'remaining': max(0, user.daily_limit - used)
        }

    @staticmethod
    def _run(user, generate):
        if not GenerationService.consume_quota(user):
            stats = GenerationService.get_stats(user)
            logger.info(f"User {user.id} hit the daily generation limit ({stats['limit']})")
            raise QuotaExceeded(
                f"Daily generation limit reached ({stats['limit']} per day). Please try again tomorrow."
            )

        try:
            return generate()
        except GenerationError as e:
            logger.error(f"Generation failed for user {user.id}: {e}")
            GenerationService.refund_quota(user)
            raise LessonGenerationFailed('Failed to generate content. Please try again.') from e

    @staticmethod
    def get_latest_plan(student):
        return LearningPlan.query.filter_by(student_id=student.id)\
            .order_by(LearningPlan.created_at.desc(), LearningPlan.id.desc()).first()

    @staticmethod
    def generate_learning_plan(user, student):
        """Generate and store a ten-topic plan for `student`"""
        result = GenerationService._run(
            user, lambda: gemini_service.generate_learning_plan(student.profile())
        )

        plan = LearningPlan(
            student_id=student.id,
            selected_methodology=result['selected_methodology'],
            methodology_reasoning=result['methodology_reasoning'],
            topics=result['topics']
        )
        db.session.add(plan)
        db.session.commit()

        logger.info(f"Created learning plan {plan.id} ({plan.selected_methodology}) for student {student.id}")
        return plan

    @staticmethod
    def resolve_topic(student, topic=None, lesson_number=None):
        """Topic dict from an explicit topic or from the latest plan"""
        if topic is not None:
            return topic

        plan = GenerationService.get_latest_plan(student)
        if not plan:
            raise NotFound('No learning plan found for this student')

        if lesson_number is None:
            lesson_number = 1
        for item in plan.topics:
            if item.get('lesson_number') == lesson_number:
                return item
        raise NotFound(f'Lesson {lesson_number} is not part of the learning plan')

    @staticmethod
    def generate_lesson(user, student, topic, duration=50):
        """Generate and store a lesson for one topic"""
        content = GenerationService._run(
            user, lambda: gemini_service.generate_lesson(student.profile(), topic, duration)
        )

        skills = ', '.join(content['skills'])
        lesson_type = content.get('lessonType') or 'mixed'
        lesson = Lesson(
            student_id=student.id,
            title=content['title'][:255],
            overview=f"{topic['objective']} | Skills: {skills} | Type: {lesson_type}",
            content=content,
            is_refined=True
        )
        db.session.add(lesson)
        db.session.commit()

        logger.info(f"Created lesson {lesson.id} for student {student.id} ({duration} min)")
        return lesson

    @staticmethod
    def generate_grammar_lesson(user, student, grammar_topic):
        """Generate and store a grammar lesson on `grammar_topic` for `student`"""
        content = GenerationService._run(
            user, lambda: gemini_service.generate_grammar_lesson(student.profile(), grammar_topic)
        )

        lesson = Lesson(
            student_id=student.id,
            title=content['title'][:255],
            overview=content['context'] or f'Grammar: {grammar_topic}',
            content=content,
            is_refined=False
        )
        db.session.add(lesson)
        db.session.commit()

        logger.info(f"Created grammar lesson {lesson.id} ({grammar_topic}) for student {student.id}")
        return lesson

    @staticmethod
    def reset_user_quota(user_id):
        user = db.session.get(User, user_id)
        if not user:
            raise NotFound('User not found')
        user.daily_generation_count = 0
        db.session.commit()
        return user


generation_service = GenerationService()
