from talent_training.models.profile import Profile
from talent_training.models.progress import SectionProgress
from talent_training.models.attempt import QuizAttempt
from talent_training.models.quiz import AnswerOption, QuizQuestion

__all__ = [
    "Profile",
    "SectionProgress",
    "QuizAttempt",
    "AnswerOption",
    "QuizQuestion",
]
