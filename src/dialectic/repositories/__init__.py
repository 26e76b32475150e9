# src/dialectic/repositories/__init__.py
from .generation_job_repository import GenerationJobRepository
from .recipe_repository import RecipeRepository
from .project_repository import ProjectRepository
from .contribution_repository import ContributionRepository
from .project_resource_repository import ProjectResourceRepository
from .feedback_repository import FeedbackRepository
from .notification_repository import NotificationRepository
from .prompt_repository import PromptRepository

__all__ = [
    "GenerationJobRepository",
    "RecipeRepository",
    "ProjectRepository",
    "ContributionRepository",
    "ProjectResourceRepository",
    "FeedbackRepository",
    "NotificationRepository",
    "PromptRepository",
]
