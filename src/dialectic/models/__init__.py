from dialectic.db.database import Base

# Import all models so metadata (and migrations) can discover them
from .project import DialecticProject, DialecticSession
from .generation_job import GenerationJob, JobStatus, JobType
from .recipe import (
    DialecticStage,
    StageRecipeInstance,
    RecipeTemplateStep,
    RecipeTemplateEdge,
    StageRecipeStep,
    StageRecipeEdge,
)
from .contribution import DialecticContribution
from .project_resource import DialecticProjectResource
from .feedback import DialecticFeedback
from .notification import Notification
from .system_prompt import SystemPrompt
from .ai_provider import AiProvider
