# Import all models so Base.metadata is populated for create_all / Alembic autogenerate.
from app.models.user import User  # noqa: F401
from app.models.session import Session  # noqa: F401
from app.models.audit import AuditLogEvent  # noqa: F401
from app.models.engagement import Engagement  # noqa: F401
from app.models.coaching_style import (  # noqa: F401
    ClientCoachingStyle,
    ClientStyleSelection,
    CoachingStyleMapping,
    TrainerCoachingStyle,
    TrainerStyleSelection,
)
from app.models.coach_selection import CoachSelectionRequest  # noqa: F401
from app.models.template_assignment import TemplateAssignment  # noqa: F401
from app.models.messaging import Conversation, Message  # noqa: F401
from app.models.trainer_profile import TrainerProfile  # noqa: F401
from app.models.trainer_visibility import TrainerVisibilitySetting  # noqa: F401
