from .user import User
from .project import Project
from .milestone import Milestone
from .media_attachment import MediaAttachment
from .review import Review
from .activity import ProjectActivity

# додай тут всі свої моделі!
